from __future__ import annotations

from pathlib import Path

import pytest

from host_probe.errors import ConfigUnreadable
from host_probe.models import WatchRule
from host_probe.watchrules import parse, parse_line

RULESET = """## First rule - delete all
-D

## Increase the buffers to survive stress events.
-b 8192

-w /etc/passwd -p wa -k identity
-w /etc/shadow -p wa -k identity
-a always,exit -F arch=b64 -S adjtimex -S settimeofday -k time-change

-w /var/log/sudo.log -k sudo -p rwxa
-w /sbin/insmod -p x
-w /etc/sudoers
"""


def test_parse_line_extracts_path_and_action() -> None:
    assert parse_line("-w /etc/passwd -p wa") == WatchRule(path="/etc/passwd", action="wa")


def test_parse_line_ignores_non_watch_rules() -> None:
    assert parse_line("-a always,exit -F arch=b64 -S adjtimex -k time-change") is None
    assert parse_line("-w /etc/sudoers") is None
    assert parse_line("# -w /etc/passwd") is None
    assert parse_line("") is None


def test_parse_returns_rules_in_file_order(tmp_path: Path) -> None:
    ruleset = tmp_path / "audit.rules"
    ruleset.write_text(RULESET, encoding="utf-8")

    assert parse(ruleset) == [
        WatchRule(path="/etc/passwd", action="wa"),
        WatchRule(path="/etc/shadow", action="wa"),
        WatchRule(path="/var/log/sudo.log", action="rwxa"),
        WatchRule(path="/sbin/insmod", action="x"),
    ]


def test_parse_empty_file(tmp_path: Path) -> None:
    ruleset = tmp_path / "audit.rules"
    ruleset.write_text("", encoding="utf-8")
    assert parse(ruleset) == []


def test_parse_missing_file_raises_config_unreadable(tmp_path: Path) -> None:
    missing = tmp_path / "audit.rules"
    with pytest.raises(ConfigUnreadable) as excinfo:
        parse(missing)
    assert excinfo.value.path == str(missing)
    assert isinstance(excinfo.value.__cause__, OSError)


def test_parse_directory_raises_config_unreadable(tmp_path: Path) -> None:
    with pytest.raises(ConfigUnreadable):
        parse(tmp_path)
