from __future__ import annotations

import logging
import re
from pathlib import Path

from host_probe.errors import ConfigUnreadable
from host_probe.models import WatchRule

logger = logging.getLogger("host_probe.watchrules")

DEFAULT_AUDIT_RULES = Path("/etc/audit/audit.rules")

_RULE_RE = re.compile(r"-w (\S+).* -p ([A-Za-z]+)")


def parse_line(line: str) -> WatchRule | None:
    match = _RULE_RE.search(line)
    if match is None:
        return None
    return WatchRule(path=match.group(1), action=match.group(2))


def parse(ruleset_path: str | Path = DEFAULT_AUDIT_RULES) -> list[WatchRule]:
    """Extract ``-w <path> ... -p <perms>`` watches from an auditd ruleset."""
    path = Path(ruleset_path)
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigUnreadable(str(path), exc.strerror or exc.__class__.__name__) from exc

    rules: list[WatchRule] = []
    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        rule = parse_line(raw_line)
        if rule is not None:
            rules.append(rule)
    logger.debug("parsed %d watch rules from %s", len(rules), path)
    return rules
