from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

from host_probe.config import ProbeConfig
from host_probe.container import detect_container
from host_probe.credentials import scan_many
from host_probe.discoverers import DETECTORS, evaluate
from host_probe.errors import ConfigUnreadable
from host_probe.logins import logged_in
from host_probe.models import ProbeReport
from host_probe.network import established_connections, neighbors
from host_probe.sources import EvidenceSources
from host_probe.watchrules import parse

logger = logging.getLogger("host_probe.probe")


class Section(str, Enum):
    CONTAINER = "container"
    PKEYS = "pkeys"
    AV = "av"
    NET = "net"
    WATCHES = "watches"
    ARP = "arp"
    WHO = "who"


def _watch_rules(config: ProbeConfig, report: ProbeReport) -> None:
    try:
        report.watch_rules = parse(Path(config.audit_rules_path))
    except ConfigUnreadable as exc:
        logger.warning("watch rules unavailable: %s", exc)
        report.watch_rules_error = str(exc)


def _section_runners(config: ProbeConfig, sources: EvidenceSources) -> dict[Section, Callable[[ProbeReport], Any]]:
    def _set(field: str, loader: Callable[[], Any]) -> Callable[[ProbeReport], None]:
        def _run(report: ProbeReport) -> None:
            setattr(report, field, loader())

        return _run

    return {
        Section.CONTAINER: _set("container", lambda: detect_container(sources)),
        Section.PKEYS: _set(
            "private_keys",
            lambda: scan_many(config.key_dirs, inter_file_delay=config.key_scan_delay_seconds),
        ),
        Section.AV: _set("antivirus", lambda: evaluate(DETECTORS, sources)),
        Section.NET: _set("connections", lambda: established_connections(sources)),
        Section.WATCHES: lambda report: _watch_rules(config, report),
        Section.ARP: _set("neighbors", lambda: neighbors(sources)),
        Section.WHO: _set("logins", lambda: logged_in(sources)),
    }


def run_probe(
    config: ProbeConfig,
    sections: Iterable[Section] = tuple(Section),
    sources: EvidenceSources | None = None,
) -> ProbeReport:
    """Collect the selected sections into one report.

    A section that fails is logged and left empty; the others still run.
    """
    owned = sources is None
    live = sources or EvidenceSources(timeout=config.source_timeout_seconds)
    runners = _section_runners(config, live)
    selected = set(sections)
    report = ProbeReport()
    try:
        for section in Section:
            if section not in selected:
                continue
            try:
                runners[section](report)
            except Exception:
                logger.exception("probe section failed: %s", section.value, extra={"section": section.value})
    finally:
        if owned:
            live.close()
    return report
