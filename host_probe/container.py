from __future__ import annotations

import logging

from host_probe.errors import SourceUnavailable
from host_probe.models import ContainerVerdict
from host_probe.sources import EvidenceSources

logger = logging.getLogger("host_probe.container")

MAX_CONTAINER_PROCESSES = 10
CONTAINER_MARKERS = ("/.dockerenv", "/run/.containerenv")


def _cgroup_reasons(text: str) -> list[str]:
    for line in text.split("\n"):
        if line == "":
            break
        if "docker" in line:
            return [f"init cgroup mentions docker: {line}"]
        if not line.endswith(":/"):
            return [f"init cgroup is not the root group: {line}"]
    return []


def detect_container(sources: EvidenceSources | None = None) -> ContainerVerdict:
    """Guess whether this host is a container from init's cgroup and process count."""
    sources = sources or EvidenceSources()
    reasons: list[str] = []

    try:
        process_count = len(sources.list_processes())
    except SourceUnavailable as exc:
        logger.warning("process table unavailable for container check: %s", exc)
    else:
        if process_count <= MAX_CONTAINER_PROCESSES:
            reasons.append(f"only {process_count} processes running")

    try:
        reasons.extend(_cgroup_reasons(sources.read_init_cgroup()))
    except SourceUnavailable as exc:
        logger.debug("init cgroup unavailable: %s", exc)

    for marker in CONTAINER_MARKERS:
        if sources.file_exists(marker):
            reasons.append(f"container marker present: {marker}")

    return ContainerVerdict(is_container=bool(reasons), reasons=reasons)
