from __future__ import annotations

import logging

import psutil

from host_probe.errors import SourceUnavailable
from host_probe.models import Connection, Neighbor
from host_probe.sources import CONNECTION_KINDS, NEIGHBOR_FAMILIES, EvidenceSources

logger = logging.getLogger("host_probe.network")

INCOMPLETE_MAC = "00:00:00:00:00:00"


def _is_established(conn: Connection) -> bool:
    if conn.protocol == "udp":
        # psutil reports no state for UDP; a connected socket has a peer.
        return bool(conn.remote_ip) and conn.remote_port != 0
    return conn.state == psutil.CONN_ESTABLISHED


def established_connections(sources: EvidenceSources | None = None) -> list[Connection]:
    sources = sources or EvidenceSources()
    found: list[Connection] = []
    for kind in CONNECTION_KINDS:
        try:
            conns = sources.list_connections(kind)
        except SourceUnavailable as exc:
            logger.warning("%s connection table unavailable: %s", kind, exc)
            continue
        found.extend(conn for conn in conns if _is_established(conn))
    return found


def neighbors(sources: EvidenceSources | None = None) -> list[Neighbor]:
    sources = sources or EvidenceSources()
    found: list[Neighbor] = []
    for family in NEIGHBOR_FAMILIES:
        try:
            entries = sources.list_neighbors(family)
        except SourceUnavailable as exc:
            logger.warning("%s neighbor table unavailable: %s", family, exc)
            continue
        found.extend(entry for entry in entries if entry.mac != INCOMPLETE_MAC)
    return found
