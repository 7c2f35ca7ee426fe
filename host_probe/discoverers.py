from __future__ import annotations

import logging
from typing import Callable, Protocol, Sequence, TypeVar

from host_probe.errors import SourceUnavailable
from host_probe.models import (
    DetectionResult,
    DetectorDescriptor,
    DetectorKind,
    KernelModule,
    ProcessEntry,
)
from host_probe.sources import EvidenceSources

logger = logging.getLogger("host_probe.discoverers")

T = TypeVar("T")


class Discoverer(Protocol):
    name: str

    def candidate_paths(self) -> Sequence[str]:
        """Filesystem paths whose presence indicates the product."""

    def candidate_processes(self) -> Sequence[str]:
        """Executable names of the product's daemons."""

    def candidate_kernel_modules(self) -> Sequence[str]:
        """Kernel modules the product loads; empty when it has none."""


OSSEC = DetectorDescriptor(
    kind=DetectorKind.OSSEC,
    name="OSSEC",
    paths=("/var/ossec",),
    process_names=("ossec-agentd", "ossec-syscheckd"),
)

SOPHOS = DetectorDescriptor(
    kind=DetectorKind.SOPHOS,
    name="Sophos",
    paths=(
        "/etc/init.d/sav-protect",
        "/etc/init.d/sav-rms",
        "/lib/systemd/system/sav-protect.service",
        "/lib/systemd/system/sav-rms.service",
        "/opt/sophos-av",
    ),
    process_names=("savd", "savscand"),
    kernel_modules=("talpa_core", "talpa_linux"),
)

DETECTORS: tuple[DetectorDescriptor, ...] = (OSSEC, SOPHOS)


def existing_paths(candidates: Sequence[str], sources: EvidenceSources) -> list[str]:
    found: list[str] = []
    for path in candidates:
        try:
            if sources.file_exists(path):
                found.append(path)
        except OSError:
            continue
    return found


def running_processes(candidates: Sequence[str], snapshot: Sequence[ProcessEntry]) -> list[ProcessEntry]:
    wanted = set(candidates)
    return [entry for entry in snapshot if entry.name in wanted]


def loaded_modules(candidates: Sequence[str], snapshot: Sequence[KernelModule]) -> list[KernelModule]:
    wanted = set(candidates)
    return [module for module in snapshot if module.name in wanted]


def _snapshot(label: str, loader: Callable[[], Sequence[T]]) -> list[T]:
    try:
        return list(loader())
    except SourceUnavailable as exc:
        logger.warning("%s snapshot unavailable, treating as empty: %s", label, exc, extra={"source": exc.source})
        return []


def detect(
    discoverer: Discoverer,
    sources: EvidenceSources,
    processes: Sequence[ProcessEntry],
    modules: Sequence[KernelModule],
) -> DetectionResult:
    return DetectionResult(
        name=discoverer.name,
        paths=existing_paths(discoverer.candidate_paths(), sources),
        processes=running_processes(discoverer.candidate_processes(), processes),
        kernel_modules=loaded_modules(discoverer.candidate_kernel_modules(), modules),
    )


def evaluate(
    detectors: Sequence[Discoverer] = DETECTORS,
    sources: EvidenceSources | None = None,
) -> list[DetectionResult]:
    """Run every detector against one snapshot of the host.

    Only detectors with at least one matching path, process or module are
    returned, in the order given.
    """
    sources = sources or EvidenceSources()
    processes = _snapshot("process table", sources.list_processes)
    modules = _snapshot("kernel module", sources.list_kernel_modules)

    results: list[DetectionResult] = []
    for discoverer in detectors:
        try:
            result = detect(discoverer, sources, processes, modules)
        except Exception:
            name = getattr(discoverer, "name", repr(discoverer))
            logger.exception("detector failed: %s", name, extra={"detector": name})
            continue
        if result.matched:
            logger.info(
                "detector matched: %s",
                result.name,
                extra={
                    "detector": result.name,
                    "paths": result.paths,
                    "processes": [entry.name for entry in result.processes],
                    "kernel_modules": [entry.name for entry in result.kernel_modules],
                },
            )
            results.append(result)
    return results
