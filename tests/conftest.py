from __future__ import annotations

from typing import Callable

import pytest

from host_probe.errors import SourceUnavailable
from host_probe.models import Connection, KernelModule, LoginRecord, Neighbor, ProcessEntry


class FakeSources:
    """In-memory stand-in for :class:`host_probe.sources.EvidenceSources`."""

    def __init__(self) -> None:
        self.processes: list[ProcessEntry] = []
        self.existing: set[str] = set()
        self.modules: list[KernelModule] = []
        self.connections: dict[str, list[Connection]] = {}
        self.arp: list[Neighbor] = []
        self.logins: list[LoginRecord] = []
        self.cgroup = "0::/\n"
        self.failing: set[str] = set()
        self.calls: dict[str, int] = {}
        self.on_login_poll: Callable[[], None] | None = None

    def _enter(self, source: str) -> None:
        self.calls[source] = self.calls.get(source, 0) + 1
        if source in self.failing:
            raise SourceUnavailable(source, "simulated failure")

    def list_processes(self) -> list[ProcessEntry]:
        self._enter("process_table")
        return list(self.processes)

    def file_exists(self, path: str) -> bool:
        return path in self.existing

    def list_connections(self, kind: str) -> list[Connection]:
        self._enter(f"connections_{kind}")
        return list(self.connections.get(kind, []))

    def list_neighbors(self, family: str) -> list[Neighbor]:
        self._enter(f"neighbors_{family}")
        return [entry for entry in self.arp if entry.family == family]

    def list_login_records(self) -> list[LoginRecord]:
        self._enter("login_records")
        if self.on_login_poll is not None:
            self.on_login_poll()
        return list(self.logins)

    def list_kernel_modules(self) -> list[KernelModule]:
        self._enter("kernel_modules")
        return list(self.modules)

    def read_init_cgroup(self) -> str:
        self._enter("init_cgroup")
        return self.cgroup


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def sources() -> FakeSources:
    return FakeSources()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(1_000.0)
