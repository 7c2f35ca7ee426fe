"""Evidence sources: point-in-time snapshots of host state.

Every snapshot method runs through :class:`SnapshotRunner`, which bounds the
call with a timeout and turns any failure into :class:`SourceUnavailable`.
Callers decide whether that means "no matches" or something worse.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, TypeVar

import psutil

from host_probe.errors import SourceUnavailable
from host_probe.models import Connection, KernelModule, LoginRecord, Neighbor, ProcessEntry

logger = logging.getLogger("host_probe.sources")

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 5.0
CONNECTION_KINDS = ("tcp4", "udp4", "tcp6", "udp6")
NEIGHBOR_FAMILIES = ("ipv4", "ipv6")
MAX_PROC_FILE_BYTES = 1_000_000
IP_BIN_CANDIDATES = ("/usr/sbin/ip", "/sbin/ip", "/usr/bin/ip", "/bin/ip")


def _describe(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


class SnapshotRunner:
    """Runs adapters on one worker thread per source, bounded by ``timeout``.

    A hung adapter is never killed. Until it returns, further calls for the
    same source fail fast instead of queueing behind it, so a stuck source
    holds at most one thread.
    """

    def __init__(self, timeout: float | None = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout
        self._lock = threading.Lock()
        self._executors: dict[str, ThreadPoolExecutor] = {}
        self._pending: dict[str, Future[Any]] = {}

    def _submit(self, source: str, func: Callable[..., T], *args: Any) -> Future[T]:
        with self._lock:
            pending = self._pending.get(source)
            if pending is not None and not pending.done():
                raise SourceUnavailable(source, "previous snapshot still running")
            executor = self._executors.get(source)
            if executor is None:
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"host-probe-{source}")
                self._executors[source] = executor
            future = executor.submit(func, *args)
            self._pending[source] = future
            return future

    def fetch(self, source: str, func: Callable[..., T], *args: Any) -> T:
        if self.timeout is None:
            try:
                return func(*args)
            except Exception as exc:
                raise SourceUnavailable(source, _describe(exc)) from exc

        future = self._submit(source, func, *args)
        try:
            return future.result(timeout=self.timeout)
        except Exception as exc:
            if not future.done():
                raise SourceUnavailable(source, f"timed out after {self.timeout:g}s") from None
            raise SourceUnavailable(source, _describe(exc)) from exc

    def close(self) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
            self._pending.clear()
        for executor in executors:
            executor.shutdown(wait=False, cancel_futures=True)


def parse_kernel_modules(text: str) -> list[KernelModule]:
    modules: list[KernelModule] = []
    for raw_line in text.splitlines():
        parts = raw_line.split()
        if len(parts) < 2:
            continue
        try:
            size = int(parts[1])
        except ValueError:
            continue
        address = parts[5] if len(parts) >= 6 else ""
        modules.append(KernelModule(name=parts[0], size=size, address=address))
    return modules


def parse_arp_table(text: str) -> list[Neighbor]:
    neighbors: list[Neighbor] = []
    lines = text.splitlines()
    for raw_line in lines[1:]:
        parts = raw_line.split()
        if len(parts) < 6:
            continue
        neighbors.append(Neighbor(ip=parts[0], mac=parts[3].lower(), device=parts[5], family="ipv4"))
    return neighbors


def parse_ip_neigh_json(text: str) -> list[Neighbor]:
    """Parse ``ip -j neigh show`` output.

    Entries without a link-layer address (FAILED, INCOMPLETE) are dropped.
    """
    if not text.strip():
        return []
    entries = json.loads(text)
    if not isinstance(entries, list):
        raise ValueError("ip neigh output is not a list")

    neighbors: list[Neighbor] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        dst = str(entry.get("dst") or "")
        lladdr = str(entry.get("lladdr") or "")
        if not dst or not lladdr:
            continue
        neighbors.append(
            Neighbor(
                ip=dst,
                mac=lladdr.lower(),
                device=str(entry.get("dev") or ""),
                family="ipv6" if ":" in dst else "ipv4",
            )
        )
    return neighbors


def _family_name(value: Any) -> str:
    if value == socket.AF_INET:
        return "ipv4"
    if value == socket.AF_INET6:
        return "ipv6"
    return str(value)


def _protocol_name(value: Any) -> str:
    if value == socket.SOCK_STREAM:
        return "tcp"
    if value == socket.SOCK_DGRAM:
        return "udp"
    return str(value)


def _ip_bin() -> str:
    for candidate in IP_BIN_CANDIDATES:
        if os.path.exists(candidate):
            return candidate
    raise FileNotFoundError("ip command not found")


class EvidenceSources:
    """Live host adapters backed by psutil, ``/proc`` and iproute2."""

    def __init__(self, timeout: float | None = DEFAULT_TIMEOUT_SECONDS, proc_root: Path = Path("/proc")) -> None:
        self.timeout = timeout
        self.proc_root = proc_root
        self._runner = SnapshotRunner(timeout)

    def close(self) -> None:
        self._runner.close()

    def _read_proc(self, relative: str) -> str:
        path = self.proc_root / relative
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            return handle.read(MAX_PROC_FILE_BYTES)

    def _ipv6_neighbors(self) -> list[Neighbor]:
        result = subprocess.run(
            [_ip_bin(), "-6", "-j", "neigh", "show"],
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout or DEFAULT_TIMEOUT_SECONDS,
        )
        if result.returncode != 0:
            raise RuntimeError(f"ip neigh exited {result.returncode}: {result.stderr.strip()}")
        return [entry for entry in parse_ip_neigh_json(result.stdout) if entry.family == "ipv6"]

    def _processes(self) -> list[ProcessEntry]:
        entries: list[ProcessEntry] = []
        for proc in psutil.process_iter(attrs=["pid", "name"]):
            info = proc.info
            name = info.get("name")
            if not name:
                continue
            entries.append(ProcessEntry(pid=int(info.get("pid") or 0), name=str(name)))
        return entries

    def _connections(self, kind: str) -> list[Connection]:
        out: list[Connection] = []
        for conn in psutil.net_connections(kind=kind):
            laddr = conn.laddr
            raddr = conn.raddr
            out.append(
                Connection(
                    protocol=_protocol_name(conn.type),
                    family=_family_name(conn.family),
                    local_ip=str(getattr(laddr, "ip", "") or ""),
                    local_port=int(getattr(laddr, "port", 0) or 0),
                    remote_ip=str(getattr(raddr, "ip", "") or ""),
                    remote_port=int(getattr(raddr, "port", 0) or 0),
                    state=str(conn.status or psutil.CONN_NONE),
                    pid=conn.pid,
                )
            )
        return out

    def _login_records(self) -> list[LoginRecord]:
        records: list[LoginRecord] = []
        for entry in psutil.users():
            records.append(
                LoginRecord(
                    user=str(entry.name or ""),
                    line=str(entry.terminal or ""),
                    host=str(entry.host or ""),
                    pid=getattr(entry, "pid", None),
                    login_time=int(entry.started),
                )
            )
        return records

    def list_processes(self) -> list[ProcessEntry]:
        return self._runner.fetch("process_table", self._processes)

    def file_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def list_connections(self, kind: str) -> list[Connection]:
        if kind not in CONNECTION_KINDS:
            raise ValueError(f"unsupported connection kind: {kind}")
        return self._runner.fetch(f"connections_{kind}", self._connections, kind)

    def list_neighbors(self, family: str) -> list[Neighbor]:
        if family not in NEIGHBOR_FAMILIES:
            raise ValueError(f"unsupported neighbor family: {family}")
        if family == "ipv4":
            text = self._runner.fetch("neighbors_ipv4", self._read_proc, "net/arp")
            return parse_arp_table(text)
        return self._runner.fetch("neighbors_ipv6", self._ipv6_neighbors)

    def list_login_records(self) -> list[LoginRecord]:
        return self._runner.fetch("login_records", self._login_records)

    def list_kernel_modules(self) -> list[KernelModule]:
        text = self._runner.fetch("kernel_modules", self._read_proc, "modules")
        return parse_kernel_modules(text)

    def read_init_cgroup(self) -> str:
        return self._runner.fetch("init_cgroup", self._read_proc, "1/cgroup")
