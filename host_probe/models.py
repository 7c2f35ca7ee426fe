from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DetectorKind(str, Enum):
    OSSEC = "ossec"
    SOPHOS = "sophos"


class KeyClass(str, Enum):
    NOT_KEY = "not_key"
    KEY = "key"
    ENCRYPTED_KEY = "encrypted_key"


class ProcessEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pid: int
    name: str


class KernelModule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    size: int = 0
    address: str = ""


class DetectorDescriptor(BaseModel):
    """Evidence one monitored product leaves on a host.

    Matched paths keep declaration order; matched processes and modules
    follow the order of the snapshot they were found in.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: DetectorKind
    name: str = Field(min_length=1)
    paths: tuple[str, ...] = ()
    process_names: tuple[str, ...] = ()
    kernel_modules: tuple[str, ...] = ()

    def candidate_paths(self) -> tuple[str, ...]:
        return self.paths

    def candidate_processes(self) -> tuple[str, ...]:
        return self.process_names

    def candidate_kernel_modules(self) -> tuple[str, ...]:
        return self.kernel_modules


class DetectionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    paths: list[str] = Field(default_factory=list)
    processes: list[ProcessEntry] = Field(default_factory=list)
    kernel_modules: list[KernelModule] = Field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.paths or self.processes or self.kernel_modules)


class PrivateKeyRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    encrypted: bool


class LoginRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user: str
    line: str = ""
    host: str = ""
    pid: int | None = None
    login_time: int


class WatchRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    action: str


class Connection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    protocol: str
    family: str
    local_ip: str
    local_port: int
    remote_ip: str
    remote_port: int
    state: str
    pid: int | None = None


class Neighbor(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ip: str
    mac: str
    device: str = ""
    family: str = "ipv4"


class ContainerVerdict(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_container: bool
    reasons: list[str] = Field(default_factory=list)


class ProbeReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    generated_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    container: ContainerVerdict | None = None
    private_keys: list[PrivateKeyRecord] | None = None
    antivirus: list[DetectionResult] | None = None
    connections: list[Connection] | None = None
    watch_rules: list[WatchRule] | None = None
    watch_rules_error: str | None = None
    neighbors: list[Neighbor] | None = None
    logins: list[LoginRecord] | None = None
