from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_DATA_DIR = Path.home() / ".host_probe"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.toml"


class ProbeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    key_dirs: list[str] = Field(default_factory=lambda: ["/root", "/home"])
    key_scan_delay_ms: int = Field(default=0, ge=0, le=60_000)
    audit_rules_path: str = "/etc/audit/audit.rules"
    watch_interval_seconds: float = Field(default=1.0, gt=0, le=60)
    source_timeout_seconds: float = Field(default=5.0, gt=0, le=120)

    @field_validator("key_dirs", mode="before")
    @classmethod
    def normalize_key_dirs(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("key_dirs")
    @classmethod
    def expand_key_dirs(cls, value: list[str]) -> list[str]:
        return [str(Path(item).expanduser()) for item in value]

    @field_validator("watch_interval_seconds", "source_timeout_seconds", mode="before")
    @classmethod
    def accept_int_seconds(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    @property
    def key_scan_delay_seconds(self) -> float:
        return self.key_scan_delay_ms / 1000.0


def _env_overrides() -> dict[str, Any]:
    mapping: dict[str, tuple[str, str]] = {
        "HOST_PROBE_KEY_DIRS": ("key_dirs", "list"),
        "HOST_PROBE_KEY_SCAN_DELAY_MS": ("key_scan_delay_ms", "int"),
        "HOST_PROBE_AUDIT_RULES": ("audit_rules_path", "str"),
        "HOST_PROBE_WATCH_INTERVAL": ("watch_interval_seconds", "float"),
        "HOST_PROBE_SOURCE_TIMEOUT": ("source_timeout_seconds", "float"),
    }
    out: dict[str, Any] = {}
    for env_name, (field_name, kind) in mapping.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        if kind == "int":
            out[field_name] = int(raw)
        elif kind == "float":
            out[field_name] = float(raw)
        elif kind == "list":
            out[field_name] = [item.strip() for item in raw.split(",") if item.strip()]
        else:
            out[field_name] = raw
    return out


def secure_path(path: Path, mode: int) -> None:
    path.chmod(mode)
    actual = stat.S_IMODE(path.stat().st_mode)
    if actual != mode:
        raise PermissionError(f"failed to enforce permissions {oct(mode)} on {path}")


def default_config_toml() -> str:
    return """key_dirs = [\"/root\", \"/home\"]
key_scan_delay_ms = 0
audit_rules_path = \"/etc/audit/audit.rules\"
watch_interval_seconds = 1.0
source_timeout_seconds = 5.0
"""


def init_config(config_path: Path = DEFAULT_CONFIG_PATH) -> Path:
    requested = config_path.expanduser()
    if requested.parent.is_symlink():
        raise ValueError(f"refusing symlinked data directory: {requested.parent}")
    if requested.is_symlink():
        raise ValueError(f"refusing symlinked config file: {requested}")

    path = requested.resolve(strict=False)
    data_dir = path.parent
    data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    secure_path(data_dir, 0o700)

    if not path.exists():
        path.write_text(default_config_toml(), encoding="utf-8")
    secure_path(path, 0o600)
    return path


def load_config(config_path: Path | None = None) -> ProbeConfig:
    path = (config_path or DEFAULT_CONFIG_PATH).expanduser().resolve(strict=False)
    parsed: dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as handle:
                parsed = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"invalid config at {path}: {exc}") from exc
    try:
        parsed.update(_env_overrides())
        return ProbeConfig.model_validate(parsed)
    except (ValidationError, ValueError) as exc:
        raise ValueError(f"invalid config at {path}: {exc}") from exc
