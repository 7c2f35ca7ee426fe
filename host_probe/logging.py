"""Log output for host_probe.

Modules attach structured fields with ``extra=`` (``path``, ``user``,
``host``, ``detector``, ``source`` and so on). Those values come from the
host itself: utmp hosts, usernames and file names are attacker-influenced, so
strings are stripped of control characters and truncated before they reach
the log stream. Fields that could carry key material are never written.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import UTC, datetime
from typing import Any

MAX_FIELD_LEN = 1024
REDACTED = "[REDACTED]"

_CONTROL_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")
_KEY_MATERIAL_RE = re.compile(r"(passphrase|password|private_key|key_material|pem)", re.IGNORECASE)
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def clean_field(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return _CONTROL_RE.sub("", value)[:MAX_FIELD_LEN]
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [clean_field(item) for item in value]
    return clean_field(str(value))


def structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key.startswith("_") or key in _STANDARD_ATTRS:
            continue
        fields[key] = REDACTED if _KEY_MATERIAL_RE.search(key) else clean_field(value)
    return fields


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(structured_fields(record))
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """Plain lines with structured fields appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = structured_fields(record)
        if not fields:
            return line
        suffix = " ".join(f"{key}={json.dumps(value, ensure_ascii=True)}" for key, value in fields.items())
        return f"{line} {suffix}"


def configure_logging(verbose: bool = False) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # stdout carries the report; logs go to stderr.
    handler = logging.StreamHandler()
    if os.getenv("HOST_PROBE_LOG_FORMAT", "json").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)
