from __future__ import annotations

import logging
import os
import re
import stat
import time
from pathlib import Path
from typing import Callable, Iterable

from host_probe.errors import FileUnreadable
from host_probe.models import KeyClass, PrivateKeyRecord

logger = logging.getLogger("host_probe.credentials")

HEADER_PREFIX_BYTES = 32
MAX_HEADER_BYTES = 128
MAX_LINE_BYTES = 4096

BEGIN_MARKER = b"-----BEGIN "
ENCRYPTED_MARKER = b"ENCRYPTED"

_HEADER_RE = re.compile(rb"-----BEGIN ((?:[A-Z0-9]+ )*)PRIVATE KEY-----\r?\n")


def classify_key_header(prefix: bytes) -> KeyClass:
    match = _HEADER_RE.match(prefix)
    if match is None:
        return KeyClass.NOT_KEY
    if ENCRYPTED_MARKER in match.group(1).split():
        return KeyClass.ENCRYPTED_KEY
    return KeyClass.KEY


def _next_line(rest: bytes, handle) -> bytes:
    newline_at = rest.find(b"\n")
    if newline_at != -1:
        return rest[: newline_at + 1]
    return rest + handle.readline(MAX_LINE_BYTES)


def read_private_key(path: str) -> PrivateKeyRecord | None:
    """Return a record when ``path`` starts with a PEM private key header.

    Raises :class:`FileUnreadable` on any I/O failure, including the file
    disappearing between listing and opening.
    """
    try:
        with open(path, "rb") as handle:
            prefix = handle.read(HEADER_PREFIX_BYTES)
            header, newline, rest = prefix.partition(b"\n")
            if newline:
                header_line = header + newline
            elif header.startswith(BEGIN_MARKER):
                # Headers such as OPENSSH run past the fixed prefix.
                header_line = prefix + handle.readline(MAX_HEADER_BYTES)
                rest = b""
            else:
                return None

            kind = classify_key_header(header_line)
            if kind is KeyClass.NOT_KEY:
                return None
            if kind is KeyClass.ENCRYPTED_KEY:
                return PrivateKeyRecord(path=path, encrypted=True)

            line = _next_line(rest, handle)
    except OSError as exc:
        raise FileUnreadable(path, exc.strerror or exc.__class__.__name__) from exc

    if not line.endswith(b"\n"):
        return None
    return PrivateKeyRecord(path=path, encrypted=line.rstrip(b"\r\n").endswith(ENCRYPTED_MARKER))


def _iter_regular_files(root: str) -> Iterable[str]:
    def _on_error(exc: OSError) -> None:
        logger.debug("skipping unreadable directory: %s", exc.strerror, extra={"path": exc.filename})

    try:
        root_stat = os.lstat(root)
    except OSError:
        return
    if stat.S_ISREG(root_stat.st_mode):
        yield root
        return
    if not stat.S_ISDIR(root_stat.st_mode):
        return

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            try:
                mode = os.lstat(path).st_mode
            except OSError:
                continue
            if stat.S_ISREG(mode):
                yield path


def scan(
    root: str | Path,
    inter_file_delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[PrivateKeyRecord]:
    """Walk ``root`` without following symlinks and collect private keys.

    ``inter_file_delay`` seconds are slept before every regular file is opened.
    """
    if inter_file_delay < 0:
        raise ValueError("inter_file_delay must be >= 0")

    records: list[PrivateKeyRecord] = []
    examined = 0
    for path in _iter_regular_files(os.fspath(root)):
        if inter_file_delay:
            sleep(inter_file_delay)
        examined += 1
        try:
            record = read_private_key(path)
        except FileUnreadable as exc:
            logger.debug("skipping file: %s", exc.reason, extra={"path": path})
            continue
        if record is not None:
            logger.info("private key found", extra={"path": path, "encrypted": record.encrypted})
            records.append(record)

    logger.debug(
        "key scan finished",
        extra={"root": os.fspath(root), "examined": examined, "found": len(records)},
    )
    return records


def scan_many(roots: Iterable[str | Path], inter_file_delay: float = 0.0) -> list[PrivateKeyRecord]:
    records: list[PrivateKeyRecord] = []
    for root in roots:
        records.extend(scan(root, inter_file_delay=inter_file_delay))
    return records
