from __future__ import annotations


class ProbeError(Exception):
    pass


class SourceUnavailable(ProbeError):
    """An evidence source could not produce a snapshot."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class FileUnreadable(ProbeError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class ConfigUnreadable(ProbeError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"unable to open {path}: {reason}")
        self.path = path
        self.reason = reason


class CallbackFailure(ProbeError):
    def __init__(self, user: str, error: Exception) -> None:
        super().__init__(f"login action for {user!r} failed: {error.__class__.__name__}: {error}")
        self.user = user
        self.error = error
