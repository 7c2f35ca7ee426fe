"""Point-in-time host security posture probe."""

from host_probe.credentials import scan
from host_probe.discoverers import DETECTORS, evaluate
from host_probe.logins import LoginWatcher, watch
from host_probe.watchrules import parse

__all__ = [
    "DETECTORS",
    "LoginWatcher",
    "evaluate",
    "parse",
    "scan",
    "watch",
]
