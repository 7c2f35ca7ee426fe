"""Logged-in users and the login watch.

:class:`LoginWatcher` polls the login records once per interval and fires an
action for every login newer than its watermark. After a tick with at least
one match the watermark jumps to the current time, so a login that stays in
the table does not fire again. Two logins by the same user inside one
interval are reported once.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable

from host_probe.errors import CallbackFailure, SourceUnavailable
from host_probe.models import LoginRecord
from host_probe.sources import EvidenceSources

logger = logging.getLogger("host_probe.logins")

ANY_USER = "*"
DEFAULT_INTERVAL_SECONDS = 1.0

LoginAction = Callable[[str], Any]


class WatchState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


def list_login_records(sources: EvidenceSources | None = None) -> list[LoginRecord]:
    return (sources or EvidenceSources()).list_login_records()


def logged_in(sources: EvidenceSources | None = None) -> list[LoginRecord]:
    try:
        return list_login_records(sources)
    except SourceUnavailable as exc:
        logger.warning("login records unavailable: %s", exc)
        return []


class LoginWatcher:
    def __init__(
        self,
        target_user: str,
        on_match: LoginAction,
        sources: EvidenceSources | None = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not target_user:
            raise ValueError("target_user cannot be empty")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.target_user = target_user
        self.on_match = on_match
        self.sources = sources or EvidenceSources()
        self.interval = interval
        self._clock = clock
        self._watermark: float | None = None
        self.state = WatchState.IDLE

    @property
    def watermark(self) -> float | None:
        return self._watermark

    def start(self) -> None:
        if self._watermark is not None:
            return
        self._watermark = self._clock()
        logger.info("watching for logins by %r after %s", self.target_user, self._watermark)

    def _wanted(self, record: LoginRecord) -> bool:
        return self.target_user == ANY_USER or record.user == self.target_user

    def _fire(self, user: str) -> None:
        try:
            outcome = self.on_match(user)
        except Exception as exc:
            logger.exception("%s", CallbackFailure(user, exc), extra={"user": user})
            return
        logger.debug("login action for %r returned %r", user, outcome)

    def tick(self) -> int:
        """Poll once and return how many logins fired the action."""
        self.start()
        self.state = WatchState.POLLING
        try:
            records = list_login_records(self.sources)
        except SourceUnavailable as exc:
            logger.warning("login poll skipped: %s", exc)
            return 0

        watermark = self._watermark
        fired = 0
        for record in records:
            if record.login_time <= watermark or not self._wanted(record):
                continue
            fired += 1
            logger.info(
                "login detected: %s",
                record.user,
                extra={"user": record.user, "line": record.line, "host": record.host, "login_time": record.login_time},
            )
            self._fire(record.user)

        if fired:
            self._watermark = max(watermark, self._clock())
        return fired

    def run(self, stop_event: threading.Event) -> None:
        self.start()
        while not stop_event.wait(timeout=self.interval):
            self.tick()
        logger.info("login watch for %r stopped", self.target_user)


def watch(
    target_user: str,
    on_match: LoginAction,
    stop_event: threading.Event | None = None,
    sources: EvidenceSources | None = None,
    interval: float = DEFAULT_INTERVAL_SECONDS,
) -> None:
    """Block until ``stop_event`` is set, firing ``on_match`` for each new login."""
    watcher = LoginWatcher(target_user, on_match, sources=sources, interval=interval)
    watcher.run(stop_event or threading.Event())
