from __future__ import annotations

import logging
import threading

import pytest

from host_probe.logins import ANY_USER, LoginWatcher, WatchState, logged_in, watch
from host_probe.models import LoginRecord


def _login(user: str, login_time: int, line: str = "pts/0") -> LoginRecord:
    return LoginRecord(user=user, line=line, host="10.0.0.5", pid=4242, login_time=login_time)


def test_watcher_starts_idle_with_no_watermark(sources, clock) -> None:
    watcher = LoginWatcher("alice", lambda user: None, sources=sources, clock=clock)
    assert watcher.state is WatchState.IDLE
    assert watcher.watermark is None

    watcher.start()
    assert watcher.watermark == 1_000.0
    assert watcher.state is WatchState.IDLE


def test_old_login_does_not_trigger(sources, clock) -> None:
    fired: list[str] = []
    sources.logins = [_login("alice", 900)]
    watcher = LoginWatcher("alice", fired.append, sources=sources, clock=clock)
    watcher.start()

    clock.now = 1_001.0
    assert watcher.tick() == 0
    clock.now = 1_002.0
    assert watcher.tick() == 0
    assert fired == []
    assert watcher.state is WatchState.POLLING
    assert watcher.watermark == 1_000.0


def test_new_login_fires_once(sources, clock) -> None:
    fired: list[str] = []
    watcher = LoginWatcher("alice", fired.append, sources=sources, clock=clock)
    watcher.start()

    sources.logins = [_login("bob", 1_005), _login("alice", 1_005)]
    clock.now = 1_006.0
    assert watcher.tick() == 1
    assert fired == ["alice"]
    assert watcher.watermark == 1_006.0

    clock.now = 1_007.0
    assert watcher.tick() == 0
    clock.now = 1_008.0
    assert watcher.tick() == 0
    assert fired == ["alice"]


def test_detected_login_is_logged_with_session_fields(sources, clock, caplog: pytest.LogCaptureFixture) -> None:
    watcher = LoginWatcher("alice", lambda user: None, sources=sources, clock=clock)
    watcher.start()
    sources.logins = [_login("alice", 1_005, line="pts/3")]
    clock.now = 1_006.0

    with caplog.at_level(logging.INFO, logger="host_probe.logins"):
        watcher.tick()

    detected = [record for record in caplog.records if record.getMessage() == "login detected: alice"]
    assert len(detected) == 1
    assert (detected[0].user, detected[0].line, detected[0].host, detected[0].login_time) == ("alice", "pts/3", "10.0.0.5", 1_005)


def test_login_at_watermark_second_is_not_new(sources, clock) -> None:
    fired: list[str] = []
    watcher = LoginWatcher("alice", fired.append, sources=sources, clock=clock)
    watcher.start()

    sources.logins = [_login("alice", 1_000)]
    assert watcher.tick() == 0
    assert fired == []


def test_wildcard_fires_once_per_record_in_one_tick(sources, clock) -> None:
    fired: list[str] = []
    watcher = LoginWatcher(ANY_USER, fired.append, sources=sources, clock=clock)
    watcher.start()

    sources.logins = [
        _login("root", 950),
        _login("bob", 1_003, line="pts/1"),
        _login("carol", 1_004, line="pts/2"),
    ]
    clock.now = 1_010.0
    assert watcher.tick() == 2
    assert fired == ["bob", "carol"]

    clock.now = 1_011.0
    assert watcher.tick() == 0
    assert fired == ["bob", "carol"]


def test_later_login_after_debounce_fires_again(sources, clock) -> None:
    fired: list[str] = []
    watcher = LoginWatcher("alice", fired.append, sources=sources, clock=clock)
    watcher.start()

    sources.logins = [_login("alice", 1_002)]
    clock.now = 1_003.0
    watcher.tick()

    sources.logins = [_login("alice", 1_002), _login("alice", 1_010, line="pts/3")]
    clock.now = 1_011.0
    assert watcher.tick() == 1
    assert fired == ["alice", "alice"]


def test_failing_action_does_not_stop_polling(sources, clock, caplog: pytest.LogCaptureFixture) -> None:
    seen: list[str] = []

    def _action(user: str) -> None:
        seen.append(user)
        if user == "bob":
            raise RuntimeError("notify failed")

    watcher = LoginWatcher(ANY_USER, _action, sources=sources, clock=clock)
    watcher.start()
    sources.logins = [_login("bob", 1_001), _login("carol", 1_002)]
    clock.now = 1_005.0

    with caplog.at_level(logging.ERROR, logger="host_probe.logins"):
        assert watcher.tick() == 2

    assert seen == ["bob", "carol"]
    assert watcher.watermark == 1_005.0
    assert "login action for 'bob' failed" in caplog.text

    clock.now = 1_006.0
    assert watcher.tick() == 0


def test_source_failure_keeps_watermark(sources, clock) -> None:
    fired: list[str] = []
    watcher = LoginWatcher("alice", fired.append, sources=sources, clock=clock)
    watcher.start()
    sources.logins = [_login("alice", 1_002)]
    sources.failing = {"login_records"}

    clock.now = 1_003.0
    assert watcher.tick() == 0
    assert watcher.watermark == 1_000.0

    sources.failing = set()
    clock.now = 1_004.0
    assert watcher.tick() == 1
    assert fired == ["alice"]


def test_watermark_never_moves_backwards(sources, clock) -> None:
    watcher = LoginWatcher("alice", lambda user: None, sources=sources, clock=clock)
    watcher.start()
    sources.logins = [_login("alice", 1_004)]

    clock.now = 990.0
    assert watcher.tick() == 1
    assert watcher.watermark == 1_000.0


def test_watcher_rejects_bad_arguments(sources) -> None:
    with pytest.raises(ValueError):
        LoginWatcher("", lambda user: None, sources=sources)
    with pytest.raises(ValueError):
        LoginWatcher("alice", lambda user: None, sources=sources, interval=0)


def test_run_stops_when_event_is_set(sources) -> None:
    stop_event = threading.Event()
    fired: list[str] = []

    def _action(user: str) -> None:
        fired.append(user)
        stop_event.set()

    def _new_login() -> None:
        if not sources.logins:
            sources.logins = [_login("alice", 4_000_000_000)]

    sources.on_login_poll = _new_login
    watcher = LoginWatcher("alice", _action, sources=sources, interval=0.01)
    runner = threading.Thread(target=watcher.run, args=(stop_event,), daemon=True)
    runner.start()
    runner.join(timeout=5)

    assert not runner.is_alive()
    assert fired == ["alice"]


def test_run_with_preset_event_never_polls(sources) -> None:
    stop_event = threading.Event()
    stop_event.set()
    watcher = LoginWatcher("alice", lambda user: None, sources=sources, interval=0.01)
    watcher.run(stop_event)

    assert watcher.state is WatchState.IDLE
    assert "login_records" not in sources.calls


def test_watch_blocks_until_cancelled(sources) -> None:
    stop_event = threading.Event()
    timer = threading.Timer(0.05, stop_event.set)
    timer.start()
    try:
        watch("alice", lambda user: None, stop_event=stop_event, sources=sources, interval=0.01)
    finally:
        timer.cancel()
    assert sources.calls.get("login_records", 0) >= 1


def test_logged_in_degrades_to_empty(sources) -> None:
    sources.logins = [_login("alice", 1_000)]
    assert logged_in(sources) == [_login("alice", 1_000)]

    sources.failing = {"login_records"}
    assert logged_in(sources) == []
