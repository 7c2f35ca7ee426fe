from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import Any

from host_probe.config import DEFAULT_CONFIG_PATH, ProbeConfig, init_config, load_config
from host_probe.logging import configure_logging
from host_probe.logins import LoginWatcher
from host_probe.probe import Section, run_probe
from host_probe.render import render_text
from host_probe.sources import EvidenceSources

logger = logging.getLogger("host_probe")


def _load(config_path: str | None) -> ProbeConfig:
    return load_config(Path(config_path).expanduser() if config_path else None)


def _selected_sections(args: argparse.Namespace) -> list[Section]:
    if args.all:
        return list(Section)
    return [section for section in Section if getattr(args, section.value, False)]


def cmd_init(args: argparse.Namespace) -> int:
    path = init_config(Path(args.config).expanduser() if args.config else DEFAULT_CONFIG_PATH)
    print(f"initialized config: {path}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        config = _load(args.config)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    sections = _selected_sections(args)
    if not sections:
        logger.error("no probe sections selected; pass --all or one of the section flags")
        return 2

    report = run_probe(config, sections)
    if args.json:
        print(report.model_dump_json(indent=2, exclude_none=True))
    else:
        print(render_text(report))
    return 0


def _register_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum: int, frame: Any) -> None:
        del frame
        logger.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def cmd_watch(args: argparse.Namespace) -> int:
    try:
        config = _load(args.config)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    def _announce(user: str) -> None:
        print(f"User logged in! {user}", flush=True)

    sources = EvidenceSources(timeout=config.source_timeout_seconds)
    watcher = LoginWatcher(args.user, _announce, sources=sources, interval=config.watch_interval_seconds)
    stop_event = threading.Event()
    _register_signal_handlers(stop_event)
    try:
        watcher.run(stop_event)
    finally:
        sources.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="host-probe")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="write a default config file")
    init_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    init_parser.set_defaults(func=cmd_init)

    run_parser = subparsers.add_parser("run", help="collect a one-shot host report")
    run_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    run_parser.add_argument("--all", action="store_true", help="run every section")
    run_parser.add_argument("--container", action="store_true", help="detect if running in a container")
    run_parser.add_argument("--pkeys", action="store_true", help="detect readable private keys")
    run_parser.add_argument("--av", action="store_true", help="check for antivirus services")
    run_parser.add_argument("--net", action="store_true", help="list established IPv4/IPv6 connections")
    run_parser.add_argument("--watches", action="store_true", help="list auditd filesystem watches")
    run_parser.add_argument("--arp", action="store_true", help="list the ARP neighbor table")
    run_parser.add_argument("--who", action="store_true", help="list logged-in users")
    run_parser.add_argument("--json", action="store_true", help="emit the report as JSON")
    run_parser.set_defaults(func=cmd_run)

    watch_parser = subparsers.add_parser("watch", help="wait for a user to log in")
    watch_parser.add_argument("user", help='username to wait for, or "*" for any user')
    watch_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    watch_parser.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=bool(args.verbose))
    return int(args.func(args))
