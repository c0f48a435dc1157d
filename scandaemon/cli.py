import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .config import DEFAULT_SCAN_INTERVAL, MAX_PATTERNS, Settings
from .core.control_channel import ControlChannel
from .core.events.event_bus import DomainEventBus
from .core.exceptions import ConfigurationError, WorkerCreationError
from .domains.reporting.log_sink import ScanEventLogHandlers
from .domains.supervision.supervisor import ScanSupervisor
from .logging_config import setup_logging
from .utils.daemonize import daemonize


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scandaemon",
        description=(
            "Continuously search the filesystem for entry names containing the "
            "given fragments and report matches to syslog. "
            "SIGUSR1 restarts every scan, SIGUSR2 stops the current pass."
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics")
    parser.add_argument(
        "-i",
        "--interval",
        type=str,
        default=None,
        help=f"Seconds between scan passes (default {DEFAULT_SCAN_INTERVAL})",
    )
    parser.add_argument("--root", default=None, help="Directory to scan (default /)")
    parser.add_argument(
        "--foreground",
        action="store_true",
        help="Do not detach from the terminal; also log to the console",
    )
    parser.add_argument(
        "fragments",
        nargs="*",
        metavar="FRAGMENT",
        help=(
            f"Name fragments to search for (1-{MAX_PATTERNS}). A trailing "
            "argument starting with a digit is taken as the scan interval."
        ),
    )
    return parser


def parse_interval(value: str) -> int:
    try:
        seconds = int(value)
    except ValueError:
        raise ConfigurationError(f"invalid scan interval: {value!r}") from None
    if seconds <= 0:
        raise ConfigurationError(f"scan interval must be positive, got {seconds}")
    return seconds


def split_fragments(values: Sequence[str]) -> tuple:
    """Separate patterns from a positional interval (any token starting with a digit)."""
    patterns: List[str] = []
    interval: Optional[str] = None
    for value in values:
        if value[:1].isdigit():
            interval = value
        else:
            patterns.append(value)
    return patterns, interval


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """
    Parse the command line into Settings.

    Exits with status 2 and a usage message on any configuration error,
    before anything is started.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    patterns, positional_interval = split_fragments(args.fragments)
    interval_text = args.interval or positional_interval

    if not patterns:
        parser.error("no fragments to search for")

    overrides = {"patterns": patterns, "verbose": args.verbose}
    try:
        if interval_text is not None:
            overrides["scan_interval_seconds"] = parse_interval(interval_text)
        if args.root is not None:
            overrides["scan_root"] = args.root
        if args.foreground:
            overrides["daemonize"] = False
        settings = Settings(**overrides)
    except ConfigurationError as e:
        parser.error(str(e))
    except ValidationError as e:
        parser.error("; ".join(error["msg"] for error in e.errors()))

    return settings


def _pin_paths(settings: Settings) -> None:
    # Daemonizing changes into /, so relative paths are resolved first
    settings.scan_root = os.path.abspath(settings.scan_root)
    settings.log_file_path = str(Path(settings.log_file_path).resolve())


def _prepare_log_directory(settings: Settings) -> None:
    # Nothing can be reported once stderr points at /dev/null
    try:
        settings.log_directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        build_parser().error(f"cannot create log directory {settings.log_directory}: {e}")


async def run_daemon(settings: Settings) -> None:
    event_bus = DomainEventBus()
    await ScanEventLogHandlers(event_bus).register()

    control = ControlChannel()
    supervisor = ScanSupervisor(settings, event_bus, control)

    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    shutdown_requested = False

    def _request_shutdown(signame: str) -> None:
        nonlocal shutdown_requested
        if shutdown_requested:
            logging.info(f"Received {signame}, shutdown already in progress")
            return
        shutdown_requested = True
        logging.info(f"Received {signame}, shutting down")
        main_task.cancel()

    control.install_signal_handlers(loop, on_shutdown=_request_shutdown)

    try:
        await supervisor.run(settings.patterns)
    except asyncio.CancelledError:
        logging.info("Supervisor cancelled")
    finally:
        await supervisor.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = load_settings(argv)
    _pin_paths(settings)
    _prepare_log_directory(settings)

    if settings.daemonize:
        daemonize()

    setup_logging(settings, foreground=not settings.daemonize)
    logging.info(
        f"Daemon started (pid {os.getpid()}). Verbose: {'yes' if settings.verbose else 'no'}. "
        f"Patterns: {', '.join(settings.patterns)}. Interval: {settings.scan_interval_seconds:g}s"
    )

    try:
        asyncio.run(run_daemon(settings))
    except WorkerCreationError as e:
        logging.critical(f"Fatal: {e}")
        return 1
    return 0
