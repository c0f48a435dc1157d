import logging
import logging.handlers
import os

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings


def build_syslog_handler(settings: Settings) -> logging.Handler:
    handler = logging.handlers.SysLogHandler(
        address=settings.syslog_address,
        facility=logging.handlers.SysLogHandler.LOG_USER,
    )
    handler.ident = f"{settings.syslog_ident}[{os.getpid()}]: "
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    return handler


def setup_logging(settings: Settings, foreground: bool = True) -> None:
    """
    Configure the root logger.

    The console handler is only attached in the foreground; after
    daemonizing stdout points at /dev/null. Syslog is used whenever the
    socket exists, which is the normal destination for a daemon.
    """
    level = settings.effective_log_level

    log_dir = settings.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    if foreground:
        console = Console(width=120)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=settings.verbose,
            markup=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
        )
        handlers.append(rich_handler)

    # File handler with detailed format for debugging
    file_format = (
        "%(asctime)s - %(levelname)s - "
        "%(threadName)s %(filename)s:%(lineno)d - "
        "%(message)s"
    )
    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=settings.log_file_path,
        when="midnight",
        interval=1,
        backupCount=settings.log_retention_days,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(file_format))
    handlers.append(file_handler)

    syslog_enabled = bool(settings.syslog_address) and os.path.exists(settings.syslog_address)
    if syslog_enabled:
        handlers.append(build_syslog_handler(settings))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    for handler in handlers:
        handler.setLevel(level)
        root_logger.addHandler(handler)

    # Silence noisy library loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        f"Logging initialized - File: {settings.log_file_path}, "
        f"Level: {logging.getLevelName(level)}, "
        f"Syslog: {settings.syslog_address if syslog_enabled else 'off'}, "
        f"Verbose: {'yes' if settings.verbose else 'no'}"
    )
