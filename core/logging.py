"""Process-wide logging setup."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"

# Transport libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Send logs to stdout, and to a rotating ``log_file`` when one is given.

    Below DEBUG, the per-request chatter of the HTTP and SQLite clients is
    limited to warnings.
    """
    level = level.upper()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.append(_file_handler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    quiet_level = logging.NOTSET if level == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(
        f"Logging at {level}" + (f", also to {log_file}" if log_file else "")
    )
