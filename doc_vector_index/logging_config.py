"""Logging setup for doc-vector-index.

The CLI maps its -v count onto a level with setup_logging(); library code
only calls get_logger(__name__) and never installs handlers itself.

Environment:
    LOG_FILE: Write to this rotating file instead of stderr.
    LOG_FORMAT: Override the record format.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

FILE_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
CONSOLE_LOG_FORMAT = "[%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Raised to DEBUG only at -vvv
LIBRARY_LOGGERS = ("botocore", "boto3", "urllib3", "opentelemetry")

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def level_for_verbosity(verbose_count: int) -> int:
    """Map a -v count to a level: 0 WARNING, 1 INFO, 2 or more DEBUG."""
    return _VERBOSITY_LEVELS.get(max(verbose_count, 0), logging.DEBUG)


def setup_logging(
    verbose_count: int = 0,
    log_file: str | None = None,
    log_format: str | None = None,
) -> None:
    """Install a single root handler for the given verbosity.

    Calling it again replaces the previous handler, so repeated CLI
    invocations in one process do not duplicate output.

    Args:
        verbose_count: Number of -v flags; 3 or more also enables DEBUG
            output of boto3, botocore, urllib3 and opentelemetry.
        log_file: Rotating log file; falls back to $LOG_FILE, then stderr.
        log_format: Record format; falls back to $LOG_FORMAT.

    Example:
        >>> setup_logging(1)
        >>> setup_logging(2, log_file="/var/log/doc-vector-index.log")
    """
    level = level_for_verbosity(verbose_count)
    file_path = log_file or os.environ.get("LOG_FILE")
    fmt = log_format or os.environ.get("LOG_FORMAT")

    handler: logging.Handler
    if file_path:
        handler = _file_handler(Path(file_path), fmt)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt or CONSOLE_LOG_FORMAT))
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    library_level = logging.DEBUG if verbose_count >= 3 else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def _file_handler(path: Path, fmt: str | None) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt or FILE_LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, by convention ``get_logger(__name__)``."""
    return logging.getLogger(name)
