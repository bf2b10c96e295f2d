"""Structured logging with rotating file handlers.

Call :func:`setup_logger` once per entry point to get a logger that writes
to both the console (``stderr``) and a rotating log file under ``logs/``.
Library modules only ever call ``logging.getLogger(__name__)``; configuring
the ``"cryptopilot"`` logger captures all of them.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 10 MB max per file, keep 5 backups
_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5

_configured: set[str] = set()


def setup_logger(
    name: str = "cryptopilot",
    log_dir: Path | None = None,
    level: int = logging.INFO,
    log_file: str | None = None,
) -> logging.Logger:
    """Create (or retrieve) a logger with console + rotating-file handlers.

    Parameters
    ----------
    name:
        Logger name.  ``"cryptopilot"`` covers every package module.
    log_dir:
        Directory for log files.  Defaults to ``./logs``.
    level:
        Minimum log level.
    log_file:
        File name inside *log_dir*.  Defaults to ``<name>.log``.

    Returns
    -------
    logging.Logger
        A configured logger instance.
    """
    if log_dir is None:
        log_dir = Path("logs")

    logger = logging.getLogger(name)

    # Avoid adding duplicate handlers when called more than once
    if name in _configured:
        return logger

    logger.setLevel(level)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(level)
    logger.addHandler(console)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / (log_file or f"{name}.log"),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)
    except OSError:
        # Console-only when the log directory is not writable
        logger.warning("Could not create log file in %s", log_dir)

    _configured.add(name)
    return logger


def parse_level(value: str | int | None, default: int = logging.INFO) -> int:
    """Translate ``"debug"`` / ``"INFO"`` / ``20`` into a logging level."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    return level if isinstance(level, int) else default
