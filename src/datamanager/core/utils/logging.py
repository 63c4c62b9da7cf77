"""
Simple, reliable logging utilities for the datamanager package.

- Configure logging via `setup_logging(...)` at app startup.
- Get module-specific loggers via `get_logger(__name__)`.
- Reconfigure anytime by calling `setup_logging(...)` again.

This uses the *root logger* so it plays nicely with NiceGUI/uvicorn.
Log file is written under the same per-user app directory as the
DMConfig JSON file (platformdirs, app name "datamanager"), in a "logs"
subfolder: e.g. datamanager.log.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

from platformdirs import user_config_dir

# App name used for config/log paths; must match gui/app_config.py.
_APP_NAME = "datamanager"
_LOG_FILENAME = "datamanager.log"

_LOG_FILE_PATH: Optional[Path] = None


def setup_logging(
    level: Union[str, int] = "INFO",
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure root logging with console and rotating file handler.

    Console uses the given level; file captures everything at DEBUG.
    Calling this multiple times will reconfigure logging (removes old handlers first).

    Parameters
    ----------
    level:
        Logging level for console (e.g. "DEBUG", "INFO").
    max_bytes:
        Max size in bytes for rotating log file.
    backup_count:
        Number of rotated log files to keep.
    log_dir:
        Directory for the log file. Defaults to the platformdirs config dir.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()

    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)

    root.setLevel(level)

    console_fmt = "[%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s"
    file_fmt = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(fmt=console_fmt))
    root.addHandler(console)

    global _LOG_FILE_PATH
    if log_dir is None:
        log_dir = Path(user_config_dir(_APP_NAME)) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / _LOG_FILENAME
    _LOG_FILE_PATH = log_path

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(fmt=file_fmt, datefmt=datefmt))
    root.addHandler(file_handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger by name.

    If name is None, returns a 'datamanager' logger.

    Use like:
        logger = get_logger(__name__)
        logger.info("Hello")
    """
    if name is None:
        name = _APP_NAME
    return logging.getLogger(name)


def get_log_file_path() -> Optional[Path]:
    """Path to the current log file, or None before `setup_logging` ran."""
    return _LOG_FILE_PATH
