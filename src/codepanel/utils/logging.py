"""Logging setup for the codepanel process.

Records go to a rotating ``codepanel.log`` under the codepanel home directory
and, when ``console`` is set, to stderr. stdout carries the JSON-lines
bridge, so no handler configured here may write to it.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

from ..services.settings import default_settings_dir

__all__ = ["LOG_FILENAME", "setup_logging"]

LOG_FILENAME = "codepanel.log"
_LOG_DIR_ENV = "CODEPANEL_LOG_DIR"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# HTTP client stacks log every request below WARNING.
_LIBRARY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_active_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to the panel log file and return its path.

    Later calls return the first path untouched unless ``force`` is set,
    which the CLI uses to switch to debug once settings have been read.
    """

    global _active_log_path
    if _active_log_path is not None and not force:
        return _active_log_path

    log_path = _log_directory(log_dir) / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    library_level = max(level, logging.WARNING)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    _active_log_path = log_path
    return log_path


def _log_directory(log_dir: Path | str | None) -> Path:
    if log_dir is not None:
        return Path(log_dir).expanduser()
    env_dir = os.environ.get(_LOG_DIR_ENV, "").strip()
    if env_dir:
        return Path(env_dir).expanduser()
    return default_settings_dir() / "logs"
