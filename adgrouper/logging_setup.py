"""Logging configuration for the web service."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

# HTTP client libraries log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google", "urllib3", "asyncio")


def _normalise_level(level: Optional[str | int]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        value = level.strip().upper()
        if value.isdigit():
            return int(value)
        resolved = logging.getLevelName(value)
        if isinstance(resolved, int):
            return resolved
    return logging.INFO


def configure_logging(level: Optional[str | int] = None) -> Path:
    """Log to the console and to a log file that is truncated on every start.

    The directory and file name come from ``APP_LOG_DIR`` and
    ``APP_LOG_FILENAME``. Returns the log file path.
    """

    log_dir = Path(os.getenv("APP_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / os.getenv("APP_LOG_FILENAME", "latest-run.log")

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=_normalise_level(level),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_path, mode="w", encoding="utf-8"),
        ],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Application logs initialised at %s", log_path)
    return log_path
