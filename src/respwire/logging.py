"""Logging setup for respwire recordings.

Each recording writes to ``~/.respwire/recordings/<recording>/log.txt``. The
logger is isolated (no propagation) and avoids duplicate handlers across
repeated initializations.
"""

from __future__ import annotations

import logging
from pathlib import Path

from respwire.config import LogLevel
from respwire.recording import recording_dir


def recording_log_path(recording_id: str, base_dir: Path | None = None) -> Path:
    return recording_dir(recording_id, base_dir) / "log.txt"


def configure_recording_logger(
    recording_id: str,
    *,
    log_level: LogLevel | str = LogLevel.INFO,
    base_dir: Path | None = None,
) -> logging.Logger:
    """Configure and return a file logger scoped to a recording.

    Subsequent calls with the same recording_id return the same logger without
    duplicating handlers.
    """

    logger = logging.getLogger(f"respwire.recording.{recording_id}")

    level_value = _to_logging_level(log_level)
    logger.setLevel(level_value)
    logger.propagate = False

    if not logger.handlers:
        path = recording_log_path(recording_id, base_dir)
        path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(level_value)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)

    return logger


def _to_logging_level(value: LogLevel | str) -> int:
    mapping = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
    }
    if isinstance(value, LogLevel):
        return mapping[value]
    if isinstance(value, str):
        try:
            return mapping[LogLevel(value.lower())]
        except ValueError:
            return logging.WARNING
    return logging.WARNING


__all__ = [
    "configure_recording_logger",
    "recording_log_path",
    "_to_logging_level",
]
