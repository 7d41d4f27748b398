"""Package logger for engine relay.

Nothing is written anywhere unless ENGINE_RELAY_LOG_FILE is set:
- a file path logs to that file (parent directories are created);
- "1", "true", "yes" or "on" logs to ./logs/engines_<date>.log.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "engine_relay"
LOG_FILE_ENV = "ENGINE_RELAY_LOG_FILE"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_FLAG_VALUES = ("1", "true", "yes", "on")

_logger: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    """Get or create the engine relay logger."""
    global _logger
    if _logger is None:
        _logger = _setup_logger()
    return _logger


def resolve_log_path(value: Optional[str]) -> Optional[Path]:
    """Map the ENGINE_RELAY_LOG_FILE value to a log file path, or None when unset."""
    if not value:
        return None
    if value.lower() in _FLAG_VALUES:
        return Path.cwd() / "logs" / f"engines_{datetime.now().strftime('%Y-%m-%d')}.log"
    return Path(value)


def _file_handler(log_path: Path) -> logging.Handler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def _setup_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    log_path = resolve_log_path(os.environ.get(LOG_FILE_ENV))
    if log_path is None:
        return logger

    try:
        logger.addHandler(_file_handler(log_path))
    except OSError as e:
        # stderr keeps the messages when the file cannot be opened
        fallback = logging.StreamHandler()
        fallback.setFormatter(logging.Formatter(f"[log file {log_path} unavailable: {e}] %(message)s"))
        logger.addHandler(fallback)

    return logger
