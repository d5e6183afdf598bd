"""Logging configuration for the wine question router."""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Optional

from ..config.settings import get_logging_config

ROOT_LOGGER_NAME = "wine_router"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_SIZE_UNITS = {"": 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}
_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([KMG]?B)?\s*$", re.IGNORECASE)


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    logger_name: Optional[str] = None,
    file_logging: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the application logger from the ``logging`` config section.

    Explicit arguments win over configuration. Calling this again replaces
    the handlers installed by the previous call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom log format string
        logger_name: Name for the logger (defaults to 'wine_router')
        file_logging: Also write to a rotating log file
        log_file: Path to log file

    Returns:
        Configured logger instance
    """
    log_config = get_logging_config()
    log_level = getattr(logging, (level or log_config.get("level", "INFO")).upper())
    formatter = logging.Formatter(format_string or log_config.get("format", DEFAULT_FORMAT))

    logger = logging.getLogger(logger_name or ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # stderr keeps stdout clean for CLI answers
    handlers = [logging.StreamHandler(sys.stderr)]

    if file_logging is None:
        file_logging = bool(log_config.get("file_logging", False))
    if file_logging:
        log_path = Path(log_file or log_config.get("log_file", "logs/wine_router.log"))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=parse_size(str(log_config.get("max_file_size", "10MB"))),
                backupCount=int(log_config.get("backup_count", 5)),
            )
        )

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def parse_size(size: str) -> int:
    """Bytes for a size such as ``10MB``, ``512KB`` or ``2048``."""
    match = _SIZE_PATTERN.match(size)
    if not match:
        raise ValueError(f"Invalid size: {size!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[(unit or "").upper()]


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the application namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
