"""
Logging utilities for EVMQL.

Library modules log through children of the ``evmql`` logger; only the
command-line entry point installs handlers via ``setup_logger``. Every
installed handler formats through ``RedactingFormatter`` so node URLs
with embedded API keys never reach a log sink.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

from .redaction import redact_secrets


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Loggers configured through setup_logger, by name
_configured: Dict[str, logging.Logger] = {}


class RedactingFormatter(logging.Formatter):
    """Formatter that scrubs credentials from the rendered record."""

    def format(self, record: logging.LogRecord) -> str:
        return redact_secrets(super().format(record))


def _level_number(level: str) -> int:
    name = level.upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{level}' (expected one of {', '.join(LOG_LEVELS)})")
    return getattr(logging, name)


def _build_handlers(formatter: logging.Formatter, stream, log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str = "evmql",
    level: str = "INFO",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    stream=None,
) -> logging.Logger:
    """
    Set up and configure a logger.

    Calling it again for the same name replaces the previous handlers.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string
        log_file: Optional file path for logging
        stream: Stream for the console handler (default: stdout)

    Returns:
        Configured logger

    Raises:
        ValueError: Unknown level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level_number(level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = RedactingFormatter(format_string or DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
    for handler in _build_handlers(formatter, stream, log_file):
        logger.addHandler(handler)

    # Records stop here instead of reaching root handlers a second time
    logger.propagate = False

    _configured[name] = logger
    return logger


def get_logger(name: str = "evmql") -> logging.Logger:
    """
    Get a configured logger by name, configuring it with defaults on first use.
    """
    logger = _configured.get(name)
    if logger is None:
        logger = setup_logger(name)
    return logger


def kv(**fields: Any) -> str:
    """Render ``key=value`` pairs for log messages, skipping None values."""
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
