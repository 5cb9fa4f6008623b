"""JSON logging for fastdel runs."""

import json
import logging
import sys
from typing import Any, Dict, Optional

LOGGER_NAME = "fastdel"


class JsonFormatter(logging.Formatter):
    """
    Render each record as a single JSON line.

    A deletion run emits a "Starting deletion" record, periodic "Progress
    update" records with counters and memory use, one record per failed entry
    carrying its path, failure reason and OS error text, and a final
    "Deletion completed" record with the summary. Context fields passed through
    log_with_context land under "extra_fields" so log shippers can index them.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_obj["error"] = self.formatException(record.exc_info)
            log_obj["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        if hasattr(record, "extra_fields"):
            log_obj["extra_fields"] = record.extra_fields

        # Paths and enums in context fields fall back to their string form
        return json.dumps(log_obj, default=str)


def setup_logging(logger_name: str = LOGGER_NAME, level: str = "INFO") -> logging.Logger:
    """
    Configure the JSON logger used by a deletion run.

    Args:
        logger_name: Name of the logger
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance

    Raises:
        ValueError: If level is not a known logging level name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(logger_name)
    logger.setLevel(numeric_level)

    # One handler per logger, even across several engines in one process
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    return logger


def log_with_context(
    logger: logging.Logger, level: str, message: str, extra: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, ...)
        message: Log message
        extra: Context fields emitted under "extra_fields" in the JSON output
    """
    if extra is None:
        extra = {}

    log_method = getattr(logger, level.lower())
    log_method(message, extra={"extra_fields": extra})
