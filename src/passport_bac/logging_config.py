"""Logging configuration for the passport BAC reader."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime

# Custom log format with service name
DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(service_name)s] - [%(name)s] - "
    "[%(module)s.%(funcName)s:%(lineno)d] - %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

DEFAULT_LOG_LEVEL = "INFO"
LOG_OFF_LEVEL = "OFF"  # Special string to turn off logging


class ServiceNameFilter(logging.Filter):
    """Filter to inject service name into log records."""

    def __init__(self, service_name: str) -> None:
        """Initialize filter with service name."""
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        """Add service name to log record."""
        record.service_name = self.service_name
        return True


class ReaderJSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Chip exchanges attach these through ``extra=``
        for key in ("file_id", "status_word", "ssc", "state"):
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logging(
    service_name: str = "passport-bac",
    log_level: str | None = None,
    log_format: str | None = None,
    log_level_env_var: str = "PASSPORT_BAC_LOG_LEVEL",
    log_format_env_var: str = "PASSPORT_BAC_LOG_FORMAT",
) -> None:
    """
    Configure logging for the application.

    Args:
        service_name: Name of the service for log identification
        log_level: Explicit level, overrides the environment
        log_format: ``json``, ``text`` or a logging format string
        log_level_env_var: Environment variable to read the log level from
        log_format_env_var: Environment variable to read the log format from
    """
    log_level_str = (log_level or os.environ.get(log_level_env_var, DEFAULT_LOG_LEVEL)).upper()
    log_format_str = log_format or os.environ.get(log_format_env_var, DEFAULT_LOG_FORMAT)
    if log_format_str.lower() == "text":
        log_format_str = DEFAULT_LOG_FORMAT

    root_logger = logging.getLogger()

    # Remove any existing handlers to prevent duplicate messages
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_level_str == LOG_OFF_LEVEL:
        root_logger.setLevel(logging.CRITICAL + 1)
        return

    numeric_log_level = LOG_LEVELS.get(log_level_str, logging.INFO)
    root_logger.setLevel(numeric_log_level)

    # stdout carries command output, logs go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    if log_format_str.lower() == "json":
        formatter: logging.Formatter = ReaderJSONFormatter()
    else:
        formatter = logging.Formatter(log_format_str)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ServiceNameFilter(service_name))
    root_logger.addHandler(console_handler)

    # pyscard is chatty at DEBUG
    logging.getLogger("smartcard").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured. Service: %s, Level: %s", service_name, log_level_str)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger instance for the module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name or __name__)
