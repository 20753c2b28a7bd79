"""
Centralized logging configuration for the data-access layer.

Provides contextual logging with collection and operation tagging so
repository and auth log lines can be correlated.
"""

import logging
import sys
from typing import Optional


class ContextLogger:
    """
    Logger that prefixes every message with its collection and operation.

    Credentials, hashes and tokens must never be passed to it.
    """

    def __init__(
        self,
        name: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        """
        Initialize context logger.

        Args:
            name: Logger name (usually __name__)
            collection: Optional collection name (e.g., "users")
            operation: Optional operation name (e.g., "login")
        """
        self.logger = logging.getLogger(name)
        self.collection = collection
        self.operation = operation

    @property
    def level(self) -> int:
        """Get current logging level."""
        return self.logger.level

    def bind(self, operation: str) -> "ContextLogger":
        """Return a logger for the same collection tagged with another operation."""
        return ContextLogger(self.logger.name, self.collection, operation)

    def _format_message(self, message: str) -> str:
        """Add contextual prefix to message."""
        prefix_parts = []
        if self.collection:
            prefix_parts.append(f"[collection:{self.collection}]")
        if self.operation:
            prefix_parts.append(f"[{self.operation}]")

        if prefix_parts:
            return f"{' '.join(prefix_parts)} {message}"
        return message

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message), **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message), **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message), **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(self._format_message(message), **kwargs)

    def exception(self, message: str, **kwargs):
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message), **kwargs)


def setup_logging(level: str = "INFO", format: str = "simple") -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log format ("simple" or "json")
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format == "json":
        # JSON lines for log aggregators
        formatter = logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def setup_logging_from_settings() -> None:
    """Configure logging from LOG_LEVEL / LOG_FORMAT settings."""
    from .config import get_settings

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)


def get_logger(
    name: str,
    collection: Optional[str] = None,
    operation: Optional[str] = None,
) -> ContextLogger:
    """
    Get a context logger instance.

    Args:
        name: Logger name (usually __name__)
        collection: Optional collection name
        operation: Optional operation name

    Returns:
        ContextLogger instance
    """
    return ContextLogger(name, collection, operation)
