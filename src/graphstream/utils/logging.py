"""
Logging utility module for graphstream.

Provides JSON-structured logging with the owned partition key propagated
through a context variable, so every line emitted during a worker attempt
names the partition it belongs to.
"""

import json
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from contextvars import ContextVar

# Partition key of the worker attempt running in the current context
_partition_key: ContextVar[Optional[str]] = ContextVar('partition_key', default=None)

# Attributes present on every LogRecord; anything else was passed via `extra`
_RESERVED_ATTRS = frozenset(
    logging.LogRecord(None, None, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def get_partition_key() -> Optional[str]:
    """Get the partition key bound to the current context."""
    return _partition_key.get()


def set_partition_key(partition_key: Optional[str]) -> None:
    """Bind a partition key to the current context."""
    _partition_key.set(partition_key)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        partition_key = get_partition_key()
        if partition_key:
            log_data['partition_key'] = partition_key

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Get a JSON logger.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON formatter on the `graphstream` logger hierarchy."""
    get_logger("graphstream", getattr(logging, level.upper(), logging.INFO))


class PartitionLogContext:
    """Context manager binding a partition key for the span of a worker attempt."""

    def __init__(self, partition_key: str):
        self.partition_key = partition_key
        self._previous_key: Optional[str] = None

    def __enter__(self) -> str:
        self._previous_key = get_partition_key()
        set_partition_key(self.partition_key)
        return self.partition_key

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_partition_key(self._previous_key)
