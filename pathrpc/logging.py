"""
Structured Logging for pathrpc

This module configures structlog on top of the standard library and keeps the
id of the batch being flushed or executed in a context variable, so every log
line emitted while handling one batch carries the same ``batch_id``.
"""

import contextvars
import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Optional

import structlog

from .config import get_config

_batch_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "pathrpc_batch_id", default=None
)


class BatchContext:
    """Tracks the batch currently being handled by this task."""

    @staticmethod
    def get_batch_id() -> Optional[str]:
        return _batch_id.get()

    @staticmethod
    def new_batch_id() -> str:
        return uuid.uuid4().hex[:8]

    @staticmethod
    @contextmanager
    def bind(batch_id: Optional[str] = None):
        """Run a block with ``batch_id`` set, generating one if none is given."""
        token = _batch_id.set(batch_id or BatchContext.new_batch_id())
        try:
            yield _batch_id.get()
        finally:
            _batch_id.reset(token)


def add_batch_id(logger, method_name, event_dict):
    """structlog processor adding the current batch id when one is bound."""
    batch_id = _batch_id.get()
    if batch_id is not None and "batch_id" not in event_dict:
        event_dict["batch_id"] = batch_id
    return event_dict


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None):
    """Setup structured logging for pathrpc."""
    config = get_config()
    log_level = log_level or config.logging.log_level
    log_format = log_format or config.logging.log_format

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_batch_id,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    package_logger = logging.getLogger("pathrpc")
    package_logger.setLevel(getattr(logging, log_level))

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.propagate = False


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


# Initialize logging on module import
setup_logging()
