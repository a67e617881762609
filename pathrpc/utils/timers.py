"""
High-precision timing for batch round trips and route invocations.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass
class TimingResult:
    """Result of a timing operation."""

    operation: str
    duration_seconds: float
    success: bool
    metadata: Dict[str, Any]

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        return self.duration_seconds * 1000


class Timer:
    """High-precision timer for measuring operation durations."""

    def __init__(self, operation: str, metadata: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.metadata = metadata or {}
        self.start_time: Optional[float] = None
        self.result: Optional[TimingResult] = None
        self.success = True

    def start(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def stop(self) -> TimingResult:
        if self.start_time is None:
            raise ValueError("Timer not started")

        self.result = TimingResult(
            operation=self.operation,
            duration_seconds=time.perf_counter() - self.start_time,
            success=self.success,
            metadata=self.metadata,
        )
        return self.result

    def mark_failure(self):
        """Mark the operation as failed."""
        self.success = False

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.mark_failure()
        self.stop()


@contextmanager
def time_operation(operation: str, metadata: Optional[Dict[str, Any]] = None):
    """
    Time a block and log the outcome at debug level.

    Works around ``await`` expressions too, since it only brackets the block
    with two clock reads.
    """
    timer = Timer(operation, metadata)
    try:
        timer.start()
        yield timer
    except BaseException:
        timer.mark_failure()
        raise
    finally:
        result = timer.stop()
        logger.debug(
            "Operation timed",
            operation=operation,
            duration_ms=round(result.duration_ms, 3),
            success=result.success,
            **(metadata or {}),
        )
