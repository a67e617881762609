"""
Batch Queue

Collects calls issued on one client into batches. Each client owns exactly one
queue; the open batch and its debounce timer live on the instance.

A call joins the open batch unless that would break a bound (``max_batch_size``
items or ``max_url_size`` bytes of URL), in which case the open batch is flushed
first. Every accepted call pushes the debounce deadline back by
``debounce_ms``, and a batch that reaches ``max_batch_size`` is flushed at once.
"""

import asyncio
import functools
import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from ..config import BatchingConfig
from ..errors import OversizeError
from ..logging import get_logger
from ..types import CallDescriptor, QueueState
from ..wire import encoded_call_size
from .dispatcher import Dispatcher

logger = get_logger(__name__)


@dataclass(eq=False)
class PendingCall:
    """A queued call and the future its caller awaits."""

    descriptor: CallDescriptor
    future: asyncio.Future
    retries: int = 0
    dispatched: bool = False


class BatchQueue:
    """Debounced, size-bounded call queue feeding one dispatcher."""

    def __init__(self, dispatcher: Dispatcher, config: Optional[BatchingConfig] = None):
        self.dispatcher = dispatcher
        self.config = config or BatchingConfig()

        self._ids = itertools.count(1)
        self._open: List[PendingCall] = []
        self._open_size = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._state = QueueState.IDLE
        self._tasks: Set[asyncio.Task] = set()
        self._in_flight = 0

        # Metrics
        self.total_calls = 0
        self.total_batches = 0
        self.oversize_rejections = 0
        self.evictions = 0
        self.cancelled_calls = 0
        self.largest_batch = 0

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def queued(self) -> int:
        return len(self._open)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def next_id(self) -> str:
        """Next correlation id. Monotonic for the lifetime of the queue."""
        return str(next(self._ids))

    def enqueue(self, descriptor: CallDescriptor) -> asyncio.Future:
        """
        Queue a call and return the future settled with its outcome.

        Must be called from the event loop thread.

        Raises:
            OversizeError: if the call alone cannot fit ``max_url_size``. The
                queue is left untouched and nothing is sent.
        """
        loop = asyncio.get_running_loop()
        if descriptor.id is None:
            descriptor = descriptor.with_id(self.next_id())

        size = self.dispatcher.measure([descriptor])
        if size > self.config.max_url_size:
            self.oversize_rejections += 1
            logger.warning(
                "Call rejected: URL too large",
                call_id=descriptor.id,
                path=descriptor.dotted_path,
                size=size,
                limit=self.config.max_url_size,
            )
            raise OversizeError(descriptor.dotted_path, size, self.config.max_url_size)

        pending = PendingCall(descriptor=descriptor, future=loop.create_future())
        pending.future.add_done_callback(functools.partial(self._on_future_done, pending))
        self.total_calls += 1
        self._admit(pending)
        return pending.future

    def cancel(self, future: asyncio.Future) -> bool:
        """
        Withdraw a call that has not been flushed yet.

        Returns False for calls already in flight; those cannot be cancelled
        and settle normally.
        """
        for pending in self._open:
            if pending.future is future:
                self._remove(pending)
                future.cancel()
                return True
        return False

    def flush(self) -> None:
        """Send the open batch now instead of waiting for the debounce timer."""
        self._flush("manual")

    async def drain(self) -> None:
        """Flush and wait until every in-flight batch has settled."""
        self.flush()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _admit(self, pending: PendingCall) -> None:
        if not self.config.enabled:
            self._dispatch([pending], reason="unbatched")
            return

        while self._open and not self._fits(pending):
            self._flush("bounds")

        self._append(pending)

        if len(self._open) >= self.config.max_batch_size:
            self._flush("full")
        else:
            self._restart_timer()

    def _fits(self, pending: PendingCall) -> bool:
        if len(self._open) + 1 > self.config.max_batch_size:
            return False
        projected = self._open_size + 1 + encoded_call_size(pending.descriptor)
        return projected <= self.config.max_url_size

    def _append(self, pending: PendingCall) -> None:
        if not self._open:
            self._open_size = self.dispatcher.base_size() + encoded_call_size(pending.descriptor)
            self._state = QueueState.OPEN
        else:
            self._open_size += 1 + encoded_call_size(pending.descriptor)
        self._open.append(pending)

    def _remove(self, pending: PendingCall) -> None:
        self._open.remove(pending)
        self.cancelled_calls += 1
        logger.debug("Queued call cancelled", call_id=pending.descriptor.id)

        if self._open:
            self._open_size = self.dispatcher.measure([p.descriptor for p in self._open])
        else:
            self._open_size = 0
            self._cancel_timer()
            self._state = QueueState.IDLE

    def _live(self, batch: List[PendingCall]) -> List[PendingCall]:
        """Drop calls cancelled through their future whose done-callback has not run yet."""
        live = []
        for pending in batch:
            if pending.future.cancelled():
                self.cancelled_calls += 1
                logger.debug("Queued call cancelled", call_id=pending.descriptor.id)
            else:
                live.append(pending)
        return live

    def _on_future_done(self, pending: PendingCall, future: asyncio.Future) -> None:
        if future.cancelled() and not pending.dispatched and pending in self._open:
            self._remove(pending)

    def _restart_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.debounce_seconds, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._flush("debounce")

    def _flush(self, reason: str) -> None:
        self._cancel_timer()
        if not self._open:
            self._state = QueueState.IDLE
            return

        self._state = QueueState.FLUSHING
        batch = self._live(self._open)
        self._open = []
        self._open_size = 0
        if not batch:
            self._state = QueueState.IDLE
            return

        # The send-time measurement is authoritative; overflowing calls are
        # evicted from the tail and retried at the head of the next batch.
        evicted: List[PendingCall] = []
        while len(batch) > 1 and self.dispatcher.measure([p.descriptor for p in batch]) > self.config.max_url_size:
            evicted.append(batch.pop())

        self._dispatch(batch, reason)
        self._state = QueueState.IDLE

        for pending in reversed(evicted):
            self._readmit(pending)

    def _readmit(self, pending: PendingCall) -> None:
        if pending.future.done():
            return

        pending.retries += 1
        self.evictions += 1
        descriptor = pending.descriptor

        if pending.retries > self.config.max_retries:
            size = self.dispatcher.measure([descriptor])
            self.oversize_rejections += 1
            logger.warning(
                "Call dropped after repeated evictions",
                call_id=descriptor.id,
                path=descriptor.dotted_path,
                retries=pending.retries - 1,
            )
            pending.future.set_exception(
                OversizeError(descriptor.dotted_path, size, self.config.max_url_size, retries=pending.retries - 1)
            )
            return

        logger.debug(
            "Call evicted from overflowing batch",
            call_id=descriptor.id,
            path=descriptor.dotted_path,
            retry=pending.retries,
        )
        self._admit(pending)

    def _dispatch(self, batch: List[PendingCall], reason: str) -> None:
        batch = self._live(batch)
        if not batch:
            return

        for pending in batch:
            pending.dispatched = True

        self.total_batches += 1
        self.largest_batch = max(self.largest_batch, len(batch))
        self._in_flight += len(batch)
        logger.debug("Batch flushed", batch_size=len(batch), reason=reason)

        task = asyncio.get_running_loop().create_task(self._send(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, batch: List[PendingCall]) -> None:
        try:
            await self.dispatcher.dispatch(batch)
        finally:
            self._in_flight -= len(batch)

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics."""
        return {
            "state": self._state.name.lower(),
            "queued": len(self._open),
            "in_flight": self._in_flight,
            "total_calls": self.total_calls,
            "total_batches": self.total_batches,
            "avg_batch_size": self.total_calls / self.total_batches if self.total_batches else 0.0,
            "largest_batch": self.largest_batch,
            "oversize_rejections": self.oversize_rejections,
            "evictions": self.evictions,
            "cancelled_calls": self.cancelled_calls,
            "config": {
                "enabled": self.config.enabled,
                "max_batch_size": self.config.max_batch_size,
                "debounce_ms": self.config.debounce_ms,
                "max_url_size": self.config.max_url_size,
                "max_retries": self.config.max_retries,
            },
        }

    def reset_stats(self) -> None:
        """Reset queue statistics."""
        self.total_calls = 0
        self.total_batches = 0
        self.oversize_rejections = 0
        self.evictions = 0
        self.cancelled_calls = 0
        self.largest_batch = 0

        logger.info("Batch queue statistics reset")
