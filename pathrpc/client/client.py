"""
RPC Client

Ties the route namespace, the batch queue and the dispatcher together::

    async with RpcClient("http://localhost:8000", shape=manifest) as client:
        user, users = await asyncio.gather(
            client.routes.users.get_user({"id": "1"}),
            client.routes.users.list_users(),
        )

Both calls above travel in a single HTTP request.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from ..config import BatchingConfig, get_config, normalize_prefix
from ..logging import get_logger
from ..types import MISSING, CallDescriptor
from .builder import Namespace, build_namespace, describe_path
from .dispatcher import Dispatcher
from .queue import BatchQueue
from .transport import HttpxTransport, Transport

logger = get_logger(__name__)


def _batching_config(batching: Union[BatchingConfig, bool, None]) -> BatchingConfig:
    if isinstance(batching, BatchingConfig):
        return batching
    defaults = get_config().batching
    if batching is None:
        return defaults
    return BatchingConfig(
        enabled=bool(batching),
        max_batch_size=defaults.max_batch_size,
        debounce_ms=defaults.debounce_ms,
        max_url_size=defaults.max_url_size,
        max_retries=defaults.max_retries,
    )


class RpcClient:
    """Batching client for one pathrpc server."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        shape: Any = None,
        api_prefix: Optional[str] = None,
        batching: Union[BatchingConfig, bool, None] = None,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[Transport] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            base_url: Server origin, e.g. ``http://localhost:8000``
            shape: Route declaration used to build ``routes`` (a manifest, a
                router class, a nested dict or a list of names)
            api_prefix: Mount path of the batch endpoint
            batching: ``BatchingConfig``, or ``False`` to send one request per call
            headers: Extra headers sent with every batch
            transport: Custom transport; defaults to an owned ``HttpxTransport``
            timeout: Per-request timeout for the default transport
        """
        config = get_config()
        self.base_url = (base_url or config.client.base_url).rstrip("/")
        self.api_prefix = normalize_prefix(api_prefix or config.client.api_prefix)
        self.endpoint = f"{self.base_url}/{self.api_prefix}"

        self._owns_transport = transport is None
        self.transport = transport or HttpxTransport(
            timeout=timeout if timeout is not None else config.client.timeout_seconds
        )
        self.dispatcher = Dispatcher(self.transport, self.endpoint, headers)
        self.queue = BatchQueue(self.dispatcher, _batching_config(batching))
        self.routes: Namespace = build_namespace(shape if shape is not None else {}, invoke=self.enqueue)

        logger.debug(
            "RPC client created",
            endpoint=self.endpoint,
            batching=self.queue.config.enabled,
        )

    def enqueue(self, descriptor: CallDescriptor) -> asyncio.Future:
        """Queue ``descriptor`` and return a future for its result."""
        return self.queue.enqueue(descriptor)

    def call(self, path: Union[str, Sequence[str]], input: Any = MISSING) -> asyncio.Future:
        """Call a route by dotted path, without a declared shape."""
        return self.enqueue(describe_path(path, input))

    def cancel(self, future: asyncio.Future) -> bool:
        return self.queue.cancel(future)

    def flush(self) -> None:
        self.queue.flush()

    async def aclose(self):
        """Send anything still queued, wait for it, then release the transport."""
        await self.queue.drain()
        if self._owns_transport and isinstance(self.transport, HttpxTransport):
            await self.transport.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def get_stats(self) -> Dict[str, Any]:
        return {"endpoint": self.endpoint, **self.queue.get_stats()}
