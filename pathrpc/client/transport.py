"""Transports deliver one encoded batch request and return the raw response."""

from typing import Optional, Protocol, runtime_checkable

import httpx

from ..errors import TransportError
from ..logging import get_logger
from ..types import WireRequest, WireResponse

logger = get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Anything that can POST a ``WireRequest``."""

    async def send(self, request: WireRequest) -> WireResponse:
        ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._owns_client = client is None
        self.http_client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, request: WireRequest) -> WireResponse:
        try:
            response = await self.http_client.post(
                request.url, content=request.body, headers=request.headers
            )
        except httpx.HTTPError as e:
            logger.warning("Batch request failed", error=str(e), error_type=type(e).__name__)
            raise TransportError(str(e) or type(e).__name__) from e

        return WireResponse(status_code=response.status_code, body=response.content)

    async def aclose(self):
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self.http_client.aclose()
