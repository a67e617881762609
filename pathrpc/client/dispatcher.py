"""
Response Dispatcher

Sends one flushed batch and settles each caller's future from the response
item carrying its id. Array position is never used for correlation.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from ..errors import PathRpcError, ProtocolError, TransportError, UsageError, remote_error
from ..logging import BatchContext, get_logger
from ..types import CallDescriptor, Failure, WireRequest
from ..utils.timers import Timer
from ..wire import build_url, decode_response, encode_body, query_overhead
from .transport import Transport

if TYPE_CHECKING:
    from .queue import PendingCall

logger = get_logger(__name__)


class Dispatcher:
    """Encodes batches for one endpoint and demultiplexes the responses."""

    def __init__(self, transport: Transport, endpoint: str, headers: Optional[Mapping[str, str]] = None):
        self.transport = transport
        self.endpoint = endpoint.rstrip("/")
        self.headers = dict(headers or {})

    def base_size(self) -> int:
        """URL bytes of a batch before any call is encoded."""
        return len(self.endpoint) + query_overhead()

    def measure(self, descriptors: Sequence[CallDescriptor]) -> int:
        """Exact URL length of a batch made of ``descriptors``."""
        return len(build_url(self.endpoint, descriptors))

    def build_request(self, descriptors: Sequence[CallDescriptor], body: Optional[bytes] = None) -> WireRequest:
        headers = {"content-type": "application/json", "accept": "application/json"}
        headers.update(self.headers)
        return WireRequest(
            url=build_url(self.endpoint, descriptors),
            body=encode_body(descriptors) if body is None else body,
            headers=headers,
        )

    async def dispatch(self, batch: Sequence["PendingCall"]) -> None:
        """Send ``batch`` and settle every future in it exactly once."""
        with BatchContext.bind():
            sendable, body = self._encodable(batch)
            if not sendable:
                return

            timer = Timer("dispatch_batch", {"batch_size": len(sendable)}).start()
            try:
                request = self.build_request([p.descriptor for p in sendable], body)
                response = await self.transport.send(request)
                items = decode_response(response)
            except TransportError as e:
                timer.mark_failure()
                self._reject_all(sendable, e)
                return
            except Exception as e:
                timer.mark_failure()
                logger.error("Batch dispatch raised", exc_info=e)
                self._reject_all(sendable, TransportError(f"{type(e).__name__}: {e}"))
                return

            self._settle(sendable, items)
            logger.debug(
                "Batch settled",
                batch_size=len(sendable),
                status_code=response.status_code,
                duration_ms=round(timer.stop().duration_ms, 3),
            )

    def _encodable(self, batch: Sequence["PendingCall"]) -> Tuple[List["PendingCall"], bytes]:
        """Encode the body, dropping calls whose input cannot be encoded and failing only those."""
        try:
            return list(batch), encode_body([p.descriptor for p in batch])
        except (TypeError, ValueError):
            pass

        sendable = []
        for pending in batch:
            try:
                encode_body([pending.descriptor])
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Call input is not JSON serializable",
                    call_id=pending.descriptor.id,
                    path=pending.descriptor.dotted_path,
                    error=str(e),
                )
                self._fail(pending, UsageError(f"input is not JSON serializable ({e})", path=pending.descriptor.path))
            else:
                sendable.append(pending)
        return sendable, encode_body([p.descriptor for p in sendable])

    def _settle(self, batch: Sequence["PendingCall"], items) -> None:
        waiting: Dict[str, "PendingCall"] = {p.descriptor.id: p for p in batch}

        for item in items:
            pending = waiting.pop(item.id, None)
            if pending is None:
                logger.warning("Response item with unknown id ignored", call_id=item.id)
                continue

            if isinstance(item.outcome, Failure):
                error = item.outcome.error
                self._fail(pending, remote_error(error.code, error.name, error.message, call_id=item.id))
            elif not pending.future.done():
                pending.future.set_result(item.outcome.data)

        for call_id, pending in waiting.items():
            logger.warning("Response is missing a call", call_id=call_id, path=pending.descriptor.dotted_path)
            self._fail(pending, ProtocolError(f"response has no item for call id {call_id!r}", call_id=call_id))

    def _reject_all(self, batch: Sequence["PendingCall"], error: TransportError) -> None:
        logger.warning(
            "Batch failed",
            batch_size=len(batch),
            status_code=error.status_code,
            error=error.reason,
        )
        for pending in batch:
            self._fail(pending, error)

    @staticmethod
    def _fail(pending: "PendingCall", error: PathRpcError) -> None:
        if not pending.future.done():
            pending.future.set_exception(error)
