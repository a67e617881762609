"""
Batch Executor

Runs every call of an inbound batch concurrently and turns each call's result
or exception into its own response item. One call's failure never reaches its
batch-mates: exceptions are caught at the item boundary.
"""

import asyncio
import functools
import inspect
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError

from ..config import ServerConfig, get_config
from ..errors import NotFoundError, RemoteCallError, RpcException
from ..logging import get_logger
from ..types import MISSING, BatchItem, BatchResponseItem, ErrorInfo, Failure, Success
from ..utils.timers import Timer, time_operation
from .registry import PathRegistry, RouteEntry

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        msg = error.get("msg", "Validation error")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid input"


class BatchExecutor:
    """Fan-out executor for decoded batch items."""

    def __init__(self, registry: PathRegistry, config: Optional[ServerConfig] = None):
        self.registry = registry
        self.config = config or get_config().server

    async def execute(
        self, items: Sequence[BatchItem], context: Optional[Mapping[str, Any]] = None
    ) -> List[BatchResponseItem]:
        """
        Execute all items concurrently.

        Args:
            items: Decoded calls of one batch
            context: Host-supplied values available to ``Context`` bindings

        Returns:
            One response item per request item, in request order
        """
        base_context = dict(context or {})

        with time_operation("execute_batch", {"batch_size": len(items)}):
            results = await asyncio.gather(
                *(self._run_item(item, base_context) for item in items)
            )

        failed = sum(1 for result in results if not result.ok)
        logger.info("Batch executed", batch_size=len(items), failed=failed)
        return list(results)

    async def _run_item(self, item: BatchItem, base_context: Dict[str, Any]) -> BatchResponseItem:
        try:
            entry = self.registry.lookup(item.path)
        except NotFoundError as e:
            logger.info("Route not found", call_id=item.id, path=item.dotted_path)
            return BatchResponseItem(item.id, Failure(ErrorInfo(e.code, e.name, e.message)))

        context = dict(base_context, call_id=item.id, path=item.dotted_path)
        timer = Timer(item.dotted_path).start()
        try:
            data = await self.invoke(entry, item.input, context)
        except Exception as exc:
            timer.mark_failure()
            info = self.error_info(exc)
            self._log_failure(item, info, exc, timer.stop().duration_ms)
            return BatchResponseItem(item.id, Failure(info))

        logger.debug(
            "Route completed",
            call_id=item.id,
            path=item.dotted_path,
            duration_ms=round(timer.stop().duration_ms, 3),
        )
        return BatchResponseItem(item.id, Success(data))

    async def invoke(self, entry: RouteEntry, call_input: Any, context: Mapping[str, Any]) -> Any:
        """Call one route. Plain methods run on the default thread pool so they fan out too."""
        args = []
        if entry.accepts_input:
            if call_input is not MISSING:
                args.append(self._coerce_input(entry, call_input))
            elif not entry.input_has_default:
                args.append(self._coerce_input(entry, None))

        kwargs = {name: binding.resolve(context) for name, binding in entry.bindings.items()}

        if entry.is_async:
            result = await entry.method(*args, **kwargs)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, functools.partial(entry.method, *args, **kwargs))

        if inspect.isawaitable(result):
            result = await result

        data = jsonable_encoder(result)
        # Must render as strict JSON on its own, like the response body
        json.dumps(data, ensure_ascii=False, allow_nan=False)
        return data

    @staticmethod
    def _coerce_input(entry: RouteEntry, value: Any) -> Any:
        if entry.input_model is None:
            return value
        return entry.input_model.model_validate(value)

    def error_info(self, exc: Exception) -> ErrorInfo:
        """Derive the failure code, name and message sent for ``exc``."""
        if isinstance(exc, RpcException):
            return ErrorInfo(exc.status, exc.name, exc.message)

        if isinstance(exc, PydanticValidationError):
            return ErrorInfo(400, "ValidationError", _validation_message(exc))

        if isinstance(exc, RemoteCallError):
            return ErrorInfo(exc.code, exc.name, exc.message)

        status = getattr(exc, "status_code", None)
        if isinstance(status, int) and not isinstance(status, bool):
            detail = getattr(exc, "detail", None)
            return ErrorInfo(status, type(exc).__name__, str(detail if detail is not None else exc))

        if self.config.expose_internal_errors:
            message = str(exc) or INTERNAL_ERROR_MESSAGE
        else:
            message = INTERNAL_ERROR_MESSAGE
        return ErrorInfo(500, type(exc).__name__, message)

    @staticmethod
    def _log_failure(item: BatchItem, info: ErrorInfo, exc: Exception, duration_ms: float):
        fields = {
            "call_id": item.id,
            "path": item.dotted_path,
            "code": info.code,
            "error_name": info.name,
            "duration_ms": round(duration_ms, 3),
        }
        if info.code >= 500:
            logger.error("Route raised", exc_info=exc, **fields)
        else:
            logger.info("Route failed", error=info.message, **fields)
