"""FastAPI integration: the batch endpoint and a one-call mount helper."""

import json
from typing import Any, Mapping, Optional, Union

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from ..config import ServerConfig, get_config
from ..errors import ProtocolError
from ..logging import BatchContext, get_logger
from ..types import ErrorInfo
from ..wire import CALLS_PARAM, decode_batch, encode_response
from .executor import BatchExecutor
from .manifest import Manifest
from .registry import InstanceFactory, PathRegistry

logger = get_logger(__name__)


def _protocol_error(reason: str) -> JSONResponse:
    info = ErrorInfo(400, "ProtocolError", reason)
    return JSONResponse(status_code=400, content={"error": info.to_dict()})


def create_rpc_router(
    registry: PathRegistry,
    config: Optional[ServerConfig] = None,
    executor: Optional[BatchExecutor] = None,
) -> APIRouter:
    """Build an ``APIRouter`` serving ``POST /{api_prefix}`` for ``registry``."""
    config = config or get_config().server
    executor = executor or BatchExecutor(registry, config)
    router = APIRouter(tags=["rpc"])

    @router.post(f"/{config.api_prefix}")
    async def handle_batch(request: Request):
        """Execute a batch of calls and return one correlated item per call."""
        with BatchContext.bind():
            raw_body = await request.body()
            try:
                payload = json.loads(raw_body) if raw_body else []
            except ValueError:
                logger.warning("Rejected batch with unreadable body")
                return _protocol_error("request body is not valid JSON")

            try:
                items = decode_batch(request.query_params.get(CALLS_PARAM, ""), payload)
            except ProtocolError as e:
                logger.warning("Rejected malformed batch", reason=e.reason)
                return _protocol_error(e.reason)

            if len(items) > config.max_calls_per_request:
                logger.warning(
                    "Rejected oversized batch",
                    batch_size=len(items),
                    limit=config.max_calls_per_request,
                )
                return _protocol_error(
                    f"batch of {len(items)} calls exceeds the limit of {config.max_calls_per_request}"
                )

            results = await executor.execute(
                items, {"request": request, "headers": request.headers}
            )
            return JSONResponse(content=encode_response(results))

    return router


def mount_rpc(
    app: FastAPI,
    manifest: Union[Manifest, PathRegistry, Mapping[str, Any]],
    instance_factory: Optional[InstanceFactory] = None,
    config: Optional[ServerConfig] = None,
) -> PathRegistry:
    """
    Validate ``manifest`` and mount its batch endpoint on ``app``.

    Registry validation happens here, before the app serves anything, so an
    invalid manifest raises ``StartupValidationError`` at construction time.
    """
    if isinstance(manifest, PathRegistry):
        registry = manifest
    else:
        registry = PathRegistry.build(manifest, instance_factory)

    app.include_router(create_rpc_router(registry, config))
    app.state.rpc_registry = registry
    return registry
