"""
Server side of pathrpc

Declare routers with ``@router()``/``@route()``, group them in a manifest, and
mount the batch endpoint on a FastAPI app with ``mount_rpc``.
"""

from ..errors import RpcException, StartupValidationError
from .decorators import UploadConfig, route, router
from .executor import BatchExecutor
from .integration import create_rpc_router, mount_rpc
from .manifest import Manifest, define_manifest
from .params import Context
from .registry import PathRegistry, RouteEntry

__all__ = [
    "router",
    "route",
    "UploadConfig",
    "Context",
    "Manifest",
    "define_manifest",
    "PathRegistry",
    "RouteEntry",
    "BatchExecutor",
    "create_rpc_router",
    "mount_rpc",
    "RpcException",
    "StartupValidationError",
]
