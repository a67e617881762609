"""
pathrpc - Batched, path-addressed RPC for asyncio clients and FastAPI servers.

Remote methods are exposed through a nested namespace of router classes. A
client calls them as if they were local coroutines while calls issued close
together are combined into a single HTTP request, executed concurrently on the
server and correlated back to each caller by id.
"""

from .client import RpcClient, build_namespace, describe_path
from .config import BatchingConfig, ClientConfig, PathRpcConfig, ServerConfig, get_config, set_config
from .errors import (
    DomainError,
    NotFoundError,
    OversizeError,
    PathRpcError,
    ProtocolError,
    RemoteCallError,
    RpcException,
    StartupValidationError,
    TransportError,
    UsageError,
)
from .server import Context, UploadConfig, define_manifest, mount_rpc, route, router
from .types import MISSING, CallDescriptor, ErrorInfo, Failure, Success

__version__ = "0.1.0"

__all__ = [
    "RpcClient",
    "build_namespace",
    "describe_path",
    "router",
    "route",
    "UploadConfig",
    "Context",
    "define_manifest",
    "mount_rpc",
    "BatchingConfig",
    "ClientConfig",
    "ServerConfig",
    "PathRpcConfig",
    "get_config",
    "set_config",
    "MISSING",
    "CallDescriptor",
    "ErrorInfo",
    "Success",
    "Failure",
    "PathRpcError",
    "UsageError",
    "OversizeError",
    "RemoteCallError",
    "NotFoundError",
    "DomainError",
    "TransportError",
    "ProtocolError",
    "StartupValidationError",
    "RpcException",
]
