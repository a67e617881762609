"""
Client side of pathrpc

Calls made through ``RpcClient.routes`` within one debounce window are sent to
the server as a single batch request.
"""

from .builder import Namespace, RouteAccessor, build_namespace, describe_path, normalize_shape
from .client import RpcClient
from .dispatcher import Dispatcher
from .queue import BatchQueue, PendingCall
from .transport import HttpxTransport, Transport

__all__ = [
    "RpcClient",
    "Namespace",
    "RouteAccessor",
    "build_namespace",
    "describe_path",
    "normalize_shape",
    "BatchQueue",
    "PendingCall",
    "Dispatcher",
    "Transport",
    "HttpxTransport",
]
