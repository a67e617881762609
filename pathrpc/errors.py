"""
Error Definitions for pathrpc

This module defines the exception classes raised on both sides of the wire.
Per-call failures (oversize, not found, domain errors) only ever reach the
caller that issued the call; transport and startup validation failures are the
only errors allowed to affect more than one call.
"""

from typing import Any, Dict, Optional, Sequence


class PathRpcError(Exception):
    """Base exception class for all pathrpc errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class UsageError(PathRpcError):
    """Raised at the call site when a namespace is used incorrectly."""

    def __init__(self, reason: str, path: Optional[Sequence[str]] = None, **details):
        dotted = ".".join(path) if path else ""
        if dotted:
            message = f"Invalid call on '{dotted}': {reason}"
        else:
            message = f"Invalid call: {reason}"

        super().__init__(message, details)
        self.reason = reason
        self.path = tuple(path or ())


class OversizeError(PathRpcError):
    """Raised when a single call cannot fit within the URL size bound."""

    def __init__(self, path: str, size: int, limit: int, **details):
        message = f"Call to '{path}' needs {size} bytes of URL but the limit is {limit}"

        super().__init__(message, {"size": size, "limit": limit, **details})
        self.path = path
        self.size = size
        self.limit = limit


class RemoteCallError(PathRpcError):
    """A single call failed on the server. Carries the remote code, name and message."""

    def __init__(self, code: int, name: str, message: str, call_id: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.name = name
        self.call_id = call_id

    def __str__(self) -> str:
        return f"{self.name} ({self.code}): {self.message}"


class NotFoundError(RemoteCallError):
    """The server has no route registered for the requested path."""

    def __init__(
        self,
        message: str,
        code: int = 404,
        name: str = "NotFoundError",
        call_id: Optional[str] = None,
    ):
        super().__init__(code, name, message, call_id=call_id)

    @classmethod
    def for_path(cls, path: str) -> "NotFoundError":
        return cls(f"No route registered for path '{path}'")


class DomainError(RemoteCallError):
    """An exception was raised inside a resolved route method."""


class TransportError(PathRpcError):
    """Raised when the batch request itself could not be delivered or read."""

    def __init__(self, reason: str, status_code: Optional[int] = None, **details):
        if status_code is not None:
            message = f"Batch request failed with HTTP {status_code}: {reason}"
        else:
            message = f"Batch request failed: {reason}"

        super().__init__(message, details)
        self.reason = reason
        self.status_code = status_code


class ProtocolError(PathRpcError):
    """Raised when a batch violates the wire format or its correlation rules."""

    def __init__(self, reason: str, **details):
        super().__init__(f"Protocol violation: {reason}", details)
        self.reason = reason


class StartupValidationError(PathRpcError):
    """Raised while building the path registry. Fatal: the server must not serve."""

    def __init__(self, path: str, reason: str, **details):
        message = f"Invalid route registration at '{path or '<root>'}': {reason}"

        super().__init__(message, {"path": path, "reason": reason, **details})
        self.path = path
        self.reason = reason


class RpcException(Exception):
    """
    Raise from a route method to control the failure sent back to the caller.

    ``status`` becomes the failure code and ``name`` defaults to the class name,
    so subclasses such as ``class Forbidden(RpcException)`` read naturally on
    the client side.
    """

    def __init__(self, message: str, status: int = 400, name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.name = name or type(self).__name__


def remote_error(code: int, name: str, message: str, call_id: Optional[str] = None) -> RemoteCallError:
    """Build the client-side exception for a failure item received from the server."""
    if name == "NotFoundError":
        return NotFoundError(message, code=code, name=name, call_id=call_id)
    return DomainError(code, name, message, call_id=call_id)
