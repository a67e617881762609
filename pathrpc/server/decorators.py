"""
Router and route markers.

Only classes decorated with ``@router()`` may appear as manifest leaves, and
only their ``@route()`` methods are callable over the wire::

    @router()
    class UsersRouter:
        @route()
        async def get_user(self, input):
            ...
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

ROUTER_MARKER = "__pathrpc_router__"
ROUTE_MARKER = "__pathrpc_route__"

UPLOAD_MODES = ("single", "multiple")


@dataclass(frozen=True)
class UploadConfig:
    """File-upload settings carried on a route's registry entry."""

    mode: str = "single"
    field: str = "file"
    max_files: Optional[int] = None

    def __post_init__(self):
        if self.mode not in UPLOAD_MODES:
            raise ValueError(f"Invalid upload mode: {self.mode}")

        if not self.field:
            raise ValueError("upload field name cannot be empty")

        if self.max_files is not None and self.max_files < 1:
            raise ValueError("max_files must be at least 1")

        if self.mode == "single" and self.max_files not in (None, 1):
            raise ValueError("max_files only applies to multiple-file uploads")


@dataclass(frozen=True)
class RouterInfo:
    name: str


@dataclass(frozen=True)
class RouteInfo:
    upload: Optional[UploadConfig] = None


def router(name: Optional[str] = None) -> Callable[[type], type]:
    """Mark a class as a router whose ``@route`` methods can be registered."""

    def decorator(cls: type) -> type:
        if not inspect.isclass(cls):
            raise TypeError(f"@router() can only decorate classes, got {cls!r}")
        setattr(cls, ROUTER_MARKER, RouterInfo(name=name or cls.__name__))
        return cls

    return decorator


def route(upload: Optional[UploadConfig] = None) -> Callable[[Callable], Callable]:
    """Mark a router method as remotely callable."""

    def decorator(fn: Callable) -> Callable:
        if not callable(fn) or isinstance(fn, (staticmethod, classmethod)):
            raise TypeError(f"@route() can only decorate instance methods, got {fn!r}")
        setattr(fn, ROUTE_MARKER, RouteInfo(upload=upload))
        return fn

    return decorator


def is_router(obj: Any) -> bool:
    """True when ``obj`` is a class explicitly marked with ``@router()``."""
    return inspect.isclass(obj) and ROUTER_MARKER in vars(obj)


def router_info(cls: type) -> RouterInfo:
    return vars(cls)[ROUTER_MARKER]


def route_info(fn: Any) -> Optional[RouteInfo]:
    return getattr(fn, ROUTE_MARKER, None)


def declared_routes(cls: type) -> List[Tuple[str, Any, RouteInfo]]:
    """
    ``(name, raw attribute, RouteInfo)`` for every marked method, base classes
    first and in declaration order. Overrides replace their base entry.
    """
    found = {}
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            target = attr.__func__ if isinstance(attr, (staticmethod, classmethod)) else attr
            info = route_info(target)
            if info is not None:
                found[name] = (attr, info)
            elif name in found:
                del found[name]
    return [(name, attr, info) for name, (attr, info) in found.items()]
