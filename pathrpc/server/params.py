"""
Parameter bindings for route methods.

The first parameter of a route method always receives the call's input. Any
further parameter is filled from the invocation context supplied by the host,
and must say so with a ``Context`` binding, either as its default value::

    @route()
    def whoami(self, input, request=Context("request")): ...

or through ``typing.Annotated``::

    @route()
    def whoami(self, input, request: Annotated[Request, Context("request")]): ...
"""

import inspect
import typing
from typing import Any, Dict, Mapping, Optional

from ..types import MISSING


class Context:
    """Bind a route parameter to a key of the per-call invocation context."""

    def __init__(self, key: str, default: Any = MISSING):
        if not key:
            raise ValueError("Context key must be a non-empty string")
        self.key = key
        self.default = default

    def resolve(self, context: Mapping[str, Any]) -> Any:
        if self.key in context:
            return context[self.key]
        if self.default is not MISSING:
            return self.default
        raise LookupError(f"invocation context has no value for '{self.key}'")

    def __repr__(self) -> str:
        return f"Context({self.key!r})"


def resolve_type_hints(fn) -> Dict[str, Any]:
    """Type hints with ``Annotated`` extras kept. Unresolvable forward references are skipped."""
    try:
        return typing.get_type_hints(fn, include_extras=True)
    except (NameError, TypeError):
        return {}


def _annotation(param: inspect.Parameter, hints: Mapping[str, Any]) -> Any:
    return hints.get(param.name, param.annotation)


def find_binding(param: inspect.Parameter, hints: Mapping[str, Any]) -> Optional[Context]:
    """Return the ``Context`` binding declared on ``param``, if any."""
    if isinstance(param.default, Context):
        return param.default

    annotation = _annotation(param, hints)
    if typing.get_origin(annotation) is typing.Annotated:
        for extra in annotation.__metadata__:
            if isinstance(extra, Context):
                return extra
    return None


def unwrap_annotation(param: inspect.Parameter, hints: Mapping[str, Any]) -> Any:
    """The parameter's annotation with any ``Annotated`` wrapper removed."""
    annotation = _annotation(param, hints)
    if typing.get_origin(annotation) is typing.Annotated:
        return typing.get_args(annotation)[0]
    return annotation
