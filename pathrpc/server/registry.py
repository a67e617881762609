"""
Path Registry

Resolves a dotted call path to exactly one invocation target. The registry is
built once from a manifest, validated completely before the server accepts
traffic, and never mutated afterwards, so concurrent lookups need no locking.
"""

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from ..errors import NotFoundError, StartupValidationError
from ..logging import get_logger
from ..wire import PATH_SEPARATOR, segment_error
from .decorators import UploadConfig, declared_routes, is_router, router_info
from .manifest import Manifest, define_manifest
from .params import Context, find_binding, resolve_type_hints, unwrap_annotation

logger = get_logger(__name__)

InstanceFactory = Callable[[type], Any]

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
_VARIADIC = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


@dataclass(frozen=True)
class RouteEntry:
    """A resolved invocation target."""

    path: Tuple[str, ...]
    instance: Any
    method: Callable[..., Any]
    method_name: str
    router_name: str
    upload: Optional[UploadConfig] = None
    accepts_input: bool = True
    input_has_default: bool = False
    input_model: Optional[type] = None
    bindings: Mapping[str, Context] = field(default_factory=dict)
    is_async: bool = False

    @property
    def dotted_path(self) -> str:
        return PATH_SEPARATOR.join(self.path)


@dataclass(frozen=True)
class _Signature:
    accepts_input: bool
    input_has_default: bool
    input_model: Optional[type]
    bindings: Mapping[str, Context]


def _inspect_signature(dotted: str, fn: Callable) -> _Signature:
    """Validate a route method's parameters. ``fn`` is the plain function, ``self`` included."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        raise StartupValidationError(dotted, f"cannot inspect route signature: {e}") from e

    params = list(signature.parameters.values())
    if not params or params[0].kind not in _POSITIONAL:
        raise StartupValidationError(dotted, "route must be an instance method taking 'self'")
    params = params[1:]

    hints = resolve_type_hints(fn)
    positional = [p for p in params if p.kind in _POSITIONAL]
    input_param = positional[0] if positional else None

    input_model = None
    if input_param is not None:
        if find_binding(input_param, hints) is not None:
            raise StartupValidationError(
                dotted,
                f"first parameter '{input_param.name}' is reserved for the call input "
                "and cannot carry a Context binding",
            )
        annotation = unwrap_annotation(input_param, hints)
        if inspect.isclass(annotation) and issubclass(annotation, BaseModel):
            input_model = annotation

    bindings: Dict[str, Context] = {}
    for param in params:
        if param is input_param or param.kind in _VARIADIC:
            continue
        binding = find_binding(param, hints)
        if binding is not None:
            if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                raise StartupValidationError(
                    dotted, f"bound parameter '{param.name}' must be passable by keyword"
                )
            bindings[param.name] = binding
        elif param.default is inspect.Parameter.empty:
            raise StartupValidationError(
                dotted, f"parameter '{param.name}' has neither a Context binding nor a default"
            )

    return _Signature(
        accepts_input=input_param is not None,
        input_has_default=(
            input_param is not None and input_param.default is not inspect.Parameter.empty
        ),
        input_model=input_model,
        bindings=MappingProxyType(bindings),
    )


class PathRegistry:
    """Read-only mapping of dotted paths to route entries."""

    def __init__(self, entries: Mapping[str, RouteEntry]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def build(
        cls,
        manifest: Union[Manifest, Mapping[str, Any]],
        instance_factory: Optional[InstanceFactory] = None,
    ) -> "PathRegistry":
        """
        Walk the manifest, validate every leaf and route, and instantiate routers.

        Raises:
            StartupValidationError: on the first invalid leaf, route, key or
                duplicate path. The message names the offending path.
        """
        if not isinstance(manifest, Manifest):
            manifest = define_manifest(manifest)
        factory = instance_factory or (lambda router_cls: router_cls())

        entries: Dict[str, RouteEntry] = {}
        namespaces: Dict[str, str] = {}
        leaves: Dict[str, Any] = {}
        instances: Dict[type, Any] = {}

        for ns_path, leaf in manifest.leaves():
            ns_dotted = PATH_SEPARATOR.join(ns_path)
            for segment in ns_path:
                reason = segment_error(segment)
                if reason:
                    raise StartupValidationError(ns_dotted, reason)

            if ns_dotted in leaves:
                raise StartupValidationError(ns_dotted, "namespace registered more than once")
            leaves[ns_dotted] = leaf

            if not is_router(leaf):
                raise StartupValidationError(
                    ns_dotted, f"{leaf!r} is not a class decorated with @router()"
                )

            routes = declared_routes(leaf)
            if not routes:
                logger.warning("Router exposes no routes", namespace=ns_dotted, router=leaf.__name__)

            for method_name, attr, info in routes:
                path = ns_path + (method_name,)
                dotted = PATH_SEPARATOR.join(path)
                reason = segment_error(method_name)
                if reason:
                    raise StartupValidationError(dotted, reason)
                if isinstance(attr, (staticmethod, classmethod)) or not inspect.isfunction(attr):
                    raise StartupValidationError(dotted, "route must be a plain instance method")
                if dotted in entries:
                    raise StartupValidationError(dotted, "path registered more than once")

                signature = _inspect_signature(dotted, attr)

                if leaf not in instances:
                    try:
                        instances[leaf] = factory(leaf)
                    except Exception as e:
                        raise StartupValidationError(
                            ns_dotted, f"could not instantiate {leaf.__name__}: {e}"
                        ) from e
                instance = instances[leaf]

                entries[dotted] = RouteEntry(
                    path=path,
                    instance=instance,
                    method=getattr(instance, method_name),
                    method_name=method_name,
                    router_name=router_info(leaf).name,
                    upload=info.upload,
                    accepts_input=signature.accepts_input,
                    input_has_default=signature.input_has_default,
                    input_model=signature.input_model,
                    bindings=signature.bindings,
                    is_async=inspect.iscoroutinefunction(attr),
                )
                for depth in range(1, len(path)):
                    namespaces.setdefault(PATH_SEPARATOR.join(path[:depth]), dotted)

        overlap = sorted(set(entries) & set(namespaces))
        if overlap:
            raise StartupValidationError(
                overlap[0], f"path is both a route and the namespace of '{namespaces[overlap[0]]}'"
            )

        registry = cls(entries)
        logger.info("Path registry built", routes=len(registry), routers=len(instances))
        return registry

    def lookup(self, path: Union[str, Sequence[str]]) -> RouteEntry:
        """Return the entry for ``path`` or raise ``NotFoundError``."""
        dotted = path if isinstance(path, str) else PATH_SEPARATOR.join(path)
        entry = self._entries.get(dotted)
        if entry is None:
            raise NotFoundError.for_path(dotted)
        return entry

    def paths(self) -> List[str]:
        return list(self._entries)

    def entries(self) -> List[RouteEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
