"""
Call Descriptor Builder

Builds an explicit namespace object from a declared shape, with one accessor
per route, so that ``routes.users.get_user({"id": "1"})`` produces the call
descriptor ``(("users", "get_user"), {"id": "1"})`` without a hand-written stub
per route and without intercepting arbitrary attribute access.

A shape can be:

- a nested ``dict`` (``{"users": ["get_user", "list_users"]}``); a ``None``
  value also marks a route;
- a list, tuple or set of route names;
- a server ``Manifest`` or a ``@router()`` class, so a server's own manifest
  can be shared with the client.
"""

import keyword
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import UsageError
from ..server.decorators import declared_routes, is_router
from ..server.manifest import Manifest
from ..types import MISSING, CallDescriptor
from ..wire import PATH_SEPARATOR, segment_error

Invoke = Callable[[CallDescriptor], Any]
ShapeTree = Dict[str, Optional["ShapeTree"]]


def _identity(descriptor: CallDescriptor) -> CallDescriptor:
    return descriptor


def _check_segments(path: Tuple[str, ...]) -> None:
    for segment in path:
        reason = segment_error(segment)
        if reason:
            raise UsageError(reason, path=[str(s) for s in path])


def _insert(tree: ShapeTree, path: Tuple[str, ...], subtree: Optional[ShapeTree]) -> None:
    """Place ``subtree`` (``None`` for a route) at ``path``, merging namespaces."""
    _check_segments(path)
    node = tree
    for depth, segment in enumerate(path[:-1]):
        child = node.setdefault(segment, {})
        if child is None:
            raise UsageError("declared both as a route and as a namespace", path=path[: depth + 1])
        node = child

    last = path[-1]
    if last not in node:
        node[last] = subtree
        return

    existing = node[last]
    if existing is None or subtree is None:
        raise UsageError("declared more than once", path=path)
    for key, value in subtree.items():
        _insert(existing, (key,), value)


def _router_routes(cls: type) -> ShapeTree:
    return {name: None for name, _, _ in declared_routes(cls)}


def normalize_shape(shape: Any) -> ShapeTree:
    """Convert any supported shape declaration into a nested dict with ``None`` leaves."""
    tree: ShapeTree = {}

    if isinstance(shape, Manifest):
        for ns_path, leaf in shape.leaves():
            if not is_router(leaf):
                raise UsageError(f"{leaf!r} is not a @router() class", path=ns_path)
            _insert(tree, ns_path, _router_routes(leaf))
        return tree

    if is_router(shape):
        return _router_routes(shape)

    if isinstance(shape, Mapping):
        for key, value in shape.items():
            if not isinstance(key, str):
                raise UsageError(f"shape key {key!r} is not a string")
            path = tuple(key.split(PATH_SEPARATOR))
            _insert(tree, path, None if value is None else normalize_shape(value))
        return tree

    if isinstance(shape, (list, tuple, set, frozenset)):
        for name in shape:
            if not isinstance(name, str):
                raise UsageError(f"route name {name!r} is not a string")
            _insert(tree, (name,), None)
        return tree

    raise UsageError(f"unsupported shape declaration {shape!r}")


class RouteAccessor:
    """Callable stand-in for one remote route."""

    def __init__(self, path: Tuple[str, ...], invoke: Invoke):
        self._path = path
        self._invoke = invoke

    @property
    def path(self) -> Tuple[str, ...]:
        return self._path

    def describe(self, input: Any = MISSING) -> CallDescriptor:
        return CallDescriptor(path=self._path, input=input)

    def __call__(self, input: Any = MISSING) -> Any:
        return self._invoke(self.describe(input))

    def __repr__(self) -> str:
        return f"<route {PATH_SEPARATOR.join(self._path)}>"


class Namespace:
    """
    A node of the route tree.

    Children are reachable as attributes when their key is a valid identifier
    that does not clash with this class's own members, and always by
    subscription (``ns["get-user"]``).
    """

    def __init__(self, path: Tuple[str, ...], children: Mapping[str, Union["Namespace", RouteAccessor]]):
        self._path = path
        self._children = dict(children)
        for key, child in self._children.items():
            if (
                key.isidentifier()
                and not keyword.iskeyword(key)
                and not key.startswith("_")
                and not hasattr(type(self), key)
            ):
                setattr(self, key, child)

    @property
    def path(self) -> Tuple[str, ...]:
        return self._path

    def members(self) -> List[str]:
        return list(self._children)

    def routes(self) -> Iterator[RouteAccessor]:
        """Every route accessor below this node, depth first."""
        for child in self._children.values():
            if isinstance(child, Namespace):
                yield from child.routes()
            else:
                yield child

    def __getitem__(self, key: str) -> Union["Namespace", RouteAccessor]:
        try:
            return self._children[key]
        except KeyError:
            where = PATH_SEPARATOR.join(self._path) or "<root>"
            raise KeyError(f"'{where}' has no member '{key}'") from None

    def __contains__(self, key: object) -> bool:
        return key in self._children

    def __call__(self, *args, **kwargs):
        if not self._path:
            raise UsageError("no path segments; call a route such as routes.<namespace>.<route>(...)")
        raise UsageError("path does not terminate in a route", path=self._path)

    def __repr__(self) -> str:
        where = PATH_SEPARATOR.join(self._path) or "<root>"
        return f"<namespace {where}: {', '.join(self._children)}>"


def _build(tree: ShapeTree, prefix: Tuple[str, ...], invoke: Invoke) -> Namespace:
    children: Dict[str, Union[Namespace, RouteAccessor]] = {}
    for key, subtree in tree.items():
        path = prefix + (key,)
        if subtree is None:
            children[key] = RouteAccessor(path, invoke)
        else:
            children[key] = _build(subtree, path, invoke)
    return Namespace(prefix, children)


def build_namespace(shape: Any, invoke: Optional[Invoke] = None) -> Namespace:
    """
    Build the accessor tree for ``shape``.

    Without ``invoke`` each accessor returns its ``CallDescriptor``; a client
    passes its queue entry point so accessors return awaitable futures.
    """
    return _build(normalize_shape(shape), (), invoke or _identity)


def describe_path(path: Union[str, Sequence[str]], input: Any = MISSING) -> CallDescriptor:
    """Build a descriptor from a dotted string or a sequence of segments."""
    segments = tuple(path.split(PATH_SEPARATOR)) if isinstance(path, str) else tuple(path)
    if not segments or segments == ("",):
        raise UsageError("no path segments")
    _check_segments(segments)
    return CallDescriptor(path=segments, input=input)
