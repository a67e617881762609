"""
Manifest: the declarative tree mapping namespace keys to router classes.

    manifest = define_manifest({
        "users": UsersRouter,
        "admin": {"audit": AuditRouter},
        "billing.invoices": InvoicesRouter,   # same as {"billing": {"invoices": ...}}
    })

Every route of a leaf router is callable at ``<namespace path>.<method name>``.
"""

from typing import Any, Iterator, Mapping, Tuple

from ..errors import StartupValidationError

Leaf = Tuple[Tuple[str, ...], Any]


class Manifest:
    """Immutable wrapper around a manifest tree."""

    def __init__(self, tree: Mapping[str, Any]):
        if not isinstance(tree, Mapping):
            raise StartupValidationError("", f"manifest must be a mapping, got {type(tree).__name__}")
        self._tree = dict(tree)

    @property
    def tree(self) -> Mapping[str, Any]:
        return self._tree

    def leaves(self) -> Iterator[Leaf]:
        """Yield ``(namespace path, value)`` for every non-mapping value, dotted keys expanded."""
        yield from _walk(self._tree, ())

    def __repr__(self) -> str:
        return f"Manifest({list(self._tree)})"


def _walk(node: Mapping[str, Any], prefix: Tuple[str, ...]) -> Iterator[Leaf]:
    for key, value in node.items():
        if not isinstance(key, str):
            raise StartupValidationError(".".join(prefix), f"manifest key {key!r} is not a string")
        path = prefix + tuple(key.split("."))
        if isinstance(value, Mapping):
            if not value:
                raise StartupValidationError(".".join(path), "empty namespace")
            yield from _walk(value, path)
        else:
            yield path, value


def define_manifest(tree: Mapping[str, Any]) -> Manifest:
    """Declare the namespace exposed by a server."""
    return Manifest(tree)
