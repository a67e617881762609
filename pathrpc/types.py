"""
Core Type Definitions for pathrpc

This module defines the data exchanged between the client queue, the wire
codec and the server executor: call descriptors, per-call outcomes and the raw
request/response envelopes handed to a transport.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple, Union


class _Missing:
    """Marker for an absent call input. Distinct from ``None`` (JSON null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class QueueState(Enum):
    """State of a client batch queue."""

    IDLE = auto()  # No open batch
    OPEN = auto()  # Batch accepting calls, debounce timer armed
    FLUSHING = auto()  # Batch being measured and handed to the dispatcher


@dataclass(frozen=True)
class CallDescriptor:
    """One invocation of a remote route."""

    path: Tuple[str, ...]
    input: Any = MISSING
    id: Optional[str] = None

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)

    @property
    def has_input(self) -> bool:
        return self.input is not MISSING

    def with_id(self, call_id: str) -> "CallDescriptor":
        """Return a copy carrying the correlation id assigned by the queue."""
        return replace(self, id=call_id)


@dataclass(frozen=True)
class ErrorInfo:
    """Failure details sent back for one call."""

    code: int
    name: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "name": self.name, "message": self.message}


@dataclass(frozen=True)
class Success:
    """Call completed; ``data`` is the route's return value."""

    data: Any = None


@dataclass(frozen=True)
class Failure:
    """Call failed; siblings in the same batch are unaffected."""

    error: ErrorInfo


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class BatchResponseItem:
    """Outcome of one call, correlated by id rather than array position."""

    id: str
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)


@dataclass(frozen=True)
class BatchItem:
    """One decoded call on the server side."""

    id: str
    path: Tuple[str, ...]
    input: Any = MISSING

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)


@dataclass
class WireRequest:
    """A fully encoded batch request, ready for a transport."""

    url: str
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class WireResponse:
    """Raw transport response."""

    status_code: int
    body: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300
