"""
Wire codec for batched calls.

A batch travels as one POST. The URL carries the id/path pairs in a single
``calls`` query parameter (``calls=1:users.get_user,2:users.list_users``) and the
JSON body carries the inputs as an ordered array of ``{"id", "input"}`` objects.
The response is a JSON array of ``{"id", "data"}`` or
``{"id", "error": {"code", "name", "message"}}`` items.
"""

import json
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from urllib.parse import quote_plus, urlencode

from pydantic_core import to_jsonable_python

from .errors import ProtocolError, TransportError
from .types import (
    MISSING,
    BatchItem,
    BatchResponseItem,
    CallDescriptor,
    ErrorInfo,
    Failure,
    Success,
    WireResponse,
)

CALLS_PARAM = "calls"
PATH_SEPARATOR = "."
CALL_SEPARATOR = ","
ID_SEPARATOR = ":"
RESERVED_CHARACTERS = (PATH_SEPARATOR, CALL_SEPARATOR, ID_SEPARATOR)

# Kept literal in the query string so the encoding stays compact and readable
_SAFE = ID_SEPARATOR + CALL_SEPARATOR


def segment_error(segment: Any) -> str:
    """Return why ``segment`` cannot be a path segment, or an empty string."""
    if not isinstance(segment, str):
        return f"segment {segment!r} is not a string"
    if not segment:
        return "empty path segment"
    for char in RESERVED_CHARACTERS:
        if char in segment:
            return f"segment {segment!r} contains reserved character {char!r}"
    return ""


def encode_call(call_id: str, path: Sequence[str]) -> str:
    return f"{call_id}{ID_SEPARATOR}{PATH_SEPARATOR.join(path)}"


def encode_calls(descriptors: Iterable[CallDescriptor]) -> str:
    return CALL_SEPARATOR.join(encode_call(d.id, d.path) for d in descriptors)


def encoded_call_size(descriptor: CallDescriptor) -> int:
    """Bytes one call adds to the ``calls`` parameter, excluding its separator."""
    return len(quote_plus(encode_call(descriptor.id, descriptor.path), safe=_SAFE))


def query_overhead() -> int:
    """Bytes of ``?calls=`` preceding the encoded calls."""
    return len(CALLS_PARAM) + 2


def build_url(endpoint: str, descriptors: Sequence[CallDescriptor]) -> str:
    query = urlencode({CALLS_PARAM: encode_calls(descriptors)}, safe=_SAFE)
    return f"{endpoint}?{query}"


def decode_calls(raw: str) -> List[Tuple[str, Tuple[str, ...]]]:
    """Parse the ``calls`` parameter into ordered ``(id, path)`` pairs."""
    if not raw:
        raise ProtocolError("missing or empty 'calls' parameter")

    pairs: List[Tuple[str, Tuple[str, ...]]] = []
    seen = set()
    for chunk in raw.split(CALL_SEPARATOR):
        call_id, sep, dotted = chunk.partition(ID_SEPARATOR)
        if not sep or not call_id:
            raise ProtocolError(f"malformed call entry {chunk!r}")
        if call_id in seen:
            raise ProtocolError(f"duplicate call id {call_id!r}")
        path = tuple(dotted.split(PATH_SEPARATOR))
        if not dotted or any(not segment for segment in path):
            raise ProtocolError(f"malformed path in call entry {chunk!r}")
        seen.add(call_id)
        pairs.append((call_id, path))
    return pairs


def encode_body(descriptors: Iterable[CallDescriptor]) -> bytes:
    items = []
    for descriptor in descriptors:
        item: Dict[str, Any] = {"id": descriptor.id}
        if descriptor.has_input:
            item["input"] = descriptor.input
        items.append(item)
    return json.dumps(items, default=to_jsonable_python).encode("utf-8")


def decode_body(payload: Any) -> Dict[str, Any]:
    """Map call id to input for a decoded JSON body. Absent inputs map to ``MISSING``."""
    if not isinstance(payload, list):
        raise ProtocolError("request body must be a JSON array")

    inputs: Dict[str, Any] = {}
    for entry in payload:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ProtocolError("every body item must be an object with an 'id'")
        call_id = str(entry["id"])
        if call_id in inputs:
            raise ProtocolError(f"duplicate body id {call_id!r}")
        inputs[call_id] = entry.get("input", MISSING)
    return inputs


def decode_batch(raw_calls: str, payload: Any) -> List[BatchItem]:
    """
    Join the ``calls`` parameter with the body into ordered batch items.

    Body ids missing from ``calls`` are rejected. The reverse is tolerated: a
    call with no body entry is decoded with an absent (``MISSING``) input, so
    calls without input may be sent with an empty body.
    """
    pairs = decode_calls(raw_calls)
    inputs = decode_body(payload)

    known = {call_id for call_id, _ in pairs}
    unknown = [call_id for call_id in inputs if call_id not in known]
    if unknown:
        raise ProtocolError(f"body ids {unknown} do not appear in 'calls'")

    return [
        BatchItem(id=call_id, path=path, input=inputs.get(call_id, MISSING))
        for call_id, path in pairs
    ]


def encode_response_item(item: BatchResponseItem) -> Dict[str, Any]:
    if isinstance(item.outcome, Failure):
        return {"id": item.id, "error": item.outcome.error.to_dict()}
    return {"id": item.id, "data": item.outcome.data}


def encode_response(items: Iterable[BatchResponseItem]) -> List[Dict[str, Any]]:
    return [encode_response_item(item) for item in items]


def _error_code(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 500


def decode_response_item(entry: Any) -> BatchResponseItem:
    if not isinstance(entry, dict) or "id" not in entry:
        raise ProtocolError("every response item must be an object with an 'id'")

    call_id = str(entry["id"])
    error = entry.get("error")
    if error is not None:
        if not isinstance(error, dict):
            error = {"message": str(error)}
        info = ErrorInfo(
            code=_error_code(error.get("code", 500)),
            name=str(error.get("name") or "Error"),
            message=str(error.get("message", "")),
        )
        return BatchResponseItem(id=call_id, outcome=Failure(info))
    return BatchResponseItem(id=call_id, outcome=Success(entry.get("data")))


def decode_response(response: WireResponse) -> List[BatchResponseItem]:
    """
    Decode a transport response into response items.

    A response whose body is a batch array is decoded even when the status is
    not 2xx. Anything else is a transport failure for the whole batch.
    """
    try:
        payload = json.loads(response.body.decode("utf-8")) if response.body else None
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TransportError(
            f"unreadable response body ({e})",
            status_code=None if response.is_success else response.status_code,
        ) from e

    if not isinstance(payload, list):
        if response.is_success:
            raise TransportError("response body is not a batch array")
        reason = "no batch body in response"
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            reason = str(payload["error"].get("message", reason))
        raise TransportError(reason, status_code=response.status_code)

    try:
        return [decode_response_item(entry) for entry in payload]
    except ProtocolError as e:
        raise TransportError(e.reason, status_code=response.status_code) from e
