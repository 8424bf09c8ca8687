"""JMAP request/response envelope codec.

Arguments are schema-less trees (dicts, lists, scalars) built by each facade
method.  Two node types carry back-references to results that do not exist
yet when the request is built:

* ``CreationRef`` — a creation id from an earlier ``/set`` in the same
  request.  Encodes to ``"#<id>"`` and may appear as a value or a dict key.
* ``ResultReference`` — a pointer into an earlier method's response.  Its
  dict key gains a ``#`` prefix on the wire (``"ids"`` → ``"#ids"``).

Keeping them as distinct types means a literal id that happens to start with
``#`` is never mistaken for a reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jmapmail.jmap.errors import ApiError, DecodeError, MethodError
from jmapmail.jmap.types import USING


@dataclass(frozen=True)
class CreationRef:
    creation_id: str

    def encode(self) -> str:
        return f"#{self.creation_id}"


@dataclass(frozen=True)
class ResultReference:
    result_of: str
    name: str
    path: str

    def encode(self) -> dict[str, str]:
        return {"resultOf": self.result_of, "name": self.name, "path": self.path}


@dataclass(frozen=True)
class Invocation:
    name: str
    arguments: dict[str, Any]
    call_id: str


@dataclass(frozen=True)
class Response:
    invocations: list[Invocation]
    session_state: str | None = None

    def get(self, call_id: str, name: str | None = None) -> Invocation:
        """Return the first response for ``call_id`` (optionally matching ``name``)."""
        for inv in self.invocations:
            if inv.call_id == call_id and (name is None or inv.name == name):
                return inv
        raise ApiError(f"No {name or 'response'} for call id {call_id!r}")


# ── Encoding ───────────────────────────────────────────────────────────────────


def encode_value(value: Any) -> Any:
    """Convert an argument tree into plain JSON-ready data."""
    if isinstance(value, CreationRef):
        return value.encode()
    if isinstance(value, ResultReference):
        return value.encode()
    if isinstance(value, dict):
        encoded: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, CreationRef):
                key = key.encode()
            elif isinstance(item, ResultReference):
                key = f"#{key}"
            encoded[key] = encode_value(item)
        return encoded
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def encode_request(invocations: list[Invocation], using: list[str] | None = None) -> dict[str, Any]:
    """Build the ``{"using", "methodCalls"}`` envelope.

    Raises ValueError on duplicate call ids — a bug in the caller, not a
    server condition.
    """
    seen: set[str] = set()
    for inv in invocations:
        if inv.call_id in seen:
            raise ValueError(f"Duplicate call id {inv.call_id!r} in request")
        seen.add(inv.call_id)
    return {
        "using": list(using if using is not None else USING),
        "methodCalls": [
            [inv.name, encode_value(inv.arguments), inv.call_id] for inv in invocations
        ],
    }


# ── Decoding ───────────────────────────────────────────────────────────────────


def decode_response(payload: Any) -> Response:
    """Decode a response envelope into typed Invocations."""
    if not isinstance(payload, dict) or not isinstance(payload.get("methodResponses"), list):
        raise DecodeError("Response is missing the methodResponses list")
    invocations: list[Invocation] = []
    for raw in payload["methodResponses"]:
        if (
            not isinstance(raw, list)
            or len(raw) != 3
            or not isinstance(raw[0], str)
            or not isinstance(raw[1], dict)
            or not isinstance(raw[2], str)
        ):
            raise DecodeError(f"Malformed invocation in response: {raw!r:.200}")
        invocations.append(Invocation(name=raw[0], arguments=raw[1], call_id=raw[2]))
    state = payload.get("sessionState")
    return Response(invocations=invocations, session_state=str(state) if state is not None else None)


def raise_for_errors(response: Response) -> None:
    """Fail the whole batch if any invocation is a top-level ``error``."""
    for inv in response.invocations:
        if inv.name == "error":
            raise MethodError(
                str(inv.arguments.get("type") or "unknown"),
                inv.arguments.get("description"),
            )


def check_correlation(sent: list[Invocation], response: Response) -> None:
    """Verify every sent call id is answered, in request order.

    Servers may append extra responses sharing a call id (the implicit
    Email/set produced by ``onSuccessUpdateEmail``), so only the first
    occurrence of each id is positional.
    """
    first_seen: dict[str, int] = {}
    for index, inv in enumerate(response.invocations):
        first_seen.setdefault(inv.call_id, index)
    last = -1
    for inv in sent:
        index = first_seen.get(inv.call_id)
        if index is None:
            raise ApiError(f"Missing response for call id {inv.call_id!r}")
        if index < last:
            raise ApiError(f"Response for call id {inv.call_id!r} is out of order")
        last = index
