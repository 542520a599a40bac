"""JSON-RPC 2.0 framing for the command channel."""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any

from .errors import RPCMalformedError

JSONRPC_VERSION = "2.0"


@dataclass(frozen=True)
class RPCMessage:
    """A parsed inbound envelope.

    ``kind`` is one of "success", "error", "request", "notification".
    """
    kind: str
    id: str | int | None
    payload: Any


def new_request_id() -> str:
    return uuid.uuid4().hex


def make_request(
    method: str,
    params: Any = None,
    request_id: str | int | None = None,
) -> dict[str, Any]:
    request: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id if request_id is not None else new_request_id(),
        "method": method,
    }
    if params is not None:
        request["params"] = params
    return request


def encode_request(
    method: str,
    params: Any = None,
    request_id: str | int | None = None,
) -> str:
    return json.dumps(make_request(method, params, request_id))


def parse_message(data: str | bytes) -> RPCMessage:
    """Classify one frame. Raises RPCMalformedError for anything invalid."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise RPCMalformedError(f"not JSON ({exc})", text) from exc

    if not isinstance(obj, dict):
        raise RPCMalformedError("envelope is not an object", text)
    if obj.get("jsonrpc") != JSONRPC_VERSION:
        raise RPCMalformedError("missing or wrong jsonrpc version", text)

    msg_id = obj.get("id")
    if msg_id is not None and not isinstance(msg_id, (str, int)):
        raise RPCMalformedError("invalid id", text)

    if "method" in obj:
        if not isinstance(obj["method"], str):
            raise RPCMalformedError("method must be a string", text)
        kind = "notification" if msg_id is None else "request"
        return RPCMessage(kind=kind, id=msg_id, payload=obj.get("params"))

    has_result = "result" in obj
    has_error = "error" in obj
    if has_result == has_error:
        raise RPCMalformedError(
            "response needs exactly one of result or error", text,
        )
    if has_result:
        return RPCMessage(kind="success", id=msg_id, payload=obj["result"])

    error = obj["error"]
    if (
        not isinstance(error, dict)
        or not isinstance(error.get("code"), int)
        or not isinstance(error.get("message"), str)
    ):
        raise RPCMalformedError("error object needs code and message", text)
    return RPCMessage(kind="error", id=msg_id, payload=error)
