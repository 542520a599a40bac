from __future__ import annotations

import json

import pytest

from piohome.home.errors import RPCMalformedError
from piohome.home.jsonrpc import encode_request, make_request, parse_message


def test_make_request_has_fresh_ids() -> None:
    first = make_request("ide.listen_commands")
    second = make_request("ide.listen_commands")
    assert first["jsonrpc"] == "2.0"
    assert first["method"] == "ide.listen_commands"
    assert "params" not in first
    assert first["id"] != second["id"]


def test_encode_request_keeps_explicit_id_and_params() -> None:
    data = json.loads(encode_request("core.version", params=[1], request_id="r1"))
    assert data == {"jsonrpc": "2.0", "id": "r1", "method": "core.version", "params": [1]}


def test_parse_success() -> None:
    msg = parse_message(
        '{"jsonrpc": "2.0", "id": "1", "result": {"method": "open_project", "params": ["/p"]}}'
    )
    assert msg.kind == "success"
    assert msg.id == "1"
    assert msg.payload == {"method": "open_project", "params": ["/p"]}


def test_parse_error() -> None:
    msg = parse_message(
        b'{"jsonrpc": "2.0", "id": 3, "error": {"code": -32601, "message": "nope"}}'
    )
    assert msg.kind == "error"
    assert msg.payload["message"] == "nope"


def test_parse_request_and_notification() -> None:
    assert parse_message('{"jsonrpc": "2.0", "id": 1, "method": "x"}').kind == "request"
    assert parse_message('{"jsonrpc": "2.0", "method": "x"}').kind == "notification"


@pytest.mark.parametrize(
    "data",
    [
        "not json",
        "[]",
        '{"id": 1, "result": 1}',
        '{"jsonrpc": "1.0", "id": 1, "result": 1}',
        '{"jsonrpc": "2.0", "id": 1}',
        '{"jsonrpc": "2.0", "id": 1, "result": 1, "error": {"code": 1, "message": "x"}}',
        '{"jsonrpc": "2.0", "id": 1, "error": "bad"}',
        '{"jsonrpc": "2.0", "id": {"a": 1}, "result": 1}',
        '{"jsonrpc": "2.0", "id": 1, "method": 5}',
    ],
)
def test_parse_rejects_malformed(data: str) -> None:
    with pytest.raises(RPCMalformedError):
        parse_message(data)
