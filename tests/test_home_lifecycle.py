from __future__ import annotations

import pytest

from piohome.home.identity import get_session_id, new_session_token
from piohome.home.lifecycle import VALID_TRANSITIONS, validate_transition
from piohome.home.models import Endpoint, ServerState


class TestTransitions:
    def test_happy_path(self) -> None:
        path = [
            ServerState.IDLE,
            ServerState.ALLOCATING,
            ServerState.LAUNCHING,
            ServerState.PROBING,
            ServerState.READY,
            ServerState.ALLOCATING,
        ]
        for current, target in zip(path, path[1:]):
            validate_transition(current, target)

    def test_failure_path(self) -> None:
        validate_transition(ServerState.PROBING, ServerState.FAILED)
        validate_transition(ServerState.FAILED, ServerState.IDLE)
        validate_transition(ServerState.FAILED, ServerState.ABORTED)
        validate_transition(ServerState.ABORTED, ServerState.ALLOCATING)

    def test_already_running_skips_probe(self) -> None:
        validate_transition(ServerState.LAUNCHING, ServerState.READY)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ServerState.IDLE, ServerState.READY),
            (ServerState.READY, ServerState.FAILED),
            (ServerState.ABORTED, ServerState.IDLE),
            (ServerState.ALLOCATING, ServerState.PROBING),
        ],
    )
    def test_invalid(self, current: ServerState, target: ServerState) -> None:
        with pytest.raises(ValueError, match="Invalid state transition"):
            validate_transition(current, target)

    def test_every_state_listed(self) -> None:
        assert set(VALID_TRANSITIONS) == set(ServerState)


class TestEndpoint:
    def test_defaults_unassigned(self) -> None:
        endpoint = Endpoint()
        assert endpoint.host == "127.0.0.1"
        assert endpoint.port == 0
        assert not endpoint.assigned

    def test_host_and_secure_are_sticky(self) -> None:
        endpoint = Endpoint()
        endpoint.assign(port=8010, host="home.example.com", secure=True)
        endpoint.assign()
        assert (endpoint.host, endpoint.port, endpoint.secure) == (
            "home.example.com", 8010, True,
        )
        endpoint.assign(secure=False)
        assert endpoint.secure is True

    def test_reset_and_reconfigure(self) -> None:
        endpoint = Endpoint(host="10.0.0.5", port=8011, secure=True)
        endpoint.reset_port()
        assert endpoint.port == 0
        assert endpoint.host == "10.0.0.5"
        endpoint.reconfigure()
        assert (endpoint.host, endpoint.port, endpoint.secure) == ("127.0.0.1", 0, False)

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_range(self, port: int) -> None:
        with pytest.raises(ValueError):
            Endpoint(port=port)
        with pytest.raises(ValueError):
            Endpoint().assign(port=port)


def test_session_token_is_stable_per_process() -> None:
    assert get_session_id() == get_session_id()
    token = new_session_token()
    assert len(token) == 40
    int(token, 16)
    assert token != new_session_token()
