"""Launch supervisor state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    IDLE ──> ALLOCATING ──> LAUNCHING ──> PROBING ──> READY
                 │              │            │
                 └──────────────┴────────────┴──> FAILED ──┬──> IDLE  (after sweep)
                                                           │
                                                           └──> ABORTED
"""
from __future__ import annotations

from .models import ServerState

VALID_TRANSITIONS: dict[ServerState, set[ServerState]] = {
    ServerState.IDLE: {
        ServerState.ALLOCATING,
    },
    ServerState.ALLOCATING: {
        ServerState.LAUNCHING,
        ServerState.FAILED,
    },
    ServerState.LAUNCHING: {
        ServerState.PROBING,
        ServerState.READY,  # already running, nothing to spawn
        ServerState.FAILED,
    },
    ServerState.PROBING: {
        ServerState.READY,
        ServerState.FAILED,
    },
    ServerState.READY: {
        ServerState.ALLOCATING,  # next ensure_server_started call
    },
    ServerState.FAILED: {
        ServerState.IDLE,
        ServerState.ABORTED,
    },
    ServerState.ABORTED: {
        ServerState.ALLOCATING,  # a later call may try again
    },
}


def validate_transition(current: ServerState, target: ServerState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )
