"""Core data models for the session manager.

Enums and dataclasses shared by the supervisor, the URL builder and
the command channel.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_HOST = "127.0.0.1"
WILDCARD_HOST = "0.0.0.0"
MAX_PORT = 65535


class ServerState(str, Enum):
    """Launch supervisor states. See lifecycle.py for transition rules."""
    IDLE = "idle"
    ALLOCATING = "allocating"
    LAUNCHING = "launching"
    PROBING = "probing"
    READY = "ready"
    FAILED = "failed"
    ABORTED = "aborted"


class ChannelState(str, Enum):
    """Command channel connection states."""
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass
class Endpoint:
    """How to reach the active companion server.

    One instance is owned per manager and passed to every component
    that needs to address the server. A port of 0 means unassigned.
    """
    host: str = DEFAULT_HOST
    port: int = 0
    secure: bool = False

    def __post_init__(self) -> None:
        _check_port(self.port)

    @property
    def assigned(self) -> bool:
        return self.port != 0

    def assign(
        self,
        port: int | None = None,
        host: str | None = None,
        secure: bool | None = None,
    ) -> None:
        """Apply launch overrides.

        Host and ``secure`` are sticky: omitted overrides keep the
        current values until ``reconfigure``.
        """
        if port is not None:
            _check_port(port)
            self.port = port
        self.host = host or self.host
        self.secure = bool(secure) or self.secure

    def reset_port(self) -> None:
        self.port = 0

    def reconfigure(
        self,
        host: str = DEFAULT_HOST,
        secure: bool = False,
    ) -> None:
        """Explicitly drop everything back to the zeroed state."""
        self.host = host
        self.port = 0
        self.secure = secure


@dataclass
class LaunchAttempt:
    """Bookkeeping for one ``ensure_server_started`` call.

    Each call walks its own state machine, so overlapping calls never
    see each other's transitions.
    """
    number: int = 0
    error: BaseException | None = None
    state: ServerState = ServerState.IDLE


def _check_port(port: int) -> None:
    if not 0 <= port <= MAX_PORT:
        raise ValueError(f"Port out of range [0, {MAX_PORT}]: {port}")
