"""Exception hierarchy for the PIO Home session manager.

Launch failures (port exhaustion, spawn failure, probe timeout) are
retried by the supervisor. Channel and sweep failures never leave their
component.
"""
from __future__ import annotations


class HomeServerError(Exception):
    """Base exception for all session manager errors."""


class PortExhaustedError(HomeServerError):
    """No free port was found in the candidate range."""
    def __init__(self, host: str, begin: int, end: int):
        self.host = host
        self.begin = begin
        self.end = end
        super().__init__(
            f"No free port on {host} in range [{begin}, {end})"
        )


class SpawnFailedError(HomeServerError):
    """The server process exited with a nonzero code.

    The message is the process stderr, verbatim.
    """
    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(stderr)


class ProbeTimeoutError(HomeServerError):
    """The server port never became reachable within the bound."""
    def __init__(self, host: str, port: int, timeout_seconds: float):
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not start PIO Home server ({host}:{port}): "
            f"port not reachable after {timeout_seconds}s"
        )


class RPCMalformedError(HomeServerError):
    """An inbound channel frame is not a valid JSON-RPC envelope."""
    def __init__(self, reason: str, data: str = ""):
        self.reason = reason
        self.data = data
        super().__init__(f"Invalid RPC message: {reason}")


class ShutdownUnreachableError(HomeServerError):
    """A single sweep target did not answer the shutdown request."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Shutdown request to {url} failed: {reason}")
