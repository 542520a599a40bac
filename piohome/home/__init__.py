"""PIO Home session manager: launch, probe and talk to the local PIO Home server."""
from .models import (
    DEFAULT_HOST,
    ChannelState,
    Endpoint,
    LaunchAttempt,
    ServerState,
)
from .config import HomeConfig
from .identity import get_session_id, new_session_token
from .ports import find_free_port, is_port_used, wait_until_used
from .urls import construct_server_url
from .errors import (
    HomeServerError,
    PortExhaustedError,
    ProbeTimeoutError,
    RPCMalformedError,
    ShutdownUnreachableError,
    SpawnFailedError,
)

__all__ = [
    # Manager (lazy import, pulls in aiohttp)
    "HomeServerManager",
    "CommandChannel",
    # Models
    "DEFAULT_HOST",
    "ChannelState",
    "Endpoint",
    "LaunchAttempt",
    "ServerState",
    # Config
    "HomeConfig",
    "load_yaml_config",
    # Building blocks
    "get_session_id",
    "new_session_token",
    "find_free_port",
    "is_port_used",
    "wait_until_used",
    "construct_server_url",
    "shutdown_all_servers",
    "shutdown_server",
    # Error reporting (lazy import)
    "ErrorReporter",
    "report_error",
    "set_error_reporter",
    # Errors
    "HomeServerError",
    "PortExhaustedError",
    "ProbeTimeoutError",
    "RPCMalformedError",
    "ShutdownUnreachableError",
    "SpawnFailedError",
]


def __getattr__(name: str):
    if name == "HomeServerManager":
        from .supervisor import HomeServerManager
        return HomeServerManager
    if name == "CommandChannel":
        from .channel import CommandChannel
        return CommandChannel
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "shutdown_all_servers":
        from .sweeper import shutdown_all_servers
        return shutdown_all_servers
    if name == "shutdown_server":
        from .sweeper import shutdown_server
        return shutdown_server
    if name == "ErrorReporter":
        from .telemetry import ErrorReporter
        return ErrorReporter
    if name == "report_error":
        from .telemetry import report_error
        return report_error
    if name == "set_error_reporter":
        from .telemetry import set_error_reporter
        return set_error_reporter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
