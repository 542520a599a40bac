"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via PIOHOME_* env vars.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields

from .models import DEFAULT_HOST
from .ports import PORT_RANGE_BEGIN, PORT_RANGE_END

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes"}


@dataclass
class HomeConfig:
    """Session manager configuration."""

    # Where clients reach the server. A non-IPv4 host (reverse proxy)
    # makes the server bind to 0.0.0.0.
    host: str = DEFAULT_HOST
    secure: bool = False

    # Candidate port range, end exclusive.
    port_begin: int = PORT_RANGE_BEGIN
    port_end: int = PORT_RANGE_END

    # Launch
    executable: str = "platformio"
    max_attempts: int = 3
    launch_timeout_seconds: float = 30.0
    # Passed to the server: exit after this much inactivity.
    autoshutdown_timeout_seconds: int = 3600

    # Probes
    probe_timeout_seconds: float = 1.0
    probe_interval_seconds: float = 0.5
    version_timeout_seconds: float = 1.0

    # Sweep
    shutdown_request_timeout_seconds: float = 1.0
    sweep_grace_seconds: float = 2.0

    # Logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ValueError for settings the manager cannot work with."""
        if self.port_begin >= self.port_end:
            raise ValueError(
                f"Empty port range [{self.port_begin}, {self.port_end})"
            )
        if self.port_begin < 1 or self.port_end > 65536:
            raise ValueError(
                f"Port range outside 1-65535: [{self.port_begin}, {self.port_end})"
            )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_env(cls) -> HomeConfig:
        """Load configuration from PIOHOME_* environment variables."""
        home_vars = {
            k: v for k, v in os.environ.items() if k.startswith("PIOHOME_")
        }
        if home_vars:
            logger.info(
                "HomeConfig.from_env: PIOHOME_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(home_vars.items())),
            )
        else:
            logger.debug("HomeConfig.from_env: no PIOHOME_* env vars set, using defaults")

        config = cls(
            host=os.getenv("PIOHOME_HOST", cls.host),
            secure=os.getenv("PIOHOME_SECURE", "").lower() in _TRUE_VALUES,
            port_begin=int(os.getenv(
                "PIOHOME_PORT_BEGIN", str(cls.port_begin)
            )),
            port_end=int(os.getenv(
                "PIOHOME_PORT_END", str(cls.port_end)
            )),
            executable=os.getenv("PIOHOME_EXECUTABLE", cls.executable),
            max_attempts=int(os.getenv(
                "PIOHOME_MAX_ATTEMPTS", str(cls.max_attempts)
            )),
            launch_timeout_seconds=float(os.getenv(
                "PIOHOME_LAUNCH_TIMEOUT", str(cls.launch_timeout_seconds)
            )),
            autoshutdown_timeout_seconds=int(os.getenv(
                "PIOHOME_AUTOSHUTDOWN_TIMEOUT",
                str(cls.autoshutdown_timeout_seconds),
            )),
            sweep_grace_seconds=float(os.getenv(
                "PIOHOME_SWEEP_GRACE", str(cls.sweep_grace_seconds)
            )),
            log_level=os.getenv("PIOHOME_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "HomeConfig.from_env: host=%s ports=[%d, %d) executable=%s",
            config.host, config.port_begin, config.port_end, config.executable,
        )
        return config

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}
