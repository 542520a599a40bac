"""Launch supervisor for the PIO Home server.

``HomeServerManager`` owns the endpoint, the HTTP client session and the
command channel for one managing process. ``ensure_server_started``
allocates a port, spawns ``platformio home`` and races the spawned
process against a port probe, retrying with fresh state (and a full
shutdown sweep) when an attempt fails.

Calls are not serialized: overlapping ``ensure_server_started`` calls
are only protected by the endpoint port guard and the channel guard.
"""
from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import aiohttp

from piohome.shared.services.core import CommandResult, run_pio_command
from piohome.shared.services.preferences import HomeState

from .channel import CommandCallback, CommandChannel
from .config import HomeConfig
from .errors import (
    HomeServerError,
    PortExhaustedError,
    SpawnFailedError,
)
from .identity import get_session_id
from .lifecycle import validate_transition
from .models import (
    WILDCARD_HOST,
    ChannelState,
    Endpoint,
    LaunchAttempt,
    ServerState,
)
from .ports import find_free_port, is_port_used, wait_until_used
from .sweeper import shutdown_all_servers, shutdown_server
from .telemetry import report_error
from .urls import construct_server_url

logger = logging.getLogger(__name__)

# Signature: async def runner(args, executable=...) -> CommandResult
CommandRunner = Callable[..., Awaitable[CommandResult]]


def is_ipv4_address(host: str) -> bool:
    try:
        ipaddress.IPv4Address(host)
    except ValueError:
        return False
    return True


class HomeServerManager:
    """Starts, probes and stops the companion server of this process."""

    def __init__(
        self,
        config: HomeConfig | None = None,
        *,
        session_id: str | None = None,
        endpoint: Endpoint | None = None,
        http: aiohttp.ClientSession | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self._config = config or HomeConfig()
        self._session_id = session_id or get_session_id()
        self._endpoint = endpoint or Endpoint(
            host=self._config.host, secure=self._config.secure,
        )
        self._http = http
        self._owns_http = http is None
        self._run_command = command_runner or run_pio_command
        # State of the most recent transition of any call.
        self._state = ServerState.IDLE
        self._active_calls = 0
        self._channel: CommandChannel | None = None
        # Spawn tasks of servers that outlived their launch attempt.
        self._server_tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> HomeServerManager:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def config(self) -> HomeConfig:
        return self._config

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def channel(self) -> CommandChannel | None:
        return self._channel

    def _transition(self, attempt: LaunchAttempt, target: ServerState) -> None:
        validate_transition(attempt.state, target)
        logger.debug("Server state %s -> %s", attempt.state.value, target.value)
        attempt.state = target
        self._state = target

    def _client(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        """Close the channel and the HTTP session; servers keep running."""
        if self._channel is not None:
            await self._channel.close()
        for task in list(self._server_tasks):
            task.cancel()
        if self._server_tasks:
            await asyncio.gather(*self._server_tasks, return_exceptions=True)
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    # ── Addressing ──

    def construct_url(self, **kwargs: Any) -> str:
        return construct_server_url(self._endpoint, self._session_id, **kwargs)

    def get_frontend_url(
        self,
        start: str = "/",
        theme: str | None = None,
        workspace: str | None = None,
        state_path: Path | None = None,
    ) -> str:
        """Session URL of the frontend; stored theme/workspace win."""
        stored = HomeState.load(state_path)
        query = {
            "start": start or "/",
            "theme": stored.theme or theme,
            "workspace": stored.workspace or workspace,
        }
        return self.construct_url(query=query)

    # ── Health ──

    async def get_frontend_version(self) -> str | None:
        """``version`` from the server's package.json, None on any failure."""
        url = self.construct_url(path="/package.json")
        try:
            async with self._client().get(
                url,
                timeout=aiohttp.ClientTimeout(
                    total=self._config.version_timeout_seconds,
                ),
            ) as resp:
                if resp.status >= 400:
                    logger.debug("Version probe %s -> HTTP %s", url, resp.status)
                    return None
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.debug("Version probe %s failed: %s", url, exc)
            return None
        if not isinstance(data, dict) or not data.get("version"):
            return None
        return str(data["version"])

    async def is_server_started(self) -> bool:
        """Port held by a process *and* our server answering on it."""
        if not self._endpoint.assigned:
            return False
        if not await is_port_used(
            self._endpoint.host,
            self._endpoint.port,
            timeout=self._config.probe_timeout_seconds,
        ):
            return False
        return bool(await self.get_frontend_version())

    # ── Launch ──

    async def ensure_server_started(
        self,
        port: int | None = None,
        host: str | None = None,
        secure: bool | None = None,
        on_ide_command: CommandCallback | None = None,
    ) -> bool:
        """Make sure a server for this session is up, launching one if needed.

        Retries up to ``config.max_attempts`` times. Each failed attempt
        unassigns the port and sweeps the whole port range. When every
        attempt failed the last error is reported and re-raised as is.

        Overlapping calls each run their own attempt state; they may both
        spawn a server, guarded only by the endpoint port and the channel.
        """
        if self._active_calls:
            logger.warning(
                "ensure_server_started entered while %s; calls overlap",
                self._state.value,
            )
        self._active_calls += 1
        try:
            await self._launch_with_retries(port, host, secure)
        finally:
            self._active_calls -= 1

        if on_ide_command is not None:
            await self.listen_ide_commands(on_ide_command)
        return True

    async def _launch_with_retries(
        self,
        port: int | None,
        host: str | None,
        secure: bool | None,
    ) -> None:
        max_attempts = self._config.max_attempts
        attempt = LaunchAttempt()
        while True:
            attempt.number += 1
            try:
                await self._ensure_server_started(attempt, port, host, secure)
                return
            except (HomeServerError, OSError) as exc:
                attempt.error = exc
                logger.warning(
                    "PIO Home launch attempt %d/%d failed: %s",
                    attempt.number, max_attempts, exc,
                )
                self._endpoint.reset_port()
                self._transition(attempt, ServerState.FAILED)
                await self.shutdown_all_servers()
                if attempt.number >= max_attempts:
                    self._transition(attempt, ServerState.ABORTED)
                    report_error(
                        exc,
                        component="launch_supervisor",
                        attempts=attempt.number,
                    )
                    raise
                self._transition(attempt, ServerState.IDLE)

    async def _ensure_server_started(
        self,
        attempt: LaunchAttempt,
        port: int | None,
        host: str | None,
        secure: bool | None,
    ) -> None:
        self._transition(attempt, ServerState.ALLOCATING)
        self._endpoint.assign(host=host, secure=secure)
        if not self._endpoint.assigned:
            free_port = port or await find_free_port(
                self._endpoint.host,
                self._config.port_begin,
                self._config.port_end,
                timeout=self._config.probe_timeout_seconds,
            )
            if free_port is None:
                raise PortExhaustedError(
                    self._endpoint.host,
                    self._config.port_begin,
                    self._config.port_end,
                )
            self._endpoint.assign(port=free_port)

        # Pinned for this attempt; an overlapping call may reset the endpoint.
        target_host, target_port = self._endpoint.host, self._endpoint.port
        bind_host = target_host
        if not is_ipv4_address(bind_host):
            # reverse proxy: clients use the hostname, server listens everywhere
            bind_host = WILDCARD_HOST

        self._transition(attempt, ServerState.LAUNCHING)
        if await self.is_server_started():
            logger.info(
                "PIO Home already running at %s:%d",
                self._endpoint.host, self._endpoint.port,
            )
            self._transition(attempt, ServerState.READY)
            return

        self._transition(attempt, ServerState.PROBING)
        await self._spawn_and_probe(target_host, target_port, bind_host)
        self._transition(attempt, ServerState.READY)
        logger.info(
            "PIO Home started at %s:%d (bind %s)",
            target_host, target_port, bind_host,
        )

    async def _spawn_and_probe(self, host: str, port: int, bind_host: str) -> None:
        """Run the server and wait for its port; first decisive signal wins.

        A nonzero exit fails the attempt. The probe's own timeout bounds
        the wait regardless of the process, which is left running.
        """
        args = [
            "home",
            "--port", str(port),
            "--host", bind_host,
            "--session-id", self._session_id,
            "--shutdown-timeout", str(self._config.autoshutdown_timeout_seconds),
            "--no-open",
        ]
        logger.info("Spawning %s %s", self._config.executable, " ".join(args))
        proc_task = asyncio.create_task(
            self._run_command(args, executable=self._config.executable)
        )
        probe_task = asyncio.create_task(
            wait_until_used(
                host,
                port,
                interval=self._config.probe_interval_seconds,
                timeout=self._config.launch_timeout_seconds,
                probe_timeout=self._config.probe_timeout_seconds,
            )
        )
        pending: set[asyncio.Task] = {proc_task, probe_task}
        try:
            while probe_task in pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED,
                )
                if proc_task in done:
                    result = proc_task.result()
                    logger.info(
                        "%s home exited with %d: %s",
                        self._config.executable, result.code, result.stdout.strip(),
                    )
                    if result.code != 0:
                        raise SpawnFailedError(result.code, result.stderr)
                if probe_task in done:
                    probe_task.result()
                    return
        finally:
            if not probe_task.done():
                probe_task.cancel()
            if not proc_task.done():
                self._server_tasks.add(proc_task)
                proc_task.add_done_callback(self._server_tasks.discard)

    async def wait_for_server(self) -> None:
        """Block until every server spawned by this manager has exited."""
        if self._server_tasks:
            await asyncio.gather(*self._server_tasks, return_exceptions=True)

    # ── Shutdown ──

    async def shutdown_server(self) -> int | None:
        return await shutdown_server(
            self._endpoint,
            self._session_id,
            self._client(),
            timeout=self._config.shutdown_request_timeout_seconds,
        )

    async def shutdown_all_servers(self) -> None:
        await shutdown_all_servers(
            self._endpoint,
            self._session_id,
            self._client(),
            begin=self._config.port_begin,
            end=self._config.port_end,
            timeout=self._config.shutdown_request_timeout_seconds,
            grace=self._config.sweep_grace_seconds,
        )

    # ── Command channel ──

    async def listen_ide_commands(self, callback: CommandCallback) -> bool:
        """Open the command channel unless one is connecting or open."""
        channel = self._channel
        if channel is not None and channel.state is not ChannelState.CLOSED:
            logger.debug("Command channel already %s", channel.state.value)
            return False
        self._channel = CommandChannel(
            self._endpoint, self._session_id, self._client(), callback,
        )
        return await self._channel.start()
