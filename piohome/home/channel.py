"""Persistent WebSocket command channel to the PIO Home server.

The server pushes IDE commands as JSON-RPC responses to an outstanding
``ide.listen_commands`` request. After every inbound frame the channel
issues the next listen request, so exactly one pull is pending while
the channel is open.

Flow:
    start() -> connect -> OPEN -> send core.version (priming)
    frame   -> dispatch / log -> send ide.listen_commands
    close   -> CLOSED (guard cleared, no reconnect)
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from .errors import RPCMalformedError
from .jsonrpc import encode_request, new_request_id, parse_message
from .models import ChannelState, Endpoint
from .urls import construct_server_url

logger = logging.getLogger(__name__)

HANDSHAKE_METHOD = "core.version"
LISTEN_METHOD = "ide.listen_commands"

# Signature: callback(method, params) -> None, sync or async
CommandCallback = Callable[[str, Any], Awaitable[None] | None]


class CommandChannel:
    """Single duplex connection carrying server-pushed IDE commands."""

    def __init__(
        self,
        endpoint: Endpoint,
        session_id: str,
        http: aiohttp.ClientSession,
        callback: CommandCallback,
    ) -> None:
        self._endpoint = endpoint
        self._session_id = session_id
        self._http = http
        self._callback = callback
        self._state = ChannelState.CLOSED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def url(self) -> str:
        return construct_server_url(
            self._endpoint, self._session_id, scheme="ws", path="/wsrpc",
        )

    async def start(self) -> bool:
        """Open the channel unless one is already connecting or open.

        Returns True when this call opened the channel.
        """
        if self._state is not ChannelState.CLOSED:
            logger.debug("Command channel already %s", self._state.value)
            return False
        self._state = ChannelState.CONNECTING
        url = self.url
        try:
            ws = await self._http.ws_connect(url, compress=0)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            self._state = ChannelState.CLOSED
            logger.warning("Command channel connect to %s failed: %s", url, exc)
            return False

        self._ws = ws
        self._state = ChannelState.OPEN
        logger.info("Command channel open: %s", url)
        if not await self._send(HANDSHAKE_METHOD):
            await self._mark_closed()
            return False
        self._task = asyncio.create_task(self._receive_loop(ws))
        return True

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        """Close the socket and let the receive loop finish."""
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()
        await self._mark_closed()

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    await self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Command channel error: %s", ws.exception())
                    break
                else:
                    continue
                if not await self._send(LISTEN_METHOD):
                    break
        finally:
            await self._mark_closed()

    async def _handle_frame(self, data: str | bytes) -> None:
        try:
            message = parse_message(data)
        except RPCMalformedError as exc:
            logger.error("%s", exc)
            return

        if message.kind == "error":
            logger.error("Errored result: %s", message.payload)
            return
        if message.kind != "success":
            logger.debug("Ignoring %s frame on command channel", message.kind)
            return

        result = message.payload
        if not isinstance(result, dict) or not isinstance(result.get("method"), str):
            # core.version answers land here too
            logger.debug("Result without command: %r", result)
            return
        await self._dispatch(result["method"], result.get("params"))

    async def _dispatch(self, method: str, params: Any) -> None:
        logger.info("IDE command: %s", method)
        try:
            outcome = self._callback(method, params)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("IDE command callback failed for %s", method)

    async def _send(self, method: str) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            return False
        try:
            await ws.send_str(encode_request(method, request_id=new_request_id()))
        except (ConnectionError, RuntimeError) as exc:
            logger.warning("Command channel send %s failed: %s", method, exc)
            return False
        logger.debug("Command channel -> %s", method)
        return True

    async def _mark_closed(self) -> None:
        if self._state is ChannelState.CLOSED:
            return
        self._state = ChannelState.CLOSED
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        logger.info("Command channel closed")
