"""Best-effort shutdown of PIO Home servers.

``shutdown_all_servers`` broadcasts an unscoped stop request to every
candidate port so that instances left over from any session can be
reclaimed. Individual failures are logged and discarded.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from .errors import ShutdownUnreachableError
from .models import Endpoint
from .ports import PORT_RANGE_BEGIN, PORT_RANGE_END
from .urls import construct_server_url

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 1.0
GRACE_SECONDS = 2.0


async def _request_shutdown(
    http: aiohttp.ClientSession,
    url: str,
    timeout: float,
) -> None:
    """GET one shutdown URL; any failure ends here."""
    try:
        async with http.get(
            url, timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            logger.debug("Shutdown %s -> HTTP %s", url, resp.status)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        logger.debug("%s", ShutdownUnreachableError(url, f"{type(exc).__name__}: {exc}"))


async def shutdown_all_servers(
    endpoint: Endpoint,
    session_id: str,
    http: aiohttp.ClientSession,
    *,
    begin: int = PORT_RANGE_BEGIN,
    end: int = PORT_RANGE_END,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    grace: float = GRACE_SECONDS,
) -> None:
    """Ask every port in [begin, end) to shut down, then wait ``grace``.

    Requests run concurrently and are not awaited individually; whatever
    is still in flight after the grace period is cancelled.
    """
    tasks = []
    for port in range(begin, end):
        url = construct_server_url(
            endpoint,
            session_id,
            port=port,
            include_session_id=False,
            query={"__shutdown__": "1"},
        )
        tasks.append(asyncio.create_task(_request_shutdown(http, url, timeout)))
    logger.info(
        "Sent shutdown to %d port(s) [%d, %d); waiting %.1fs",
        len(tasks), begin, end, grace,
    )
    try:
        await asyncio.sleep(grace)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()


async def shutdown_server(
    endpoint: Endpoint,
    session_id: str,
    http: aiohttp.ClientSession,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> int | None:
    """Gracefully stop the server of this session.

    Returns the HTTP status, or None when no port is assigned.
    """
    if not endpoint.assigned:
        return None
    url = construct_server_url(endpoint, session_id, path="/__shutdown__")
    async with http.post(
        url, timeout=aiohttp.ClientTimeout(total=timeout),
    ) as resp:
        logger.info("Shutdown %s -> HTTP %s", url, resp.status)
        return resp.status
