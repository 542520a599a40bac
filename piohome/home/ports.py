"""TCP port probing and free-port allocation.

The allocator is optimistic: any probe error counts as "not in use".
Real liveness is confirmed later by the supervisor's health check.
"""
from __future__ import annotations

import asyncio
import logging

from .errors import ProbeTimeoutError

logger = logging.getLogger(__name__)

PORT_RANGE_BEGIN = 8010
PORT_RANGE_END = 8050  # exclusive
PROBE_TIMEOUT_SECONDS = 1.0
POLL_INTERVAL_SECONDS = 0.5


async def is_port_used(
    host: str,
    port: int,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> bool:
    """True when something accepts a TCP connection on host:port."""
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, OSError) as exc:
        logger.debug("Port probe %s:%d -> free (%s)", host, port, exc)
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def find_free_port(
    host: str,
    begin: int = PORT_RANGE_BEGIN,
    end: int = PORT_RANGE_END,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> int | None:
    """Return the lowest port in [begin, end) that is not in use.

    Ports are probed one at a time in increasing order. Returns None
    when every port in the range is taken.
    """
    for port in range(begin, end):
        if not await is_port_used(host, port, timeout=timeout):
            logger.debug("Found free port %s:%d", host, port)
            return port
    logger.warning("No free port on %s in [%d, %d)", host, begin, end)
    return None


async def wait_until_used(
    host: str,
    port: int,
    interval: float = POLL_INTERVAL_SECONDS,
    timeout: float = 30.0,
    probe_timeout: float = PROBE_TIMEOUT_SECONDS,
) -> None:
    """Poll until host:port accepts connections.

    Raises ProbeTimeoutError when the port is still closed after
    ``timeout`` seconds.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise ProbeTimeoutError(host, port, timeout)
        if await is_port_used(host, port, timeout=min(probe_timeout, remaining)):
            return
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise ProbeTimeoutError(host, port, timeout)
        await asyncio.sleep(min(interval, remaining))
