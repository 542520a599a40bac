from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp.test_utils import unused_port

from piohome.home.errors import ProbeTimeoutError
from piohome.home.ports import find_free_port, is_port_used, wait_until_used


def _fake_probe(used: set[int], calls: list[int]):
    async def _probe(host: str, port: int, timeout: float = 1.0) -> bool:
        calls.append(port)
        return port in used

    return _probe


@pytest.mark.asyncio
async def test_find_free_port_returns_lowest_free_port_sequentially() -> None:
    calls: list[int] = []
    with patch(
        "piohome.home.ports.is_port_used",
        side_effect=_fake_probe({8010, 8011, 8013}, calls),
    ):
        port = await find_free_port("127.0.0.1", 8010, 8050)
    assert port == 8012
    assert calls == [8010, 8011, 8012]


@pytest.mark.asyncio
async def test_find_free_port_exhausted_returns_none() -> None:
    calls: list[int] = []
    with patch(
        "piohome.home.ports.is_port_used",
        side_effect=_fake_probe(set(range(8010, 8015)), calls),
    ):
        port = await find_free_port("127.0.0.1", 8010, 8015)
    assert port is None
    assert calls == [8010, 8011, 8012, 8013, 8014]


@pytest.mark.asyncio
async def test_find_free_port_never_leaves_range() -> None:
    for begin, end in ((8010, 8011), (9000, 9004), (20000, 20010)):
        calls: list[int] = []
        with patch(
            "piohome.home.ports.is_port_used",
            side_effect=_fake_probe({begin}, calls),
        ):
            port = await find_free_port("127.0.0.1", begin, end)
        assert all(begin <= p < end for p in calls)
        assert port is None or begin <= port < end


@pytest.mark.asyncio
async def test_is_port_used_detects_listener() -> None:
    async def _handle(reader, writer) -> None:
        writer.close()

    server = await asyncio.start_server(_handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        assert await is_port_used("127.0.0.1", port) is True
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_is_port_used_false_for_closed_port() -> None:
    assert await is_port_used("127.0.0.1", unused_port(), timeout=0.5) is False


@pytest.mark.asyncio
async def test_is_port_used_treats_errors_as_free() -> None:
    with patch(
        "piohome.home.ports.asyncio.open_connection",
        AsyncMock(side_effect=OSError("network unreachable")),
    ):
        assert await is_port_used("127.0.0.1", 8010) is False


@pytest.mark.asyncio
async def test_wait_until_used_times_out() -> None:
    with pytest.raises(ProbeTimeoutError) as excinfo:
        await wait_until_used(
            "127.0.0.1", unused_port(), interval=0.05, timeout=0.2,
        )
    assert excinfo.value.timeout_seconds == 0.2


@pytest.mark.asyncio
async def test_wait_until_used_returns_once_port_opens() -> None:
    port = unused_port()

    async def _handle(reader, writer) -> None:
        writer.close()

    async def _open_later():
        await asyncio.sleep(0.2)
        return await asyncio.start_server(_handle, "127.0.0.1", port)

    opener = asyncio.create_task(_open_later())
    await wait_until_used("127.0.0.1", port, interval=0.05, timeout=5.0)
    server = await opener
    server.close()
    await server.wait_closed()
