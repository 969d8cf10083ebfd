"""Tests for the background Poller."""

import asyncio
from unittest.mock import AsyncMock

from crm_inbox.exceptions import APITransportError
from crm_inbox.inbox.poller import Poller


def test_poller_ticks_until_stopped():
    tick = AsyncMock()

    async def run():
        poller = Poller("test", 0.01, tick)
        poller.start()
        assert poller.running
        await asyncio.sleep(0.05)
        await poller.stop()
        assert not poller.running

    asyncio.run(run())
    assert tick.await_count >= 1


def test_poller_survives_failed_tick():
    calls = []

    async def tick():
        calls.append(1)
        if len(calls) == 1:
            raise APITransportError("offline")

    async def run():
        poller = Poller("test", 0.01, tick)
        poller.start()
        await asyncio.sleep(0.08)
        await poller.stop()

    asyncio.run(run())
    assert len(calls) >= 2


def test_restart_replaces_tick():
    first = AsyncMock()
    second = AsyncMock()

    async def run():
        poller = Poller("test", 0.01, first)
        poller.start()
        poller.restart(second)
        await asyncio.sleep(0.05)
        await poller.stop()

    asyncio.run(run())
    first.assert_not_awaited()
    assert second.await_count >= 1


def test_cancel_without_start_is_noop():
    poller = Poller("test", 1.0, AsyncMock())
    poller.cancel()
    assert not poller.running


def test_poller_survives_unexpected_error():
    calls = []

    async def tick():
        calls.append(1)
        if len(calls) == 1:
            raise AttributeError("'str' object has no attribute 'get'")

    async def run():
        poller = Poller("test", 0.01, tick)
        poller.start()
        await asyncio.sleep(0.08)
        still_running = poller.running
        await poller.stop()
        return still_running

    assert asyncio.run(run()) is True
    assert len(calls) >= 2
