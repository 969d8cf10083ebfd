"""Fixed-period background refresh loop on asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from crm_inbox.exceptions import InboxError

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[object]]


class Poller:
    """Runs ``tick`` every ``interval`` seconds until stopped.

    The loop awaits each tick before sleeping again, so a slow response
    postpones the next tick rather than stacking requests. Any error from
    a tick is logged and the loop carries on.
    """

    def __init__(self, name: str, interval: float, tick: Tick):
        self.name = name
        self.interval = interval
        self._tick = tick
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, tick: Tick | None = None) -> None:
        """Start the loop; a running loop is cancelled and replaced."""
        if tick is not None:
            self._tick = tick
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"poll:{self.name}")

    def restart(self, tick: Tick | None = None) -> None:
        self.start(tick)

    async def stop(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def cancel(self) -> None:
        """Cancel without waiting; safe to call from synchronous code."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._tick()
            except InboxError as e:
                logger.warning(f"{self.name} poll tick failed: {e}")
            except Exception:
                logger.exception(f"{self.name} poll tick raised unexpectedly")
