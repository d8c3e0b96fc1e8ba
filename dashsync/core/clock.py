"""
Time source for freshness checks, eviction, polling and retry delays.

Everything time-driven in dashsync goes through a Clock so a session can be
driven deterministically (see ``tests/conftest.py``).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled."""

    def cancel(self) -> None: ...


class Clock(Protocol):
    """Monotonic time plus timer scheduling."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...

    async def sleep(self, delay: float) -> None: ...


class LoopClock:
    """
    Clock backed by ``time.monotonic`` and the running asyncio loop.

    ``call_later`` must be invoked from inside the loop.
    """

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)
