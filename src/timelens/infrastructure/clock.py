"""Timers on the cooperative event loop.

Components never sleep; they schedule callbacks through a
:class:`Scheduler`. :class:`LoopScheduler` uses the running asyncio loop.
Tests substitute a manual clock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class Timer(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Monotonic clock plus delayed callbacks, both in seconds."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer: ...


class LoopScheduler:
    """Scheduler backed by ``asyncio.get_running_loop()``.

    Must be used from inside the loop that runs the client.
    """

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)
