"""Shared pytest fixtures and test doubles for timelens tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from timelens.client import TimelensClient
from timelens.config.settings import TimelensSettings
from timelens.infrastructure.cache import QueryCache
from timelens.infrastructure.rpc import RemoteCommands
from timelens.plugins.manager import HookManager
from timelens.services.base import ServiceContext
from timelens.services.toasts import ToastScheduler

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


@dataclass
class ManualTimer:
    when: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls :meth:`advance_ms`."""

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = 0
        self._timers: list[ManualTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(when=self._now + delay, seq=self._seq, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance_ms(self, ms: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._now + ms / 1000
        while True:
            due = [t for t in self.pending if t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self._now = max(self._now, timer.when)
            timer.callback()
        self._now = target


class ScriptedTransport:
    """Transport replaying canned replies per command and recording calls.

    A reply may be a value, an exception instance (raised), or a callable
    taking the payload. The last reply queued for a command repeats.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._replies: dict[str, list[Any]] = {}
        self._holds: dict[str, asyncio.Event] = {}

    def reply(self, command: str, *replies: Any) -> ScriptedTransport:
        self._replies.setdefault(command, []).extend(replies)
        return self

    def hold(self, command: str) -> asyncio.Event:
        """Block *command* until the returned event is set."""
        event = asyncio.Event()
        self._holds[command] = event
        return event

    def commands(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def __call__(self, command: str, payload: dict[str, Any]) -> Any:
        self.calls.append((command, payload))
        gate = self._holds.get(command)
        if gate is not None:
            await gate.wait()
        queue = self._replies.get(command)
        if not queue:
            msg = f"no scripted reply for {command}"
            raise AssertionError(msg)
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(payload)
        return reply


class FakeWidget:
    """Calendar widget that records programmatic navigations.

    With ``echo`` set, every ``goto_date`` immediately reports the
    navigation back, like the real widget's change notification.
    """

    def __init__(self, displayed: datetime) -> None:
        self.displayed = displayed
        self.goto_calls: list[datetime] = []
        self.echo: Callable[[datetime], Any] | None = None

    def displayed_date(self) -> datetime:
        return self.displayed

    def goto_date(self, value: datetime) -> None:
        self.goto_calls.append(value)
        self.displayed = value
        if self.echo is not None:
            self.echo(value)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep TIMELENS_* env vars and stray timelens.toml files out of tests."""
    for name in list(os.environ):
        if name.startswith("TIMELENS_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def settings() -> TimelensSettings:
    return TimelensSettings()


@pytest.fixture
def hooks() -> HookManager:
    return HookManager()


@pytest.fixture
def toasts(scheduler: ManualScheduler, settings: TimelensSettings) -> ToastScheduler:
    return ToastScheduler(scheduler, settings.toasts)


@pytest.fixture
def ctx(
    transport: ScriptedTransport,
    scheduler: ManualScheduler,
    toasts: ToastScheduler,
    hooks: HookManager,
    settings: TimelensSettings,
) -> ServiceContext:
    """Service context over the scripted transport and manual clock."""
    return ServiceContext(
        commands=RemoteCommands(transport),
        cache=QueryCache(),
        toasts=toasts,
        scheduler=scheduler,
        hooks=hooks,
        settings=settings,
    )


@pytest.fixture
def client(
    transport: ScriptedTransport,
    scheduler: ManualScheduler,
    settings: TimelensSettings,
) -> Iterator[TimelensClient]:
    """Fully wired client starting in the week of Wednesday 2024-05-15."""
    c = TimelensClient(
        transport,
        settings=settings,
        scheduler=scheduler,
        initial_date=datetime(2024, 5, 15, 10, 0),
    )
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def widget() -> FakeWidget:
    """Calendar widget showing the same week as the ``client`` fixture."""
    return FakeWidget(datetime(2024, 5, 13))
