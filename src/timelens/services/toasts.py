"""ToastScheduler — bounded queue of ephemeral notifications.

Each entry has its own lifecycle: ``loading`` entries stay until updated
or removed; every other kind is dismissed by a timer.

INVARIANT: ``kind == loading`` implies ``expires_at is None``.
INVARIANT: At most ``max_entries`` (default 4) live entries. Showing one
more evicts the oldest, whatever its kind, so a ``loading`` entry can be
evicted while its operation is still pending.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, model_validator

from timelens.config.models import ToastConfig
from timelens.domain.types import ToastKind
from timelens.infrastructure.clock import Scheduler, Timer

logger = logging.getLogger(__name__)

COPIED_MESSAGE = "✓ Copied to clipboard! Click to copy again."
COPY_FAILED_MESSAGE = "Failed to copy to clipboard"

Clipboard = Callable[[str], Awaitable[None]]


class ClipboardError(Exception):
    """Raised by a clipboard writer that could not store the text."""


class ToastEntry(BaseModel):
    """One notification as the views render it.

    ``expires_at`` is on the scheduler clock (monotonic loop time in
    seconds), not wall time. Compare it against ``Scheduler.now()``.
    """

    model_config = {"frozen": True}

    id: str
    message: str
    kind: ToastKind
    error_detail: str | None = None
    expires_at: float | None = None

    @model_validator(mode="after")
    def _loading_never_expires(self) -> ToastEntry:
        if self.kind is ToastKind.LOADING and self.expires_at is not None:
            msg = "loading toasts cannot carry an expiry"
            raise ValueError(msg)
        return self


class ToastScheduler:
    """Shows, updates, and expires toast entries on the event loop.

    Parameters:
        scheduler: Clock and timer source.
        config: Bound and default durations.
        clipboard: Async writer used by :meth:`copy_detail`.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: ToastConfig | None = None,
        *,
        clipboard: Clipboard | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._config = config or ToastConfig()
        self._clipboard = clipboard
        self._queue: list[ToastEntry] = []
        self._timers: dict[str, Timer] = {}
        self._revert_timers: dict[str, Timer] = {}
        # Message and kind to restore once a copy confirmation ends.
        self._underlying: dict[str, tuple[str, ToastKind]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def entries(self) -> tuple[ToastEntry, ...]:
        """Live entries, oldest first."""
        return tuple(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def get(self, toast_id: str) -> ToastEntry | None:
        for entry in self._queue:
            if entry.id == toast_id:
                return entry
        return None

    def show(
        self,
        message: str,
        kind: ToastKind = ToastKind.INFO,
        duration_ms: int | None = None,
        detail: str | None = None,
    ) -> str:
        """Append an entry and return its id.

        *duration_ms* defaults to the kind's configured duration (errors
        stay longer). A non-positive duration disables auto-dismiss.
        ``loading`` entries ignore it.
        """
        toast_id = uuid.uuid4().hex[:8]
        self._queue.append(ToastEntry(id=toast_id, message=message, kind=kind, error_detail=detail))
        if kind is not ToastKind.LOADING:
            self._schedule_dismiss(toast_id, self._duration_for(kind, duration_ms))

        while len(self._queue) > self._config.max_entries:
            evicted = self._queue[0]
            logger.debug("Evicting toast %s (%s)", evicted.id, evicted.kind)
            self.remove(evicted.id)
        return toast_id

    def update(
        self,
        toast_id: str,
        message: str,
        kind: ToastKind,
        detail: str | None = None,
        *,
        duration_ms: int | None = None,
    ) -> bool:
        """Rewrite an entry in place. Returns False if it is gone.

        *detail* of None keeps the existing error detail. Moving into
        ``loading`` cancels the pending dismissal; moving out of it (or out
        of a no-expiry state) schedules one. An already running dismissal is
        kept unless *duration_ms* is given.
        """
        entry = self.get(toast_id)
        if entry is None:
            return False

        # An explicit update ends any copy confirmation on this entry.
        self._cancel_revert(toast_id)
        self._underlying.pop(toast_id, None)

        self._replace(
            entry,
            message=message,
            kind=kind,
            error_detail=detail if detail is not None else entry.error_detail,
        )
        if kind is ToastKind.LOADING:
            self._cancel_dismiss(toast_id)
            self._replace(self.get(toast_id), expires_at=None)
        elif duration_ms is not None or toast_id not in self._timers:
            self._schedule_dismiss(toast_id, self._duration_for(kind, duration_ms))
        return True

    def remove(self, toast_id: str) -> bool:
        """Dismiss an entry now. Returns False if it was not live."""
        entry = self.get(toast_id)
        self._cancel_dismiss(toast_id)
        self._cancel_revert(toast_id)
        self._underlying.pop(toast_id, None)
        if entry is None:
            return False
        self._queue.remove(entry)
        return True

    async def copy_detail(self, toast_id: str) -> bool:
        """Copy an entry's error detail, then flash a confirmation.

        The confirmation reverts after ``copy_revert_ms``. The revert looks
        at the entry as it is then: if the entry was dismissed or updated in
        the meantime, the newer state stays.
        """
        entry = self.get(toast_id)
        if entry is None or entry.error_detail is None or self._clipboard is None:
            return False

        try:
            await self._clipboard(entry.error_detail)
        except (ClipboardError, OSError):
            logger.warning("Failed to copy toast %s to clipboard", toast_id, exc_info=True)
            self.update(toast_id, COPY_FAILED_MESSAGE, ToastKind.ERROR)
            return False

        entry = self.get(toast_id)
        if entry is None:
            return True
        # A second click inside the window keeps the original underlying state.
        self._underlying.setdefault(toast_id, (entry.message, entry.kind))
        self._replace(entry, message=COPIED_MESSAGE, kind=ToastKind.SUCCESS)
        self._cancel_revert(toast_id)
        self._revert_timers[toast_id] = self._scheduler.call_later(
            self._config.copy_revert_ms / 1000, lambda: self._revert_copy(toast_id)
        )
        return True

    def close(self) -> None:
        """Cancel every timer; entries are dropped."""
        for toast_id in [e.id for e in self._queue]:
            self.remove(toast_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _duration_for(self, kind: ToastKind, duration_ms: int | None) -> int:
        if duration_ms is not None:
            return duration_ms
        if kind is ToastKind.ERROR:
            return self._config.error_duration_ms
        return self._config.default_duration_ms

    def _replace(self, entry: ToastEntry | None, **changes: object) -> None:
        if entry is None:
            return
        index = self._queue.index(entry)
        self._queue[index] = entry.model_copy(update=changes)

    def _schedule_dismiss(self, toast_id: str, duration_ms: int) -> None:
        self._cancel_dismiss(toast_id)
        if duration_ms <= 0:
            self._replace(self.get(toast_id), expires_at=None)
            return
        self._replace(
            self.get(toast_id), expires_at=self._scheduler.now() + duration_ms / 1000
        )
        self._timers[toast_id] = self._scheduler.call_later(
            duration_ms / 1000, lambda: self._expire(toast_id)
        )

    def _cancel_dismiss(self, toast_id: str) -> None:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()

    def _cancel_revert(self, toast_id: str) -> None:
        timer = self._revert_timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, toast_id: str) -> None:
        self._timers.pop(toast_id, None)
        self.remove(toast_id)

    def _revert_copy(self, toast_id: str) -> None:
        self._revert_timers.pop(toast_id, None)
        underlying = self._underlying.pop(toast_id, None)
        entry = self.get(toast_id)
        if underlying is None or entry is None:
            return
        message, kind = underlying
        self._replace(entry, message=message, kind=kind)
