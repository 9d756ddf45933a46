"""DateCoordinator — one canonical week, reconciled with the calendar widget.

Two sources move the displayed week: explicit navigation in the client
(:meth:`DateCoordinator.set_canonical_date`) and the embedded widget's own
paging (:meth:`DateCoordinator.on_widget_navigated`). The coordinator owns
the canonical WeekAnchor and pushes it to the widget only when the widget
shows a different week.

A programmatic navigation makes the widget report a change of its own.
That echo is ignored by a time-based suppression window opened right
before the navigation. The widget does not correlate its notifications
with requests, so a burst of canonical changes faster than the window can
let one echo through as if the user had paged; the extra update converges
on the next settle.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Protocol

from timelens.domain import dates as weeks
from timelens.domain.types import NavigationSource
from timelens.infrastructure.clock import Timer
from timelens.services.base import BaseService, ServiceContext

logger = logging.getLogger(__name__)


class CalendarWidget(Protocol):
    """The embedded calendar, as far as week synchronization needs it."""

    def displayed_date(self) -> datetime: ...

    def goto_date(self, value: datetime) -> None: ...


class DateCoordinator(BaseService):
    """Owns the canonical WeekAnchor of a client instance.

    Parameters:
        ctx: Shared service context (timers, hooks, settings).
        widget: The calendar widget, if already mounted.
        initial: Starting date (default: now).
    """

    def __init__(
        self,
        ctx: ServiceContext,
        widget: CalendarWidget | None = None,
        *,
        initial: date | datetime | None = None,
    ) -> None:
        super().__init__(ctx)
        self._widget = widget
        self._anchor = weeks.week_start(initial or datetime.now())
        self._suppress_timer: Timer | None = None
        self._navigations = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def anchor(self) -> datetime:
        """The canonical WeekAnchor (Monday 00:00 local)."""
        return self._anchor

    @property
    def suppressing(self) -> bool:
        return self._suppress_timer is not None

    @property
    def navigations_issued(self) -> int:
        """Programmatic widget navigations issued so far."""
        return self._navigations

    def week_range(self) -> tuple[int, int]:
        """Unix bounds of the canonical week."""
        return weeks.week_range(self._anchor)

    def day_range(self, day: date | datetime) -> tuple[int, int]:
        return weeks.day_range(day)

    def is_current_week(self, *, now: datetime | None = None) -> bool:
        return weeks.is_current_week(self._anchor, now=now)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def attach_widget(self, widget: CalendarWidget | None) -> None:
        """Mount (or with None, unmount) the calendar widget."""
        self._widget = widget
        self._end_suppression()

    def set_canonical_date(self, value: date | datetime) -> bool:
        """Move the canonical week to the week of *value*.

        Returns True if the week changed. The widget is navigated only when
        it displays a different week.
        """
        anchor = weeks.week_start(value)
        if anchor == self._anchor:
            return False
        self._anchor = anchor

        widget = self._widget
        if widget is not None and weeks.week_start(widget.displayed_date()) != anchor:
            self._begin_suppression()
            self._navigations += 1
            widget.goto_date(anchor)

        logger.debug("Canonical week set to %s", anchor.date())
        self._announce(NavigationSource.USER)
        return True

    def on_widget_navigated(self, value: date | datetime) -> bool:
        """Handle the widget reporting its own navigation.

        Ignored while suppressing (presumed echo). Otherwise adopts the
        widget's week without navigating the widget back.
        """
        if self.suppressing:
            logger.debug("Ignoring widget navigation to %s inside suppression window", value)
            return False
        anchor = weeks.week_start(value)
        if anchor == self._anchor:
            return False
        self._anchor = anchor
        logger.debug("Canonical week adopted from widget: %s", anchor.date())
        self._announce(NavigationSource.WIDGET)
        return True

    def previous_week(self) -> bool:
        return self.set_canonical_date(weeks.shift_weeks(self._anchor, -1))

    def next_week(self) -> bool:
        return self.set_canonical_date(weeks.shift_weeks(self._anchor, 1))

    def go_to_today(self, *, now: datetime | None = None) -> bool:
        return self.set_canonical_date(now or datetime.now())

    def close(self) -> None:
        self._end_suppression()
        self._widget = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _begin_suppression(self) -> None:
        self._end_suppression()
        window = self._ctx.settings.dates.suppression_window_ms / 1000
        self._suppress_timer = self._ctx.scheduler.call_later(window, self._window_elapsed)

    def _window_elapsed(self) -> None:
        self._suppress_timer = None

    def _end_suppression(self) -> None:
        if self._suppress_timer is not None:
            self._suppress_timer.cancel()
            self._suppress_timer = None

    def _announce(self, source: NavigationSource) -> None:
        self._dispatch_event("post_week_change", anchor=self._anchor, source=str(source))
