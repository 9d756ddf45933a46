"""ViewSelector — which side panel sits next to the calendar.

Every transition is an explicit method that computes the next state and
returns the resulting ViewMode on the spot:

    click_background   → None selection, Week (forced, same call)
    click_date_header  → DateSelected → Day
    click_event        → EventSelected → Event
    click_category     → activeCategory → CategoryFilter (from Week/Day)
    back               → drop event or category → Day or Week
    destructive success on the selected event/category → Week
    log deletion inside the selected event → narrowed event, or Week once empty

INVARIANT: A transition that leaves ``(selection, active_category, view)``
unchanged dispatches nothing, so dependent panels do not re-fetch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime

from timelens.domain.dates import start_of_day
from timelens.domain.models import EventRef, TimeBlock
from timelens.domain.selection import (
    CATEGORY_ENTRY_VIEWS,
    NO_SELECTION,
    DateSelected,
    EventSelected,
    SelectionState,
    derive_view,
    selected_date,
    selected_event,
)
from timelens.domain.types import NavigationSource, ViewMode
from timelens.plugins.hookspecs import hookimpl
from timelens.services.base import BaseService, ServiceContext
from timelens.services.mutations import MutationRequest
from timelens.services.result import CommandResult

logger = logging.getLogger(__name__)


class ViewSelector(BaseService):
    """Selection state machine for the calendar's side panel.

    Registered as a plugin so it hears mutation settlements and week
    changes through the hook manager.
    """

    def __init__(self, ctx: ServiceContext) -> None:
        super().__init__(ctx)
        self._selection: SelectionState = NO_SELECTION
        self._active_category: str | None = None
        self._view = ViewMode.WEEK

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def view(self) -> ViewMode:
        return self._view

    @property
    def selection(self) -> SelectionState:
        return self._selection

    @property
    def active_category(self) -> str | None:
        return self._active_category

    @property
    def selected_date(self) -> datetime | None:
        return selected_date(self._selection)

    @property
    def selected_event(self) -> EventRef | None:
        return selected_event(self._selection)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def click_background(self) -> ViewMode:
        return self._apply(NO_SELECTION, None, force=ViewMode.WEEK)

    def click_date_header(self, day: date | datetime) -> ViewMode:
        return self._apply(DateSelected(date=start_of_day(day)), None)

    def click_event(self, event: EventRef) -> ViewMode:
        return self._apply(EventSelected(event=event), None)

    def click_category(self, name: str) -> ViewMode:
        """Open the category filter; ignored unless Week or Day is showing."""
        if self._view not in CATEGORY_ENTRY_VIEWS:
            logger.debug("Ignoring category click from %s view", self._view)
            return self._view
        return self._apply(self._selection, name)

    def back(self) -> ViewMode:
        """Leave Event or CategoryFilter for Day (date still selected) or Week."""
        if self._view is ViewMode.CATEGORY_FILTER:
            return self._apply(self._selection, None)
        if self._view is ViewMode.EVENT:
            return self._apply(NO_SELECTION, self._active_category)
        return self._view

    def close_day(self) -> ViewMode:
        if self._view is ViewMode.DAY:
            return self._apply(NO_SELECTION, None)
        return self._view

    def reconcile_event(self, blocks: Iterable[TimeBlock]) -> ViewMode:
        """Drop the selected event if refreshed week data no longer has it."""
        event = self.selected_event
        if event is None:
            return self._view
        if any(event.matches(block) for block in blocks):
            return self._view
        logger.debug("Selected event %s vanished after refresh", event.title)
        return self._apply(NO_SELECTION, None)

    # ------------------------------------------------------------------
    # Hook implementations
    # ------------------------------------------------------------------

    @hookimpl
    def post_mutation(self, request: MutationRequest, result: CommandResult) -> None:
        if not result.ok:
            return
        subject = request.subject
        if isinstance(subject, EventRef) and subject == self.selected_event:
            remaining = request.subject_after
            if request.destructive or (remaining is not None and not remaining.apps):
                self._apply(NO_SELECTION, None)
            elif remaining is not None:
                self._apply(EventSelected(event=remaining), None)
            return
        if request.destructive and isinstance(subject, str) and subject == self._active_category:
            self._apply(NO_SELECTION, None)

    @hookimpl
    def post_week_change(self, anchor: datetime, source: str) -> None:
        # Paging the widget keeps the selection; explicit navigation resets it.
        if source == NavigationSource.USER:
            self._apply(NO_SELECTION, None)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _apply(
        self,
        selection: SelectionState,
        active_category: str | None,
        *,
        force: ViewMode | None = None,
    ) -> ViewMode:
        view = force or derive_view(selection, active_category)
        if (selection, active_category, view) == (
            self._selection,
            self._active_category,
            self._view,
        ):
            return view
        self._selection = selection
        self._active_category = active_category
        self._view = view
        logger.debug("Side panel view: %s", view)
        self._dispatch_event(
            "post_view_change",
            view=str(view),
            selection=selection,
            active_category=active_category,
        )
        return view
