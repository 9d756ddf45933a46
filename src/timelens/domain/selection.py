"""Selection state and side-panel view derivation.

SelectionState is a tagged variant: nothing, a date, or an event.
INVARIANT: exactly one arm is active; selecting one clears the other.

The view is derived from ``(selection, active_category)`` by
:func:`derive_view`. Derivation is pure, so applying the same transition
twice yields the same view.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from timelens.domain.models import EventRef
from timelens.domain.types import ViewMode


class NoSelection(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["none"] = "none"


class DateSelected(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["date"] = "date"
    date: datetime


class EventSelected(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["event"] = "event"
    event: EventRef


SelectionState = Annotated[
    NoSelection | DateSelected | EventSelected,
    Field(discriminator="kind"),
]

NO_SELECTION = NoSelection()

# Views the category row can be clicked from.
CATEGORY_ENTRY_VIEWS: frozenset[ViewMode] = frozenset({ViewMode.WEEK, ViewMode.DAY})


def derive_view(selection: SelectionState, active_category: str | None) -> ViewMode:
    """Compute the side-panel view for a selection.

    An active category filter wins, then an event, then a date.
    """
    if active_category is not None:
        return ViewMode.CATEGORY_FILTER
    if isinstance(selection, EventSelected):
        return ViewMode.EVENT
    if isinstance(selection, DateSelected):
        return ViewMode.DAY
    return ViewMode.WEEK


def selected_date(selection: SelectionState) -> datetime | None:
    if isinstance(selection, DateSelected):
        return selection.date
    return None


def selected_event(selection: SelectionState) -> EventRef | None:
    if isinstance(selection, EventSelected):
        return selection.event
    return None
