"""Records exchanged with the tracking backend.

Wire payloads use snake_case keys and integer Unix seconds; these models
validate them once at the boundary and expose local datetimes where the
views need them.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field

from timelens.domain.dates import from_unix

# Events whose bounds differ by less than this still refer to the same block.
EVENT_MATCH_TOLERANCE_SECONDS = 1.0


class AppDuration(BaseModel):
    """Time spent in one application inside a block."""

    model_config = {"frozen": True}

    app: str
    total_duration: int = 0


class TimeBlock(BaseModel):
    """A categorized, contiguous block of tracked activity (``get_week`` rows)."""

    model_config = {"frozen": True}

    id: int
    category: str
    start_time: int
    end_time: int
    apps: tuple[AppDuration, ...] = ()

    @property
    def start(self) -> datetime:
        return from_unix(self.start_time)

    @property
    def end(self) -> datetime:
        return from_unix(self.end_time)


class EventRef(BaseModel):
    """The calendar event a user clicked on."""

    model_config = {"frozen": True}

    title: str
    start: datetime
    end: datetime
    apps: tuple[AppDuration, ...] = ()

    @classmethod
    def from_block(cls, block: TimeBlock) -> Self:
        return cls(title=block.category, start=block.start, end=block.end, apps=block.apps)

    @property
    def app_names(self) -> list[str]:
        return [a.app for a in self.apps]

    def without_apps(self, names: Iterable[str]) -> Self:
        """Copy of this event minus the given applications."""
        dropped = set(names)
        kept = tuple(a for a in self.apps if a.app not in dropped)
        return self.model_copy(update={"apps": kept})

    def matches(self, block: TimeBlock) -> bool:
        """Whether *block* is still the same event after a refresh.

        Bounds must agree within one second and the app sets must be equal.
        """
        start_ok = (
            abs((block.start - self.start).total_seconds()) < EVENT_MATCH_TOLERANCE_SECONDS
        )
        end_ok = abs((block.end - self.end).total_seconds()) < EVENT_MATCH_TOLERANCE_SECONDS
        return start_ok and end_ok and set(self.app_names) == {a.app for a in block.apps}


class SkippedApp(BaseModel):
    """An application pattern excluded from tracking."""

    model_config = {"frozen": True}

    id: int
    regex: str


class Category(BaseModel):
    model_config = {"frozen": True}

    id: int
    name: str
    priority: int = 0
    color: str | None = None


class CategoryStat(BaseModel):
    model_config = {"frozen": True}

    category: str
    total_duration: int
    percentage: float = 0.0
    percentage_change: float | None = None
    color: str | None = None


class AppStat(BaseModel):
    model_config = {"frozen": True}

    app: str
    total_duration: int
    percentage_change: float | None = None


class HourlyStat(BaseModel):
    model_config = {"frozen": True}

    hour: int
    total_duration: int


class DayStatistics(BaseModel):
    """``get_day_statistics`` reply."""

    model_config = {"frozen": True}

    total_time: int = 0
    categories: list[CategoryStat] = Field(default_factory=list)
    top_apps: list[AppStat] = Field(default_factory=list)
    hourly_distribution: list[HourlyStat] = Field(default_factory=list)


class WeekStatistics(DayStatistics):
    """``get_week_statistics`` reply (the fields the side panels read)."""

    total_time_change: float | None = None
    all_apps: list[AppStat] = Field(default_factory=list)
    number_of_active_days: int = 0
    total_number_of_days: int = 0
    average_time_active_days: float = 0.0
