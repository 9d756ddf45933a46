"""QueryService — typed read-through access to cached backend queries.

Each read names a cache partition and a query identity. Fresh entries are
served from the cache; missing or invalidated ones are fetched. Replies are
validated into domain models on the way out, so the cache keeps raw wire
data that optimistic patches can edit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from timelens.domain.dates import day_range, week_range, week_start
from timelens.domain.models import Category, DayStatistics, SkippedApp, TimeBlock, WeekStatistics
from timelens.infrastructure.cache import QueryKey
from timelens.infrastructure.rpc import transport_failure
from timelens.services.base import BaseService
from timelens.services.result import CommandResult

logger = logging.getLogger(__name__)

_BLOCKS = TypeAdapter(list[TimeBlock])
_SKIPPED = TypeAdapter(list[SkippedApp])
_CATEGORIES = TypeAdapter(list[Category])


class QueryService(BaseService):
    """Reads for the calendar and its side panels."""

    async def week_blocks(self, anchor: date | datetime) -> CommandResult:
        """Time blocks of the week containing *anchor*."""
        monday = week_start(anchor)
        start, end = week_range(monday)
        return await self._read(
            "week",
            (monday.isoformat(),),
            "get_week",
            {"weekStart": start, "weekEnd": end},
            _BLOCKS.validate_python,
        )

    async def week_statistics(self, anchor: date | datetime) -> CommandResult:
        start, end = week_range(anchor)
        return await self._read(
            "week_statistics",
            (start, end),
            "get_week_statistics",
            {"weekStart": start, "weekEnd": end},
            WeekStatistics.model_validate,
        )

    async def day_statistics(self, day: date | datetime) -> CommandResult:
        start, end = day_range(day)
        return await self._read(
            "day_statistics",
            (start, end),
            "get_day_statistics",
            {"dayStart": start, "dayEnd": end},
            DayStatistics.model_validate,
        )

    async def skipped_apps(self) -> CommandResult:
        return await self._read(
            "skipped_apps", (), "get_skipped_apps", {}, _SKIPPED.validate_python
        )

    async def categories(self) -> CommandResult:
        return await self._read("categories", (), "get_categories", {}, _CATEGORIES.validate_python)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _read(
        self,
        partition: str,
        query: QueryKey,
        command: str,
        payload: dict[str, Any],
        parse: Callable[[Any], Any],
    ) -> CommandResult:
        result = await self._ctx.cache.fetch(
            partition, query, lambda: self._ctx.commands.call(command, payload)
        )
        if not result.ok:
            return result
        try:
            parsed = parse(result.data)
        except ValidationError as exc:
            logger.warning("Malformed %s reply: %s", command, exc)
            return transport_failure(command, f"Malformed reply: {exc.error_count()} errors")
        return result.model_copy(update={"data": parsed})
