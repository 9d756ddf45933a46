"""Pluggy hook specifications for client lifecycle events.

Hooks are dispatched synchronously on the event loop, right after the
state they describe has been committed. Implementations must not await.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from timelens.services.mutations import MutationRequest
    from timelens.services.result import CommandResult

hookspec = pluggy.HookspecMarker("timelens")
hookimpl = pluggy.HookimplMarker("timelens")


class TimelensHookSpec:
    """Hook specifications for the timelens plugin system."""

    @hookspec
    def post_mutation(self, request: MutationRequest, result: CommandResult) -> None:
        """Called after a mutation settled, once cache and toast are final."""

    @hookspec
    def post_preview(self, operation: str, filter_spec: Any, preview_count: int) -> None:
        """Called after a successful preview stored a pending confirmation."""

    @hookspec
    def post_week_change(self, anchor: datetime, source: str) -> None:
        """Called after the canonical week moved (``source``: user or widget)."""

    @hookspec
    def post_view_change(
        self,
        view: str,
        selection: Any,
        active_category: str | None,
    ) -> None:
        """Called after the side-panel view or its selection changed."""
