"""ConfirmationGate — preview the blast radius, then confirm the commit.

Protocol: PREVIEW → (prompt) → CONFIRM | CANCEL

- ``preview`` validates the filter locally, then asks the backend how many
  records it matches and stores a :class:`PendingConfirmation`.
- ``confirm`` commits through the mutation pipeline using the filter that
  was captured at preview time.
- Any edit to the filter input discards the pending confirmation, so a
  commit never runs against a filter other than the one previewed.

Preview and commit are separate remote calls. Records written in between
are affected by the commit even though the preview did not count them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from timelens.domain.types import ErrorKind, ToastKind
from timelens.services.base import BaseService, ServiceContext
from timelens.services.mutations import MutationPipeline, MutationRequest
from timelens.services.result import CommandError, CommandResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DestructiveOperation:
    """How to count and how to commit one kind of filter-based deletion.

    Attributes:
        name: Operation name used in logs and hooks.
        count_command: Read-only command returning the match count.
        count_payload: Builds the count command's payload from a filter.
        commit_request: Builds the destructive MutationRequest from a filter.
        validate: Local check returning an error message, or None.
        preview_error_message: Toast text when counting fails.
    """

    name: str
    count_command: str
    count_payload: Callable[[Any], dict[str, Any]]
    commit_request: Callable[[Any], MutationRequest]
    validate: Callable[[Any], str | None] | None = None
    preview_error_message: str = "Failed to count matching records"


class PendingConfirmation(BaseModel):
    """A successful preview awaiting the user's decision."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    filter_spec: Any
    preview_count: int
    created_at: datetime


class ConfirmationGate(BaseService):
    """Two-phase gate in front of one :class:`DestructiveOperation`."""

    def __init__(
        self,
        ctx: ServiceContext,
        pipeline: MutationPipeline,
        operation: DestructiveOperation,
    ) -> None:
        super().__init__(ctx)
        self._pipeline = pipeline
        self._operation = operation
        self._filter_input: Any = None
        self._pending: PendingConfirmation | None = None
        self._inline_error: str | None = None
        self._edits = 0
        self._confirming = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def operation(self) -> DestructiveOperation:
        return self._operation

    @property
    def pending(self) -> PendingConfirmation | None:
        return self._pending

    @property
    def filter_input(self) -> Any:
        return self._filter_input

    @property
    def inline_error(self) -> str | None:
        """Local validation message shown next to the input (never toasted)."""
        return self._inline_error

    @property
    def can_confirm(self) -> bool:
        return self._pending is not None and not self._confirming

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def edit_filter(self, value: Any) -> None:
        """Record an edit to the filter input, discarding any pending confirmation."""
        self._filter_input = value
        self._inline_error = None
        self._edits += 1
        if self._pending is not None:
            logger.debug("Filter edited; dropping pending %s confirmation", self._operation.name)
            self._pending = None

    async def preview(self, filter_spec: Any = None) -> CommandResult:
        """Count what *filter_spec* (default: the current input) would affect."""
        op = self._operation
        spec = self._filter_input if filter_spec is None else filter_spec

        # ── VALIDATE ─────────────────────────────────────────
        problem = op.validate(spec) if op.validate is not None else None
        if problem is not None:
            self._inline_error = problem
            return CommandResult(
                ok=False,
                op=op.count_command,
                error=CommandError(kind=ErrorKind.INVALID_INPUT, data=problem),
            )
        self._inline_error = None

        # ── COUNT ────────────────────────────────────────────
        edits_before = self._edits
        result = await self._ctx.commands.call(op.count_command, op.count_payload(spec))
        if result.ok and (isinstance(result.data, bool) or not isinstance(result.data, int)):
            result = CommandResult(
                ok=False,
                op=op.count_command,
                error=CommandError(
                    kind=ErrorKind.TRANSPORT_FAILURE,
                    data=f"Expected an integer count, got {result.data!r}",
                ),
            )
        if not result.ok:
            assert result.error is not None
            self._ctx.toasts.show(
                f"{op.preview_error_message}: {result.error.message}",
                ToastKind.ERROR,
                detail=result.error.to_detail(),
            )
            return result

        # An edit landed while the count was in flight: the count is stale.
        if self._edits != edits_before:
            logger.debug("Discarding stale %s preview", op.name)
            return result.with_warnings(
                ["Filter changed while counting; preview discarded"]
            ).with_meta(stale=True)

        # ── STORE ────────────────────────────────────────────
        self._pending = PendingConfirmation(
            filter_spec=spec,
            preview_count=result.data,
            created_at=datetime.now(),
        )
        warnings = self._dispatch_event(
            "post_preview",
            operation=op.name,
            filter_spec=spec,
            preview_count=result.data,
        )
        return result.with_warnings(warnings)

    async def confirm(self) -> CommandResult | None:
        """Commit the previewed filter. No-op (None) without a pending preview.

        The pending confirmation survives a failed commit so the user can
        confirm again; it is cleared on success.
        """
        pending = self._pending
        if pending is None or self._confirming:
            return None

        self._confirming = True
        try:
            result = await self._pipeline.execute(
                self._operation.commit_request(pending.filter_spec)
            )
        finally:
            self._confirming = False

        if result.ok and self._pending is pending:
            self._pending = None
        return result

    def cancel(self) -> None:
        """Drop the pending confirmation. No remote effect."""
        self._pending = None
