"""CommandResult and CommandError — the tagged result of every remote call.

INVARIANT: A CommandResult is built exactly once, at the remote command
boundary (:mod:`timelens.infrastructure.rpc`). Nothing downstream inspects
raw replies to guess whether they are errors.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from timelens.domain.types import ErrorKind


class CommandError(BaseModel):
    """Structured error payload within a CommandResult.

    Mirrors the backend's error shape: ``kind`` is the ``type`` tag and
    ``data`` its optional detail string.
    """

    model_config = {"frozen": True}

    kind: ErrorKind
    data: str | None = None

    @property
    def message(self) -> str:
        """Short human-readable message for a toast or inline error."""
        if self.kind is ErrorKind.NOT_FOUND:
            return self.data or "Not found"
        return self.data or str(self.kind)

    def to_detail(self) -> str:
        """Full structured error as JSON, suitable for the clipboard."""
        return self.model_dump_json(indent=2)


class CommandResult(BaseModel):
    """Universal return type for remote commands and the components wrapping them.

    Attributes:
        ok: Whether the command succeeded.
        op: Name of the command (e.g. ``"delete_logs_for_time_block"``).
        data: Command-specific payload on success (any JSON value).
        error: Structured error if ``ok`` is False.
        warnings: Non-fatal issues, such as a failing hook.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: Any = None
    error: CommandError | None = None
    warnings: list[str] = Field(default_factory=list)
    meta: dict[str, Any] | None = None

    def with_meta(self, **fields: Any) -> CommandResult:
        """Copy of this result with *fields* merged into ``meta``."""
        return self.model_copy(update={"meta": {**(self.meta or {}), **fields}})

    def with_warnings(self, warnings: list[str]) -> CommandResult:
        if not warnings:
            return self
        return self.model_copy(update={"warnings": [*self.warnings, *warnings]})
