"""Remote command boundary.

The embedding shell supplies a :class:`Transport`: an async callable that
forwards a named command and its payload to the backend. The backend
replies either with data or with an error shape::

    {"type": "Db", "data": "..."} | {"type": "NotFound"}
    | {"type": "Regex", "data": "..."} | {"type": "Other", "data": "..."}

Replies may arrive as JSON text or already decoded. :class:`RemoteCommands`
turns each reply into a :class:`CommandResult` exactly once.

INVARIANT: Transport and parse failures become ``TransportFailure`` results;
they never raise past this module.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Protocol

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from timelens.domain.types import ErrorKind
from timelens.services.result import CommandError, CommandResult

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Async callable forwarding one command to the backend."""

    async def __call__(self, command: str, payload: dict[str, Any]) -> Any: ...


class TransportError(Exception):
    """Raised by a transport when the backend cannot be reached."""


# --- Wire error shapes ---


class _WireError(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}


class _DbError(_WireError):
    type: Literal["Db"]
    data: str


class _NotFoundError(_WireError):
    type: Literal["NotFound"]


class _RegexError(_WireError):
    type: Literal["Regex"]
    data: str


class _OtherError(_WireError):
    type: Literal["Other"]
    data: str


_ERROR_SHAPE: TypeAdapter[_DbError | _NotFoundError | _RegexError | _OtherError] = TypeAdapter(
    Annotated[
        _DbError | _NotFoundError | _RegexError | _OtherError,
        Field(discriminator="type"),
    ]
)


def _match_error(raw: Any) -> CommandError | None:
    """Return the error carried by *raw*, or None if *raw* is data.

    Only objects that validate exactly against one error shape count as
    errors; records that merely carry a ``type`` field stay data.
    """
    if not isinstance(raw, dict) or "type" not in raw:
        return None
    try:
        shape = _ERROR_SHAPE.validate_python(raw)
    except ValidationError:
        return None
    return CommandError(kind=ErrorKind(shape.type), data=getattr(shape, "data", None))


def transport_failure(op: str, message: str) -> CommandResult:
    """Build the locally synthesized failure result."""
    return CommandResult(
        ok=False,
        op=op,
        error=CommandError(kind=ErrorKind.TRANSPORT_FAILURE, data=message),
    )


def decode_reply(op: str, raw: Any) -> CommandResult:
    """Convert one raw backend reply into a CommandResult."""
    if isinstance(raw, bytes | bytearray):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Unparseable reply to %s: %s", op, exc)
            return transport_failure(op, f"Unparseable reply: {exc}")

    error = _match_error(raw)
    if error is not None:
        return CommandResult(ok=False, op=op, error=error)
    return CommandResult(ok=True, op=op, data=raw)


class RemoteCommands:
    """Invokes named commands through a transport and tags the replies.

    Usage::

        commands = RemoteCommands(shell_transport)
        result = await commands.call("get_week", {"weekStart": 0, "weekEnd": 1})
        if result.ok:
            ...
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def call(self, command: str, payload: dict[str, Any] | None = None) -> CommandResult:
        try:
            raw = await self._transport(command, payload or {})
        except (TransportError, OSError) as exc:
            logger.warning("Transport failure for %s: %s", command, exc)
            return transport_failure(command, f"{type(exc).__name__}: {exc}")
        return decode_reply(command, raw)
