"""MutationPipeline — optimistic mutate, confirm remotely, roll back on failure.

Pipeline: SNAPSHOT → PATCH → LOADING TOAST → INVOKE → SETTLE

On success the named cache partitions are invalidated (re-fetched on their
next read) and the toast turns ``success``. On failure every named
partition is restored to its snapshot, discarding the optimistic patch
even if something read it meanwhile, and the toast turns ``error`` with
the full structured error attached for copying.

PRECONDITION: At most one in-flight mutation per cache key. If two
overlapping mutations share a key, the later rollback can erase the
earlier mutation's optimistic patch until that one settles too. With
``[mutations] serialize_per_key = true`` the pipeline queues mutations per
key instead.
"""

from __future__ import annotations

import asyncio
import time
import traceback
import uuid
from collections.abc import Callable, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

import structlog

from timelens.domain.models import EventRef
from timelens.domain.types import ToastKind
from timelens.infrastructure.cache import QueryKey
from timelens.services.base import BaseService, ServiceContext
from timelens.services.result import CommandResult

log = structlog.get_logger(__name__)


class MutationCrashed(Exception):
    """An unexpected error escaped a mutation after rollback.

    The loading toast already shows the error; the original exception is
    chained as ``__cause__``.
    """

    def __init__(self, request_id: str, op: str) -> None:
        super().__init__(f"Mutation {op} ({request_id}) crashed")
        self.request_id = request_id
        self.op = op


@dataclass(frozen=True)
class CachePatch:
    """Speculative update of one partition (one entry, or all when *query* is None)."""

    key: str
    updater: Callable[[Any], Any]
    query: QueryKey | None = None


@dataclass(frozen=True)
class MutationRequest:
    """A data-changing remote command plus everything needed to undo it locally.

    Attributes:
        command_name: Remote command to invoke.
        payload: Arguments forwarded verbatim.
        cache_keys: Partitions snapshotted before the call and invalidated
            after a success. Partitions touched by ``optimistic_patch`` are
            always included.
        optimistic_patch: Patches applied before the call, or None.
        loading_message / success_message / error_message: Toast texts.
        destructive: Whether success removes ``subject``.
        subject: The event or category name this mutation acts on.
        subject_after: What a non-destructive success leaves of the
            ``subject`` event, or None if the event is unaffected.
        id: Unique request id.
    """

    command_name: str
    payload: dict[str, Any] = field(default_factory=dict)
    cache_keys: tuple[str, ...] = ()
    optimistic_patch: Sequence[CachePatch] | None = None
    loading_message: str | None = None
    success_message: str | None = None
    error_message: str | None = None
    destructive: bool = False
    subject: EventRef | str | None = None
    subject_after: EventRef | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def snapshot_keys(self) -> tuple[str, ...]:
        """Every partition this request may write, in first-seen order."""
        patched = [p.key for p in self.optimistic_patch or ()]
        return tuple(dict.fromkeys([*self.cache_keys, *patched]))


class MutationPipeline(BaseService):
    """Runs MutationRequests against the shared cache and toast queue."""

    def __init__(self, ctx: ServiceContext) -> None:
        super().__init__(ctx)
        self._key_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, request: MutationRequest) -> CommandResult:
        """Run one mutation. Single attempt, no retry.

        Expected failures come back as ``CommandResult(ok=False)`` after the
        rollback. Anything else is rolled back, reported on the toast, and
        re-raised as :class:`MutationCrashed`.
        """
        if not self._ctx.settings.mutations.serialize_per_key:
            return await self._run(request)

        async with AsyncExitStack() as stack:
            # Sorted acquisition keeps two multi-key requests from deadlocking.
            for key in sorted(request.snapshot_keys):
                await stack.enter_async_context(self._lock_for(key))
            return await self._run(request)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def _run(self, request: MutationRequest) -> CommandResult:
        cache = self._ctx.cache
        toasts = self._ctx.toasts
        cfg = self._ctx.settings.mutations
        op = request.command_name
        bound = log.bind(op=op, request_id=request.id, cache_keys=list(request.cache_keys))

        # ── SNAPSHOT ─────────────────────────────────────────
        snapshot = cache.snapshot(request.snapshot_keys)

        # ── PATCH ────────────────────────────────────────────
        if request.optimistic_patch:
            try:
                for patch in request.optimistic_patch:
                    cache.patch(patch.key, patch.updater, patch.query)
            except Exception:
                cache.restore(snapshot)
                raise

        # ── LOADING TOAST ────────────────────────────────────
        toast_id = toasts.show(request.loading_message or f"Running {op}...", ToastKind.LOADING)
        bound.debug("mutation.start")
        started = time.perf_counter()

        # ── INVOKE ───────────────────────────────────────────
        try:
            result = await self._ctx.commands.call(op, request.payload)
        except asyncio.CancelledError:
            cache.restore(snapshot)
            self._settle_toast(
                toast_id,
                f"{request.error_message or f'{op} failed'}: cancelled",
                ToastKind.ERROR,
                duration_ms=cfg.error_dismiss_ms,
            )
            bound.warning("mutation.cancelled")
            raise
        except Exception as exc:
            cache.restore(snapshot)
            self._settle_toast(
                toast_id,
                f"{request.error_message or f'{op} failed'}: unexpected error",
                ToastKind.ERROR,
                detail="".join(traceback.format_exception(exc)),
                duration_ms=cfg.error_dismiss_ms,
            )
            bound.error("mutation.crashed", exc_info=True)
            raise MutationCrashed(request.id, op) from exc

        # ── SETTLE ───────────────────────────────────────────
        if result.ok:
            for key in request.snapshot_keys:
                cache.invalidate(key)
            self._settle_toast(
                toast_id,
                request.success_message or f"{op} succeeded",
                ToastKind.SUCCESS,
                duration_ms=cfg.success_dismiss_ms,
            )
        else:
            assert result.error is not None
            cache.restore(snapshot)
            self._settle_toast(
                toast_id,
                f"{request.error_message or f'{op} failed'}: {result.error.message}",
                ToastKind.ERROR,
                detail=result.error.to_detail(),
                duration_ms=cfg.error_dismiss_ms,
            )

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        bound.debug("mutation.settled", ok=result.ok, duration_ms=duration_ms)

        warnings = self._dispatch_event("post_mutation", request=request, result=result)
        return result.with_warnings(warnings).with_meta(duration_ms=duration_ms)

    def _settle_toast(
        self,
        toast_id: str,
        message: str,
        kind: ToastKind,
        *,
        detail: str | None = None,
        duration_ms: int,
    ) -> None:
        """Turn the loading toast into its final state.

        If the loading entry was evicted meanwhile, an error still gets a
        fresh toast; a success does not.
        """
        toasts = self._ctx.toasts
        if toasts.update(toast_id, message, kind, detail, duration_ms=duration_ms):
            return
        if kind is ToastKind.ERROR:
            toasts.show(message, kind, duration_ms, detail)
