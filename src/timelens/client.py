"""TimelensClient — the explicitly constructed state object of one client.

Created once when the desktop shell starts and closed at shutdown. It owns
the canonical week, the selection state, the query cache, and the toast
queue; there are no module-level singletons.

Usage::

    client = TimelensClient.from_settings(shell_transport, widget=calendar)
    client.dates.next_week()
    await client.run(client.skip_apps.preview("^Chrome$"))
    await client.run(client.skip_apps.confirm())
    client.close()
"""

from __future__ import annotations

import logging
import traceback
import uuid
from collections.abc import Awaitable, Iterable
from datetime import date, datetime
from typing import Any, TypeVar

from timelens.config.logging import bind_client_context, configure_logging
from timelens.config.settings import TimelensSettings
from timelens.domain.models import Category, EventRef
from timelens.domain.selection import SelectionState, selected_event
from timelens.domain.types import ToastKind
from timelens.infrastructure.cache import QueryCache
from timelens.infrastructure.clock import LoopScheduler, Scheduler
from timelens.infrastructure.rpc import RemoteCommands, Transport
from timelens.plugins.hookspecs import hookimpl
from timelens.plugins.manager import HookManager
from timelens.services.base import ServiceContext
from timelens.services.confirmation import ConfirmationGate
from timelens.services.dates import CalendarWidget, DateCoordinator
from timelens.services.mutations import MutationCrashed, MutationPipeline
from timelens.services.operations import (
    delete_category_request,
    delete_logs_request,
    delete_time_block,
    skip_app_pattern,
)
from timelens.services.queries import QueryService
from timelens.services.result import CommandResult
from timelens.services.toasts import Clipboard, ToastScheduler
from timelens.services.views import ViewSelector

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

UNEXPECTED_ERROR_MESSAGE = "Something went wrong"


class _SelectedEventFilter:
    """Keeps the time-block deletion filter on the selected event.

    Selecting another event (or none) counts as editing the filter, so a
    pending confirmation never outlives the event it was previewed for.
    """

    def __init__(self, gate: ConfirmationGate) -> None:
        self._gate = gate

    @hookimpl
    def post_view_change(
        self, view: str, selection: SelectionState, active_category: str | None
    ) -> None:
        event = selected_event(selection)
        if event != self._gate.filter_input:
            self._gate.edit_filter(event)


class TimelensClient:
    """Wires the coordination components around one transport.

    Parameters:
        transport: Async callable reaching the backend.
        settings: Loaded settings (default: discovered from the environment).
        scheduler: Timer source (default: the running asyncio loop).
        clipboard: Async clipboard writer for copying error details.
        widget: The calendar widget, if already mounted.
        initial_date: Starting week (default: today).
        hooks: Hook manager to share with external plugins.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        settings: TimelensSettings | None = None,
        scheduler: Scheduler | None = None,
        clipboard: Clipboard | None = None,
        widget: CalendarWidget | None = None,
        initial_date: date | datetime | None = None,
        hooks: HookManager | None = None,
    ) -> None:
        self.settings = settings or TimelensSettings.load()
        self.hooks = hooks or HookManager()
        timer_source = scheduler or LoopScheduler()
        self.context = ServiceContext(
            commands=RemoteCommands(transport),
            cache=QueryCache(),
            toasts=ToastScheduler(timer_source, self.settings.toasts, clipboard=clipboard),
            scheduler=timer_source,
            hooks=self.hooks,
            settings=self.settings,
        )
        self.mutations = MutationPipeline(self.context)
        self.queries = QueryService(self.context)
        self.dates = DateCoordinator(self.context, widget, initial=initial_date)
        self.views = ViewSelector(self.context)
        self.skip_apps = ConfirmationGate(self.context, self.mutations, skip_app_pattern())
        self.block_deletion = ConfirmationGate(self.context, self.mutations, delete_time_block())
        self._block_filter = _SelectedEventFilter(self.block_deletion)
        self.hooks.register_plugin(self.views, name="view_selector")
        self.hooks.register_plugin(self._block_filter, name="block_deletion_filter")
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        transport: Transport,
        *,
        settings: TimelensSettings | None = None,
        **kwargs: Any,
    ) -> TimelensClient:
        """Load settings, configure logging, and build a client."""
        resolved = settings or TimelensSettings.load()
        configure_logging(verbose=resolved.verbose, log_json=resolved.log_json)
        client = cls(transport, settings=resolved, **kwargs)
        bind_client_context(client_id=uuid.uuid4().hex[:8])
        return client

    # ------------------------------------------------------------------
    # Shortcuts
    # ------------------------------------------------------------------

    @property
    def toasts(self) -> ToastScheduler:
        return self.context.toasts

    @property
    def cache(self) -> QueryCache:
        return self.context.cache

    async def delete_category(self, category: Category) -> CommandResult:
        return await self.mutations.execute(delete_category_request(category))

    async def delete_logs(
        self,
        ids: list[int],
        *,
        event: EventRef | None = None,
        apps: Iterable[str] = (),
    ) -> CommandResult:
        """Delete logs by id; with *event*, the logs of its *apps*."""
        return await self.mutations.execute(delete_logs_request(ids, event=event, apps=apps))

    # ------------------------------------------------------------------
    # Top-level error handling
    # ------------------------------------------------------------------

    async def run(self, action: Awaitable[_T]) -> _T | None:
        """Await a user-initiated action; unexpected errors end up as a toast."""
        try:
            return await action
        except MutationCrashed:
            # Already on screen as the mutation's error toast.
            logger.error("Mutation crashed", exc_info=True)
            return None
        except Exception as exc:
            self.report_unexpected(exc)
            return None

    def report_unexpected(self, exc: BaseException) -> str:
        """Log *exc* and make sure the user sees an error toast for it."""
        logger.error("Unhandled error in client action", exc_info=exc)
        return self.toasts.show(
            f"{UNEXPECTED_ERROR_MESSAGE}: {type(exc).__name__}",
            ToastKind.ERROR,
            detail="".join(traceback.format_exception(exc)),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel timers and detach listeners. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.toasts.close()
        self.dates.close()
        self.hooks.unregister(self.views)
        self.hooks.unregister(self._block_filter)

    def __enter__(self) -> TimelensClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
