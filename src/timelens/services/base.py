"""BaseService — shared foundation for the coordination components.

Every service receives a :class:`ServiceContext` at construction time. The
context carries the collaborators a client instance owns: remote commands,
the query cache, the toast queue, the hook manager, and the timer source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from timelens.config.settings import TimelensSettings

if TYPE_CHECKING:
    from timelens.infrastructure.cache import QueryCache
    from timelens.infrastructure.clock import Scheduler
    from timelens.infrastructure.rpc import RemoteCommands
    from timelens.plugins.manager import HookManager
    from timelens.services.toasts import ToastScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Collaborators shared by the services of one client instance."""

    commands: RemoteCommands
    cache: QueryCache
    toasts: ToastScheduler
    scheduler: Scheduler
    hooks: HookManager | None = None
    settings: TimelensSettings = field(default_factory=TimelensSettings)


class BaseService:
    """Base for service-layer classes.

    Usage::

        class MutationPipeline(BaseService):
            async def execute(self, request) -> CommandResult:
                snapshot = self._ctx.cache.snapshot(request.cache_keys)
                ...
    """

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    def _dispatch_event(self, hook_name: str, **payload: Any) -> list[str]:
        """Dispatch a lifecycle hook. No-op without a hook manager.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        hooks = self._ctx.hooks
        if hooks is None:
            return []
        try:
            return hooks.dispatch(hook_name, **payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            return [f"Event dispatch failed for {hook_name}"]
