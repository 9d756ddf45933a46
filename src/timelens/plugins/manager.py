"""Hook registration and dispatch.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus plugins registered directly by the client (built-in listeners).
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

import pluggy

from timelens.plugins.hookspecs import TimelensHookSpec

PROJECT_NAME = "timelens"

logger = logging.getLogger(__name__)


class HookManager:
    """Manages plugin registration and hook dispatch.

    INVARIANT: Plugin failures are warnings, never errors.
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(TimelensHookSpec)

    def discover(self) -> list[str]:
        """Load plugins advertised under the ``timelens.plugins`` entry point group.

        Returns a list of registered plugin names.
        """
        self._pm.load_setuptools_entrypoints("timelens.plugins")
        self._normalize_plugin_instances()
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance directly (e.g. built-in listeners)."""
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        """Unregister a plugin instance."""
        self._pm.unregister(plugin)

    @property
    def hook(self) -> pluggy.HookRelay:
        """Access the hook relay for dispatching events."""
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        """Return names of all registered plugins."""
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    def dispatch(self, hook_name: str, **payload: Any) -> list[str]:
        """Call every implementation of *hook_name*; return warnings for failures.

        Implementations are called one by one so a failing plugin does not
        stop the others.
        """
        warnings: list[str] = []
        caller = getattr(self._pm.hook, hook_name, None)
        if caller is None:
            return warnings
        for impl in reversed(caller.get_hookimpls()):
            try:
                impl.function(**{arg: payload[arg] for arg in impl.argnames})
            except Exception:
                logger.warning(
                    "Hook %s failed in plugin %s", hook_name, impl.plugin_name, exc_info=True
                )
                warnings.append(f"Hook {hook_name} failed in {impl.plugin_name}")
        return warnings

    def _normalize_plugin_instances(self) -> None:
        """Replace registered plugin classes with instantiated objects.

        An entry point may name a class rather than an instance. Hook
        dispatch against the class leaves ``self`` unbound.
        """
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin):
                continue
            if not self._has_hook_impls(plugin):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning(
                    "Failed to instantiate entry-point plugin %s", name, exc_info=True
                )
                continue
            self._pm.register(instance, name=name)
            logger.debug("Instantiated entry-point plugin %s", name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        for attr_name in dir(cls):
            if attr_name.startswith("_"):
                continue
            method = getattr(cls, attr_name, None)
            if callable(method) and getattr(method, f"{PROJECT_NAME}_impl", None):
                return True
        return False
