"""Extension layer — lifecycle hooks via pluggy.

INVARIANT: Plugin failures are warnings, never errors.
"""

from timelens.plugins.hookspecs import hookimpl
from timelens.plugins.manager import HookManager

__all__ = ["HookManager", "hookimpl"]
