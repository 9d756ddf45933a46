"""Local validation of regex filter patterns.

Patterns are evaluated by the backend's regex engine, which accepts inline
flag groups such as ``(?i)`` anywhere in the pattern. Those groups are
stripped before compiling here so that only the structure is checked.
"""

from __future__ import annotations

import re

_INLINE_FLAGS = re.compile(r"\(\?[imsxU]+\)")


def validate_pattern(pattern: str) -> str | None:
    """Return an error message for *pattern*, or None if it is usable.

    Examples:
        >>> validate_pattern("^Chrome$") is None
        True
        >>> validate_pattern("(?i)discord") is None
        True
        >>> validate_pattern("   ")
        'Pattern cannot be empty'
    """
    if not pattern.strip():
        return "Pattern cannot be empty"
    try:
        re.compile(_INLINE_FLAGS.sub("", pattern))
    except re.error as exc:
        return f"Invalid regex: {exc}"
    return None
