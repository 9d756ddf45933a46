"""Locating and parsing ``timelens.toml``.

The file is optional. ``TIMELENS_CONFIG`` names it explicitly; otherwise
the nearest ``timelens.toml`` in the start directory or one of its parents
is used.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "timelens.toml"
CONFIG_ENV_VAR = "TIMELENS_CONFIG"


class ConfigError(Exception):
    """Raised when a config file exists but cannot be parsed."""


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file for *start* (default: cwd), or None.

    An explicit ``TIMELENS_CONFIG`` that points at no file disables the
    search instead of falling back to it.
    """
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit)
        return path if path.is_file() else None

    origin = (start or Path.cwd()).resolve()
    for directory in (origin, *origin.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_toml(path: Path) -> dict[str, Any]:
    """Parse *path*, wrapping syntax errors in :class:`ConfigError`."""
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(msg) from exc
