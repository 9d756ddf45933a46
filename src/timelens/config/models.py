"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, timelens.toml only contains
overrides. A fresh install needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# --- timelens.toml sections ---


class ToastConfig(BaseModel):
    """[toasts] section."""

    model_config = {"frozen": True}

    max_entries: int = Field(default=4, ge=1)
    default_duration_ms: int = 3000
    error_duration_ms: int = 5000
    copy_revert_ms: int = 2000


class DateSyncConfig(BaseModel):
    """[dates] section."""

    model_config = {"frozen": True}

    suppression_window_ms: int = Field(default=100, ge=0)


class MutationConfig(BaseModel):
    """[mutations] section."""

    model_config = {"frozen": True}

    success_dismiss_ms: int = 3000
    error_dismiss_ms: int = 5000
    serialize_per_key: bool = False

