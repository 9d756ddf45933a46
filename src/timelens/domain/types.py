"""Classification enums shared across the client core.

Toast kinds, side-panel view modes, and the error kinds that can cross
the remote command boundary.
"""

from __future__ import annotations

from enum import StrEnum


class ToastKind(StrEnum):
    """Visual/lifecycle kind of a toast entry."""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    LOADING = "loading"


class ViewMode(StrEnum):
    """Side-panel views next to the calendar."""

    WEEK = "Week"
    DAY = "Day"
    EVENT = "Event"
    CATEGORY_FILTER = "CategoryFilter"


class ErrorKind(StrEnum):
    """Error kinds a remote command can settle with.

    ``DB``, ``NOT_FOUND``, ``REGEX`` and ``OTHER`` come from the backend.
    ``TRANSPORT_FAILURE`` is synthesized locally when the call cannot be
    reached or its reply cannot be parsed.
    ``INVALID_INPUT`` is a local validation failure: shown inline at the
    input, never toasted, never sent to the backend.
    """

    DB = "Db"
    NOT_FOUND = "NotFound"
    REGEX = "Regex"
    OTHER = "Other"
    TRANSPORT_FAILURE = "TransportFailure"
    INVALID_INPUT = "InvalidInput"


class NavigationSource(StrEnum):
    """Who moved the canonical week."""

    USER = "user"
    WIDGET = "widget"
