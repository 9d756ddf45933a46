"""Built-in mutations of the tracking client.

Two filter-based deletions run behind a ConfirmationGate:

- ``skip_app_pattern``: stop tracking apps matching a regex and delete the
  logs it already matches.
- ``delete_time_block``: delete every log inside a calendar event.

Category deletion is a plain mutation; its success clears an active
category filter.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from timelens.domain.dates import to_unix
from timelens.domain.models import Category, EventRef
from timelens.domain.patterns import validate_pattern
from timelens.services.confirmation import DestructiveOperation
from timelens.services.mutations import CachePatch, MutationRequest

# Partitions whose contents depend on which logs exist.
LOG_DERIVED_KEYS: tuple[str, ...] = ("week", "week_statistics", "day_statistics")


# --- skip_app_pattern ---


def _skip_pattern_request(pattern: str) -> MutationRequest:
    placeholder = {"id": -int(time.time() * 1000), "regex": pattern}

    def add_placeholder(old: Any) -> list[dict[str, Any]]:
        return sorted([*(old or []), placeholder], key=lambda app: app["regex"])

    return MutationRequest(
        command_name="insert_skipped_app_and_delete_logs",
        payload={"newApp": {"regex": pattern}},
        cache_keys=("skipped_apps", *LOG_DERIVED_KEYS),
        optimistic_patch=[CachePatch("skipped_apps", add_placeholder, query=())],
        loading_message=f'Adding pattern "{pattern}"...',
        success_message=f'Pattern "{pattern}" added successfully',
        error_message="Failed to add pattern",
    )


def skip_app_pattern() -> DestructiveOperation:
    return DestructiveOperation(
        name="skip_app_pattern",
        count_command="count_matching_logs",
        count_payload=lambda pattern: {"regex": pattern},
        commit_request=_skip_pattern_request,
        validate=lambda pattern: validate_pattern(pattern or ""),
        preview_error_message="Failed to count matching logs",
    )


# --- delete_time_block ---


def time_block_payload(event: EventRef) -> dict[str, Any]:
    return {
        "app_names": event.app_names,
        "start_time": to_unix(event.start),
        "end_time": to_unix(event.end),
    }


def _validate_event(event: EventRef | None) -> str | None:
    if event is None:
        return "No event selected"
    if event.end <= event.start:
        return "Event has no duration"
    if not event.apps:
        return "Event has no apps"
    return None


def _delete_block_request(event: EventRef) -> MutationRequest:
    start, end = to_unix(event.start), to_unix(event.end)
    apps = set(event.app_names)

    def drop_block(old: Any) -> Any:
        if not old:
            return old
        return [
            block
            for block in old
            if not (
                block.get("start_time") == start
                and block.get("end_time") == end
                and {a.get("app") for a in block.get("apps", [])} == apps
            )
        ]

    return MutationRequest(
        command_name="delete_logs_for_time_block",
        payload=time_block_payload(event),
        cache_keys=LOG_DERIVED_KEYS,
        optimistic_patch=[CachePatch("week", drop_block)],
        loading_message=f"Deleting {event.title} block...",
        success_message=f"Deleted {event.title} block",
        error_message="Failed to delete time block",
        destructive=True,
        subject=event,
    )


def delete_time_block() -> DestructiveOperation:
    return DestructiveOperation(
        name="delete_time_block",
        count_command="count_logs_for_time_block",
        count_payload=time_block_payload,
        commit_request=_delete_block_request,
        validate=_validate_event,
        preview_error_message="Failed to count logs in time block",
    )


# --- plain mutations ---


def delete_category_request(category: Category) -> MutationRequest:
    """Delete a category; optimistic removal from the ``categories`` list."""

    def drop_category(old: Any) -> Any:
        if not old:
            return old
        return [c for c in old if c.get("id") != category.id]

    return MutationRequest(
        command_name="delete_category_by_id",
        payload={"id": category.id},
        cache_keys=("categories", *LOG_DERIVED_KEYS),
        optimistic_patch=[CachePatch("categories", drop_category, query=())],
        loading_message=f'Deleting category "{category.name}"...',
        success_message=f'Category "{category.name}" deleted',
        error_message="Failed to delete category",
        destructive=True,
        subject=category.name,
    )


def delete_logs_request(
    ids: list[int],
    *,
    event: EventRef | None = None,
    apps: Iterable[str] = (),
) -> MutationRequest:
    """Delete individual logs by id (no optimistic patch).

    With *event*, the logs belong to that event's *apps*; on success the
    selected event loses those apps, and is dropped once none remain.
    """
    return MutationRequest(
        command_name="delete_logs_by_ids",
        payload={"ids": list(ids)},
        cache_keys=LOG_DERIVED_KEYS,
        subject=event,
        subject_after=event.without_apps(apps) if event is not None else None,
        loading_message="Deleting log...",
        success_message="Log deleted",
        error_message="Failed to delete log",
    )
