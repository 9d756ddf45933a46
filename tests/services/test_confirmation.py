"""Tests for the preview-then-confirm gate."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import pytest

from timelens.domain.models import AppDuration, EventRef
from timelens.domain.types import ErrorKind, ToastKind
from timelens.plugins.hookspecs import hookimpl
from timelens.services.base import ServiceContext
from timelens.services.confirmation import ConfirmationGate
from timelens.services.mutations import MutationPipeline
from timelens.services.operations import delete_time_block, skip_app_pattern


@pytest.fixture
def gate(ctx: ServiceContext) -> ConfirmationGate:
    return ConfirmationGate(ctx, MutationPipeline(ctx), skip_app_pattern())


@pytest.fixture
def block_gate(ctx: ServiceContext) -> ConfirmationGate:
    return ConfirmationGate(ctx, MutationPipeline(ctx), delete_time_block())


EVENT = EventRef(
    title="Gaming",
    start=datetime(2024, 5, 15, 20),
    end=datetime(2024, 5, 15, 22),
    apps=(AppDuration(app="Steam", total_duration=7200),),
)


class TestPreview:
    def test_stores_pending_confirmation(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 5)
        gate.edit_filter("^Chrome$")

        result = asyncio.run(gate.preview())

        assert result.ok
        assert result.data == 5
        assert gate.pending is not None
        assert gate.pending.filter_spec == "^Chrome$"
        assert gate.pending.preview_count == 5
        assert gate.can_confirm
        assert transport.calls == [("count_matching_logs", {"regex": "^Chrome$"})]

    def test_preview_has_no_side_effects(self, gate: ConfirmationGate, ctx, transport) -> None:
        ctx.cache.set("skipped_apps", (), [{"id": 1, "regex": "^Slack$"}])
        before = ctx.cache.entries("skipped_apps")
        transport.reply("count_matching_logs", 3)

        asyncio.run(gate.preview("^Chrome$"))

        assert ctx.cache.entries("skipped_apps") == before
        assert not ctx.cache.is_stale("skipped_apps")
        assert len(ctx.toasts) == 0

    def test_repeated_preview_is_idempotent(self, gate: ConfirmationGate, ctx, transport) -> None:
        ctx.cache.set("skipped_apps", (), [{"id": 1, "regex": "^Slack$"}])
        before = ctx.cache.entries("skipped_apps")
        transport.reply("count_matching_logs", 4)

        first = asyncio.run(gate.preview("^Chrome$"))
        first_pending = gate.pending
        second = asyncio.run(gate.preview("^Chrome$"))

        assert first.data == second.data == 4
        assert first_pending is not None
        assert gate.pending is not None
        assert gate.pending.preview_count == first_pending.preview_count
        assert gate.pending.filter_spec == first_pending.filter_spec
        assert ctx.cache.entries("skipped_apps") == before
        assert not ctx.cache.is_stale("skipped_apps")
        assert len(ctx.toasts) == 0
        assert [name for name, _ in transport.calls] == ["count_matching_logs"] * 2

    def test_zero_matches_still_confirmable(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 0)
        asyncio.run(gate.preview("^Nothing$"))
        assert gate.pending is not None
        assert gate.pending.preview_count == 0

    @pytest.mark.parametrize(
        ("pattern", "message"),
        [("", "Pattern cannot be empty"), ("(unclosed", "Invalid regex: ")],
    )
    def test_invalid_input_is_inline_only(
        self, gate: ConfirmationGate, ctx, transport, pattern: str, message: str
    ) -> None:
        result = asyncio.run(gate.preview(pattern))

        assert result.error is not None
        assert result.error.kind is ErrorKind.INVALID_INPUT
        assert gate.inline_error is not None
        assert gate.inline_error.startswith(message)
        assert gate.pending is None
        assert transport.calls == []
        assert len(ctx.toasts) == 0

    def test_inline_error_cleared_by_edit(self, gate: ConfirmationGate) -> None:
        asyncio.run(gate.preview(""))
        gate.edit_filter("^C")
        assert gate.inline_error is None

    def test_count_failure_toasts(self, gate: ConfirmationGate, ctx, transport) -> None:
        transport.reply("count_matching_logs", {"type": "Regex", "data": "unsupported look-around"})

        result = asyncio.run(gate.preview("(?=x)"))

        assert not result.ok
        assert gate.pending is None
        (toast,) = ctx.toasts.entries
        assert toast.kind is ToastKind.ERROR
        assert toast.message == "Failed to count matching logs: unsupported look-around"
        assert toast.error_detail is not None

    @pytest.mark.parametrize("reply", ["five", True, [5], 2.5])
    def test_non_integer_count_is_transport_failure(
        self, gate: ConfirmationGate, transport, reply: Any
    ) -> None:
        transport.reply("count_matching_logs", reply)
        result = asyncio.run(gate.preview("^Chrome$"))
        assert result.error is not None
        assert result.error.kind is ErrorKind.TRANSPORT_FAILURE
        assert gate.pending is None

    def test_edit_during_count_discards_preview(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 5)

        async def scenario() -> Any:
            hold = transport.hold("count_matching_logs")
            gate.edit_filter("^Chrome$")
            task = asyncio.create_task(gate.preview())
            await asyncio.sleep(0)
            gate.edit_filter("^Chromium$")
            hold.set()
            return await task

        result = asyncio.run(scenario())
        assert result.ok
        assert result.meta == {"stale": True}
        assert result.warnings == ["Filter changed while counting; preview discarded"]
        assert gate.pending is None
        assert gate.filter_input == "^Chromium$"

    def test_post_preview_hook(self, gate: ConfirmationGate, hooks, transport) -> None:
        seen: list[tuple[str, Any, int]] = []

        class Listener:
            @hookimpl
            def post_preview(self, operation: str, filter_spec: Any, preview_count: int) -> None:
                seen.append((operation, filter_spec, preview_count))

        hooks.register_plugin(Listener(), name="listener")
        transport.reply("count_matching_logs", 2)
        asyncio.run(gate.preview("^Chrome$"))
        assert seen == [("skip_app_pattern", "^Chrome$", 2)]


class TestConfirm:
    def test_edit_then_confirm_is_noop(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 5)
        gate.edit_filter("^Chrome$")
        asyncio.run(gate.preview())

        gate.edit_filter("^Chrome")

        assert gate.pending is None
        assert asyncio.run(gate.confirm()) is None
        assert transport.commands() == ["count_matching_logs"]

    def test_confirm_without_preview(self, gate: ConfirmationGate, transport) -> None:
        assert asyncio.run(gate.confirm()) is None
        assert transport.calls == []

    def test_commits_previewed_filter(self, gate: ConfirmationGate, ctx, transport) -> None:
        ctx.cache.set("skipped_apps", (), [{"id": 1, "regex": "^Slack$"}])
        transport.reply("count_matching_logs", 5)
        transport.reply("insert_skipped_app_and_delete_logs", None)

        async def scenario() -> Any:
            await gate.preview("^Chrome$")
            return await gate.confirm()

        result = asyncio.run(scenario())

        assert result is not None
        assert result.ok
        assert gate.pending is None
        assert transport.calls[-1] == (
            "insert_skipped_app_and_delete_logs",
            {"newApp": {"regex": "^Chrome$"}},
        )
        assert ctx.cache.is_stale("skipped_apps")
        assert ctx.toasts.entries[-1].message == 'Pattern "^Chrome$" added successfully'

    def test_failed_commit_keeps_pending(self, gate: ConfirmationGate, ctx, transport) -> None:
        ctx.cache.set("skipped_apps", (), [{"id": 1, "regex": "^Slack$"}])
        transport.reply("count_matching_logs", 5)
        transport.reply("insert_skipped_app_and_delete_logs", {"type": "Db", "data": "locked"})

        async def scenario() -> Any:
            await gate.preview("^Chrome$")
            return await gate.confirm()

        result = asyncio.run(scenario())

        assert result is not None
        assert not result.ok
        assert gate.pending is not None
        assert ctx.cache.get("skipped_apps") == [{"id": 1, "regex": "^Slack$"}]
        assert ctx.toasts.entries[-1].message == "Failed to add pattern: locked"

    def test_double_confirm_commits_once(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 1)
        transport.reply("insert_skipped_app_and_delete_logs", None)

        async def scenario() -> list[Any]:
            await gate.preview("^Chrome$")
            hold = transport.hold("insert_skipped_app_and_delete_logs")
            first = asyncio.create_task(gate.confirm())
            await asyncio.sleep(0)
            assert not gate.can_confirm
            second = await gate.confirm()
            hold.set()
            return [await first, second]

        first, second = asyncio.run(scenario())
        assert first is not None and first.ok
        assert second is None
        assert transport.commands().count("insert_skipped_app_and_delete_logs") == 1

    def test_cancel(self, gate: ConfirmationGate, transport) -> None:
        transport.reply("count_matching_logs", 1)
        asyncio.run(gate.preview("^Chrome$"))
        gate.cancel()
        assert gate.pending is None
        assert asyncio.run(gate.confirm()) is None


class TestTimeBlockDeletion:
    def test_preview_payload(self, block_gate: ConfirmationGate, transport) -> None:
        from timelens.domain.dates import to_unix

        transport.reply("count_logs_for_time_block", 42)
        asyncio.run(block_gate.preview(EVENT))

        assert transport.calls == [
            (
                "count_logs_for_time_block",
                {
                    "app_names": ["Steam"],
                    "start_time": to_unix(EVENT.start),
                    "end_time": to_unix(EVENT.end),
                },
            )
        ]
        assert block_gate.pending is not None
        assert block_gate.pending.preview_count == 42

    def test_no_event_is_invalid(self, block_gate: ConfirmationGate, transport) -> None:
        result = asyncio.run(block_gate.preview(None))
        assert result.error is not None
        assert result.error.kind is ErrorKind.INVALID_INPUT
        assert block_gate.inline_error == "No event selected"
        assert transport.calls == []

    def test_commit_drops_block_optimistically(
        self, block_gate: ConfirmationGate, ctx, transport
    ) -> None:
        from timelens.domain.dates import to_unix

        block = {
            "id": 4,
            "category": "Gaming",
            "start_time": to_unix(EVENT.start),
            "end_time": to_unix(EVENT.end),
            "apps": [{"app": "Steam", "total_duration": 7200}],
        }
        other = {**block, "id": 5, "category": "Coding", "apps": [{"app": "Code"}]}
        ctx.cache.set("week", ("2024-05-13",), [block, other])
        transport.reply("count_logs_for_time_block", 12)
        transport.reply("delete_logs_for_time_block", None)

        async def scenario() -> Any:
            await block_gate.preview(EVENT)
            hold = transport.hold("delete_logs_for_time_block")
            task = asyncio.create_task(block_gate.confirm())
            await asyncio.sleep(0)
            assert ctx.cache.get("week", ("2024-05-13",)) == [other]
            hold.set()
            return await task

        result = asyncio.run(scenario())
        assert result is not None
        assert result.ok
        assert ctx.cache.is_stale("week", ("2024-05-13",))
