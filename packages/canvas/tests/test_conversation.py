"""Tests for the conversation log and its write handles."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from fincanvas.conversation.messages import (
    ConversationMessage,
    Role,
    ToolResultPart,
    assistant_message,
    tool_call_message,
    user_message,
)
from fincanvas.conversation.state import (
    ConversationSnapshot,
    ConversationStateError,
    OrphanedToolResultError,
    StaleSnapshotError,
    ToolCallStatus,
    TurnClosedError,
    swap,
    swap_async,
)


class TestMessages:
    """Tests for message construction."""

    def test_assistant_message_parts(self):
        """Test text and tool calls are combined."""
        call = tool_call_message("get_runway", {"currency": "USD"}).tool_calls[0]
        message = assistant_message("Checking.", [call])
        assert message.role == Role.ASSISTANT
        assert message.text == "Checking."
        assert message.tool_calls == [call]

    def test_tool_call_ids_are_unique(self):
        """Test generated call ids differ."""
        first = tool_call_message("get_runway").tool_calls[0]
        second = tool_call_message("get_runway").tool_calls[0]
        assert first.tool_call_id != second.tool_call_id

    def test_to_dict(self):
        """Test message serialization."""
        data = user_message("hello").to_dict()
        assert data["role"] == "user"
        assert data["content"] == [{"type": "text", "text": "hello"}]


class TestCompareAndSet:
    """Tests for the compare-and-swap commit discipline."""

    def test_commit_bumps_revision(self, conversation_log):
        """Test a successful commit advances the revision."""
        snapshot = conversation_log.get()
        assert conversation_log.compare_and_set(0, snapshot.append(user_message("hi")))
        assert conversation_log.revision == 1
        assert len(conversation_log.get().messages) == 1

    def test_stale_revision_rejected(self, conversation_log):
        """Test a commit against an old revision fails."""
        snapshot = conversation_log.get()
        conversation_log.compare_and_set(0, snapshot.append(user_message("a")))
        assert not conversation_log.compare_and_set(0, snapshot.append(user_message("b")))
        assert [m.text for m in conversation_log.get().messages] == ["a"]

    def test_history_cannot_be_rewritten(self, conversation_log):
        """Test committed messages cannot be dropped."""
        conversation_log.compare_and_set(0, conversation_log.get().append(user_message("a")))
        with pytest.raises(ConversationStateError):
            conversation_log.compare_and_set(1, ConversationSnapshot(revision=1))

    def test_orphaned_result_rejected(self, conversation_log):
        """Test a result must follow its call."""
        orphan = ConversationMessage(
            role=Role.TOOL,
            content=(ToolResultPart(tool_call_id="call_x", tool_name="get_runway"),),
        )
        with pytest.raises(OrphanedToolResultError) as exc_info:
            conversation_log.compare_and_set(0, conversation_log.get().append(orphan))
        assert exc_info.value.tool_call_ids == ["call_x"]
        assert conversation_log.revision == 0

    def test_swap_retries_after_conflict(self, conversation_log):
        """Test swap recomputes against a newer snapshot."""
        interfered = False

        def add(snapshot):
            nonlocal interfered
            if not interfered:
                interfered = True
                conversation_log.compare_and_set(
                    snapshot.revision, snapshot.append(user_message("other"))
                )
            return snapshot.append(user_message("mine"))

        result = swap(conversation_log, add)
        assert [m.text for m in result.messages] == ["other", "mine"]

    def test_swap_gives_up(self, conversation_log):
        """Test swap raises after exhausting its attempts."""

        def always_conflict(snapshot):
            conversation_log.compare_and_set(
                snapshot.revision, snapshot.append(user_message("x"))
            )
            return snapshot.append(user_message("mine"))

        with pytest.raises(StaleSnapshotError):
            swap(conversation_log, always_conflict, max_attempts=2)

    @pytest.mark.asyncio
    async def test_swap_async_sees_concurrent_commit(self, conversation_log):
        """Test an awaiting transformation is re-run when another writer commits."""
        calls = 0

        async def slow(snapshot):
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            return snapshot.append(user_message("slow"))

        async def fast():
            swap(conversation_log, lambda s: s.append(user_message("fast")))

        result, _ = await asyncio.gather(swap_async(conversation_log, slow), fast())
        assert [m.text for m in result.messages] == ["fast", "slow"]
        assert calls == 2


class TestMutableConversationState:
    """Tests for per-invocation write handles."""

    def test_concurrent_handles_keep_both_messages(self, conversation_log):
        """Test two handles finishing together do not lose updates."""
        first = conversation_log.open_turn()
        second = conversation_log.open_turn()
        call_a = first.record_tool_call("get_runway", tool_call_id="call_a")
        call_b = second.record_tool_call("get_spending", tool_call_id="call_b")

        second.record_tool_result(call_b, {"success": True})
        first.record_tool_result(call_a, {"success": True})

        snapshot = conversation_log.get()
        assert set(snapshot.tool_results()) == {"call_a", "call_b"}
        assert snapshot.dangling_tool_calls() == []
        assert snapshot.orphaned_tool_results() == []

    def test_precomputed_stale_snapshot_rejected(self, conversation_log):
        """Test a snapshot derived before another commit is rejected."""
        handle = conversation_log.open_turn()
        stale = handle.get().append(user_message("late"))
        swap(conversation_log, lambda s: s.append(user_message("first")))

        with pytest.raises(StaleSnapshotError):
            handle.update(stale)

    def test_precomputed_current_snapshot_commits(self, conversation_log):
        """Test a snapshot derived from the latest revision commits."""
        handle = conversation_log.open_turn()
        snapshot = handle.update(handle.get().append(user_message("hi")))
        assert snapshot.revision == 1

    def test_write_after_done_raises(self, conversation_log):
        """Test a finished handle rejects further writes."""
        handle = conversation_log.open_turn(turn_id="turn_1")
        handle.done(lambda s: s.append(user_message("hi")))

        assert handle.closed
        with pytest.raises(TurnClosedError) as exc_info:
            handle.update(lambda s: s)
        assert exc_info.value.turn_id == "turn_1"
        with pytest.raises(TurnClosedError):
            handle.done(lambda s: s)

    def test_done_notifies_listeners(self, conversation_log):
        """Test turn completion is reported once per handle."""
        events = []

        def broken(event):
            raise RuntimeError("boom")

        conversation_log.on_turn_completed(events.append)
        conversation_log.on_turn_completed(broken)

        handle = conversation_log.open_turn(turn_id="turn_1")
        handle.update(lambda s: s.append(user_message("hi")))
        assert events == []
        handle.done(lambda s: s)

        assert [e.turn_id for e in events] == ["turn_1"]

    def test_record_tool_call_uses_given_id(self, conversation_log):
        """Test the executor-supplied id is kept."""
        handle = conversation_log.open_turn()
        call = handle.record_tool_call("get_runway", {"currency": "EUR"}, "call_1")
        assert call.tool_call_id == "call_1"
        assert dict(call.arguments) == {"currency": "EUR"}
        assert not handle.closed


class TestToolCallStatus:
    """Tests for pending, completed, failed and stuck tool calls."""

    def test_pending_then_stuck(self, conversation_log):
        """Test a call without a result becomes stuck after the timeout."""
        handle = conversation_log.open_turn()
        handle.record_tool_call("get_runway", tool_call_id="call_1")
        snapshot = conversation_log.get()
        started = snapshot.tool_call_started_at("call_1")

        assert snapshot.tool_call_status("call_1", 45, started) == ToolCallStatus.PENDING
        later = started + timedelta(seconds=45)
        assert snapshot.tool_call_status("call_1", 45, later) == ToolCallStatus.STUCK

    def test_completed_and_failed(self, conversation_log):
        """Test results decide the status whatever the elapsed time."""
        ok = conversation_log.open_turn()
        bad = conversation_log.open_turn()
        ok.record_tool_result(ok.record_tool_call("a", tool_call_id="ok"), {"success": True})
        bad.record_tool_result(
            bad.record_tool_call("b", tool_call_id="bad"), {"success": False}, is_error=True
        )

        snapshot = conversation_log.get()
        far_future = datetime.now(UTC) + timedelta(days=1)
        assert snapshot.tool_call_status("ok", 45, far_future) == ToolCallStatus.COMPLETED
        assert snapshot.tool_call_status("bad", 45, far_future) == ToolCallStatus.FAILED

    def test_unknown_call(self, conversation_log):
        """Test unknown ids raise KeyError."""
        with pytest.raises(KeyError):
            conversation_log.get().tool_call_status("missing", 45)
