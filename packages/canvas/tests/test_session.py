"""Tests for the canvas session wiring."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from fincanvas.artifacts.selection import Selection
from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.types import ArtifactType
from fincanvas.canvas.renderers import CanvasView, EmptyCanvas
from fincanvas.conversation.state import ToolCallStatus
from fincanvas.events.types import EventType
from fincanvas.session import CanvasSession


class TestLifecycle:
    """Tests for opening and closing sessions."""

    def test_open_is_idempotent(self, session):
        """Test opening twice subscribes once."""
        assert session.is_open
        session.open()
        assert len(session._unsubscribers) == 2

    @pytest.mark.asyncio
    async def test_close_tears_down(self, session):
        """Test closing clears the store and stops forwarding."""
        publisher = MagicMock()
        session._publisher = publisher
        session.store.create_or_update(ArtifactType.RUNWAY, 0)

        await session.close()

        assert not session.is_open
        assert session.store.all_artifacts() == []
        publisher.reset_mock()
        session.store.create_or_update(ArtifactType.RUNWAY, 0)
        publisher.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, provider):
        """Test the session opens and closes as a context manager."""
        async with CanvasSession(provider, team_id="team_1") as session:
            assert session.is_open
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_registers_with_publisher(self, provider):
        """Test the publisher can snapshot the session while it is open."""
        publisher = MagicMock()
        session = CanvasSession(provider, team_id="team_1", publisher=publisher).open()

        session_id, snapshot = publisher.register_session.call_args.args
        assert session_id == session.session_id
        assert snapshot()["session_id"] == session.session_id

        await session.close()
        publisher.unregister_session.assert_called_once_with(session.session_id)


class TestTools:
    """Tests for running tools through the session."""

    @pytest.mark.asyncio
    async def test_run_tool_and_render(self, session):
        """Test a canvas tool produces a fully rendered artifact."""
        result = await session.run_tool("get_burn_rate", {"show_canvas": True})

        assert result["success"] is True
        view = session.render()
        assert isinstance(view, CanvasView)
        assert view.artifact_type == "burn-rate-canvas"
        assert view.region("summary").data == "burn-rate looks steady."

    @pytest.mark.asyncio
    async def test_tool_call_status(self, session):
        """Test completed calls report completed."""
        result = await session.run_tool("get_runway", {}, tool_call_id="call_1")
        assert result["tool_call_id"] == "call_1"
        assert session.tool_call_status("call_1") == ToolCallStatus.COMPLETED

    def test_stuck_tool_calls(self, session):
        """Test calls without a result become stuck after the timeout."""
        state = session.open_turn()
        state.record_tool_call("get_runway", tool_call_id="call_1")

        assert session.stuck_tool_calls() == []
        later = datetime.now(UTC) + timedelta(seconds=46)
        assert session.stuck_tool_calls(later) == ["call_1"]

    @pytest.mark.asyncio
    async def test_publishes_tool_and_artifact_events(self, provider):
        """Test the publisher sees tool, artifact and turn events."""
        publisher = MagicMock()
        async with CanvasSession(provider, team_id="team_1", publisher=publisher) as session:
            await session.run_tool("get_runway", {"show_canvas": True})

        types = [call.args[0].event_type for call in publisher.publish.call_args_list]
        assert types[0] == EventType.TOOL_CALLED
        assert EventType.ARTIFACT_CREATED in types
        assert types.count(EventType.ARTIFACT_UPDATED) == 3
        assert EventType.TOOL_COMPLETED in types
        assert EventType.TURN_COMPLETED in types


class TestCanvas:
    """Tests for selection, rendering and tabs."""

    def test_empty_session_renders_empty_canvas(self, session):
        """Test nothing to show is not an error."""
        assert isinstance(session.render(), EmptyCanvas)

    def test_render_selected_version(self, session):
        """Test the selection pointer picks the version."""
        session.store.create_or_update(ArtifactType.RUNWAY, 0, Stage.LOADING, {"description": "a"})
        session.store.create_or_update(ArtifactType.RUNWAY, 1, Stage.LOADING, {"description": "b"})

        view = session.render(Selection("runway-canvas", 0))
        assert view.description == "a"

    def test_render_error_published(self, session):
        """Test renderer failures reach the publisher."""
        publisher = MagicMock()
        session._publisher = publisher
        session._on_render_error("runway-canvas", RuntimeError("boom"))

        event = publisher.publish.call_args[0][0]
        assert event.event_type == EventType.RENDER_FAILED

    def test_tab_strip(self, session):
        """Test tabs reflect the store."""
        session.store.create_or_update(ArtifactType.RUNWAY, 0)
        assert [t.label for t in session.tab_strip()] == ["Runway"]


class TestTitle:
    """Tests for the chat title artifact."""

    def test_title_not_on_canvas(self, session):
        """Test the title is stored but never displayed."""
        assert session.title is None
        session.set_title("Cash position")

        assert session.title == "Cash position"
        assert session.store.available_types() == []
        assert session.snapshot()["title"] == "Cash position"


class TestStallDetection:
    """Tests for artifacts that stop before their final stage."""

    def test_finished_tool_with_incomplete_artifact_stalls(self, session):
        """Test an artifact left behind by a finished tool is flagged."""
        state = session.open_turn()
        call = state.record_tool_call("get_runway", tool_call_id="call_1")
        artifact = session.store.create_or_update(
            ArtifactType.RUNWAY, 0, Stage.CHART_READY, {"chart": {}}, tool_call_id="call_1"
        )
        state.record_tool_result(call, {"success": True})

        assert session.check_stalled() == []
        later = datetime.now(UTC) + timedelta(seconds=46)
        assert session.check_stalled(later) == [artifact.id]
        assert session.render().stalled

    def test_running_tool_not_stalled(self, session):
        """Test artifacts of tools still running are left alone."""
        state = session.open_turn()
        state.record_tool_call("get_runway", tool_call_id="call_1")
        session.store.create_or_update(ArtifactType.RUNWAY, 0, tool_call_id="call_1")

        later = datetime.now(UTC) + timedelta(days=1)
        assert session.check_stalled(later) == []

    def test_complete_artifact_not_stalled(self, session):
        """Test finished artifacts are never flagged."""
        session.store.create_or_update(ArtifactType.RUNWAY, 0, Stage.ANALYSIS_READY)
        later = datetime.now(UTC) + timedelta(days=1)
        assert session.check_stalled(later) == []

    @pytest.mark.asyncio
    async def test_turn_completion_schedules_check(self, provider):
        """Test finishing a turn arms the stall timer."""
        session = CanvasSession(provider, team_id="team_1", stall_timeout=0).open()
        state = session.open_turn()
        call = state.record_tool_call("get_runway", tool_call_id="call_1")
        session.store.create_or_update(ArtifactType.RUNWAY, 0, tool_call_id="call_1")
        state.record_tool_result(call, {"success": True})

        assert len(session._stall_handles) == 1
        await session.close()
        assert session._stall_handles == set()

    @pytest.mark.asyncio
    async def test_close_leaves_no_timers_from_cancelled_tools(self):
        """Test turns closed by cancellation on shutdown arm no stall timers."""
        gate = asyncio.Event()

        async def fetch(kind, params):
            await gate.wait()
            return {"summary": "done"}

        provider = AsyncMock()
        provider.fetch_metrics = AsyncMock(side_effect=fetch)
        session = CanvasSession(provider, team_id="team_1", stall_timeout=60).open()
        session.start_tool("get_runway", {"show_canvas": True}, tool_call_id="call_1")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await session.close()

        assert session._stall_handles == set()
        assert session.log.get().tool_results()["call_1"].is_error
