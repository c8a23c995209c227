"""Canvas session: owns every piece of per-conversation state.

A session wires the artifact store, the conversation log, the renderer
router and the tool executor together, forwards their changes to an event
publisher, and watches for artifacts that stop short of their final stage
after the tool producing them has finished.

Usage:
    async with CanvasSession(MetricsAPIClient(), team_id="team_1") as session:
        result = await session.run_tool("get_burn_rate", {"show_canvas": True})
        view = session.render(Selection.from_query(request.query_params))
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

import structlog

from fincanvas.artifacts.catalog import ArtifactCatalog, load_catalog
from fincanvas.artifacts.selection import Selection
from fincanvas.artifacts.stages import Stage
from fincanvas.artifacts.store import ArtifactChange, ArtifactLookup, ArtifactStore
from fincanvas.artifacts.types import ArtifactType
from fincanvas.canvas.renderers import RenderOutput
from fincanvas.canvas.router import RendererRegistry, RendererRouter, build_default_registry
from fincanvas.canvas.tabs import CanvasTabs, TabView
from fincanvas.config import bind_session_context, clear_session_context, get_settings
from fincanvas.conversation.messages import user_message
from fincanvas.conversation.state import (
    ConversationLog,
    ConversationSnapshot,
    MutableConversationState,
    ToolCallStatus,
    TurnCompleted,
    swap,
)
from fincanvas.events.publisher import EventPublisher
from fincanvas.events.types import (
    PipelineEvent,
    artifact_changed,
    render_failed,
    turn_completed,
)
from fincanvas.tools.analysis import AnalysisTools, ToolContext
from fincanvas.tools.executor import ToolExecutor
from fincanvas.tools.metrics_api import MetricsProvider

logger = structlog.get_logger(__name__)

CHAT_TITLE_VERSION = 0


class CanvasSession:
    """Explicitly owned state for one conversation and its canvas."""

    def __init__(
        self,
        provider: MetricsProvider,
        *,
        team_id: str | None = None,
        session_id: str | None = None,
        catalog: ArtifactCatalog | None = None,
        registry: RendererRegistry | None = None,
        publisher: EventPublisher | None = None,
        today: date | None = None,
        stall_timeout: float | None = None,
        tool_call_timeout: float | None = None,
        cas_max_attempts: int | None = None,
    ):
        settings = get_settings()
        self.session_id = session_id or uuid4().hex
        self.team_id = team_id
        self.catalog = catalog or load_catalog()

        self._stall_timeout = (
            settings.artifact_stall_timeout_seconds if stall_timeout is None else stall_timeout
        )
        self._tool_call_timeout = (
            settings.tool_call_timeout_seconds if tool_call_timeout is None else tool_call_timeout
        )
        self._cas_max_attempts = cas_max_attempts or settings.cas_max_attempts

        self.store = ArtifactStore(self.catalog)
        self.log = ConversationLog(metadata={"session_id": self.session_id, "team_id": team_id})
        self.router = RendererRouter(
            registry or build_default_registry(self.catalog), on_error=self._on_render_error
        )
        self.tabs = CanvasTabs(self.store)
        self.tools = AnalysisTools(self.store, provider, ToolContext.from_settings(team_id, today))
        self.executor = ToolExecutor(self.tools, event_sink=self._publish, session_id=self.session_id)

        self._publisher = publisher
        self._stall_handles: set[asyncio.TimerHandle] = set()
        self._unsubscribers: list[Callable[[], None]] = []
        self._is_open = False
        self._logger = logger.bind(component="canvas_session", session_id=self.session_id)

    @property
    def is_open(self) -> bool:
        return self._is_open

    # === Lifecycle ===

    def open(self) -> "CanvasSession":
        """Start forwarding store and conversation changes."""
        if self._is_open:
            return self
        self._unsubscribers = [
            self.store.subscribe(self._on_artifact_change),
            self.log.on_turn_completed(self._on_turn_completed),
        ]
        if self._publisher is not None:
            self._publisher.register_session(self.session_id, self.snapshot)
        bind_session_context(self.session_id, team_id=self.team_id)
        self._is_open = True
        self._logger.info("session_opened", team_id=self.team_id)
        return self

    async def close(self) -> None:
        """Cancel outstanding tools and tear down session state."""
        if not self._is_open:
            return
        # Cancelled tools still close their turns, which may arm stall timers
        await self.executor.cancel_all()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        for handle in list(self._stall_handles):
            handle.cancel()
        self._stall_handles.clear()
        if self._publisher is not None:
            self._publisher.unregister_session(self.session_id)
        self.store.clear()
        self._is_open = False
        self._logger.info("session_closed")
        clear_session_context()

    async def __aenter__(self) -> "CanvasSession":
        return self.open()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Conversation ===

    def open_turn(self, turn_id: str | None = None) -> MutableConversationState:
        """A fresh write handle over the session's conversation log."""
        return self.log.open_turn(turn_id, max_attempts=self._cas_max_attempts)

    def add_user_message(self, text: str) -> ConversationSnapshot:
        message = user_message(text)
        return swap(self.log, lambda snapshot: snapshot.append(message), self._cas_max_attempts)

    def tool_call_status(self, tool_call_id: str, now: datetime | None = None) -> ToolCallStatus:
        return self.log.get().tool_call_status(tool_call_id, self._tool_call_timeout, now)

    def stuck_tool_calls(self, now: datetime | None = None) -> list[str]:
        """Ids of tool calls that never received a result within the timeout."""
        snapshot = self.log.get()
        return [
            call.tool_call_id
            for call in snapshot.dangling_tool_calls()
            if snapshot.tool_call_status(call.tool_call_id, self._tool_call_timeout, now)
            == ToolCallStatus.STUCK
        ]

    # === Tools ===

    def start_tool(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        tool_call_id: str | None = None,
    ) -> asyncio.Task[dict[str, Any]]:
        """Run a tool in the background with its own conversation handle."""
        return self.executor.start(tool_name, arguments, self.open_turn(), tool_call_id)

    async def run_tool(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Run a tool and wait for its result."""
        return await self.executor.run(tool_name, arguments, self.open_turn(), tool_call_id)

    # === Canvas ===

    def active(self, selection: Selection | None = None) -> ArtifactLookup:
        return self.store.get_active(selection)

    def render(self, selection: Selection | None = None) -> RenderOutput:
        """Render whatever the selection resolves to."""
        return self.router.render(self.store.get_active(selection))

    def tab_strip(self, selection: Selection | None = None) -> list[TabView]:
        return self.tabs.tabs(selection or Selection())

    # === Chat title ===

    @property
    def title(self) -> str | None:
        artifact = self.store.peek(ArtifactType.CHAT_TITLE, CHAT_TITLE_VERSION)
        if artifact is None:
            return None
        title = artifact.payload.get("title")
        return title if isinstance(title, str) else None

    def set_title(self, title: str) -> None:
        """Store the chat title as a synthetic artifact kept off the canvas."""
        self.store.create_or_update(
            ArtifactType.CHAT_TITLE,
            CHAT_TITLE_VERSION,
            Stage.ANALYSIS_READY,
            {"title": title},
        )

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the whole session."""
        return {
            "session_id": self.session_id,
            "title": self.title,
            "artifacts": self.store.snapshot(),
            "conversation": self.log.get().to_dict(),
        }

    # === Listeners ===

    def _publish(self, event: PipelineEvent) -> None:
        if self._publisher is not None:
            self._publisher.publish(event)

    def _on_artifact_change(self, change: ArtifactChange) -> None:
        event = artifact_changed(change, self.session_id)
        if event is not None:
            self._publish(event)

    def _on_render_error(self, artifact_type: str, error: Exception) -> None:
        self._publish(render_failed(artifact_type, str(error), self.session_id))

    def _on_turn_completed(self, event: TurnCompleted) -> None:
        self._publish(turn_completed(event.turn_id, event.snapshot.revision, self.session_id))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("stall_watch_skipped", turn_id=event.turn_id)
            return

        handle: asyncio.TimerHandle | None = None

        def check() -> None:
            if handle is not None:
                self._stall_handles.discard(handle)
            self.check_stalled()

        handle = loop.call_later(self._stall_timeout, check)
        self._stall_handles.add(handle)

    def check_stalled(self, now: datetime | None = None) -> list[str]:
        """Flag non-terminal artifacts whose producing tool already finished.

        An artifact is stalled when its tool has recorded a result and it has
        not been updated for the stall timeout.

        Returns:
            Ids of the artifacts that were flagged.
        """
        now = now or datetime.now(UTC)
        finished = self.log.get().tool_results()
        flagged = []
        for artifact in self.store.non_terminal_artifacts():
            if artifact.tool_call_id is not None and artifact.tool_call_id not in finished:
                continue
            if (now - artifact.updated_at).total_seconds() < self._stall_timeout:
                continue
            if self.store.mark_stalled(artifact.id) is not None:
                flagged.append(artifact.id)
        return flagged
