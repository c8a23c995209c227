"""Event type definitions for WebSocket publishing.

These events are published to connected frontend clients so they can mirror
the artifact store and show tool progress as it happens.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from fincanvas.artifacts.store import Artifact, ArtifactChange, ChangeKind


class EventType(str, Enum):
    """Types of events published by a canvas session."""

    # Artifact lifecycle
    ARTIFACT_CREATED = "artifact.created"
    ARTIFACT_UPDATED = "artifact.updated"
    ARTIFACT_STALLED = "artifact.stalled"
    ARTIFACT_DISMISSED = "artifact.dismissed"

    # Tool execution
    TOOL_CALLED = "tool.called"
    TOOL_COMPLETED = "tool.completed"
    TOOL_FAILED = "tool.failed"

    # Conversation
    TURN_COMPLETED = "turn.completed"

    # Rendering
    RENDER_FAILED = "render.failed"

    # Errors
    ERROR = "error"


@dataclass
class PipelineEvent:
    """Base event structure for all pipeline events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: UUID = field(default_factory=uuid4)
    session_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "data": self.data,
        }


@dataclass
class ArtifactEvent(PipelineEvent):
    """Event carrying an artifact's current state."""

    artifact_type: str = ""
    artifact: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["artifact_type"] = self.artifact_type
        base["artifact"] = self.artifact
        return base


@dataclass
class ToolEvent(PipelineEvent):
    """Event for tool execution."""

    tool_call_id: str = ""
    tool_name: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["tool"] = {
            "call_id": self.tool_call_id,
            "name": self.tool_name,
            "args": self.tool_args,
            "result": self.result,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }
        return base


_CHANGE_EVENTS = {
    ChangeKind.CREATED: EventType.ARTIFACT_CREATED,
    ChangeKind.UPDATED: EventType.ARTIFACT_UPDATED,
    ChangeKind.STALLED: EventType.ARTIFACT_STALLED,
    ChangeKind.DISMISSED: EventType.ARTIFACT_DISMISSED,
}


def artifact_event(
    event_type: EventType,
    artifact_type: str,
    artifact: Artifact | None = None,
    session_id: str | None = None,
) -> ArtifactEvent:
    """Create an artifact lifecycle event."""
    return ArtifactEvent(
        event_type=event_type,
        session_id=session_id,
        artifact_type=artifact_type,
        artifact=artifact.to_dict() if artifact else None,
    )


def artifact_changed(
    change: ArtifactChange, session_id: str | None = None
) -> ArtifactEvent | None:
    """Translate a store change into an event. Store clears are not published."""
    event_type = _CHANGE_EVENTS.get(change.kind)
    if event_type is None:
        return None
    return artifact_event(event_type, change.artifact_type, change.artifact, session_id)


def tool_called(
    tool_call_id: str,
    tool_name: str,
    tool_args: dict[str, Any],
    session_id: str | None = None,
) -> ToolEvent:
    """Create a tool called event."""
    return ToolEvent(
        event_type=EventType.TOOL_CALLED,
        session_id=session_id,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        tool_args=tool_args,
    )


def tool_completed(
    tool_call_id: str,
    tool_name: str,
    result: Any,
    duration_ms: float,
    session_id: str | None = None,
) -> ToolEvent:
    """Create a tool completed event."""
    return ToolEvent(
        event_type=EventType.TOOL_COMPLETED,
        session_id=session_id,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        result=str(result)[:500] if result else None,
        duration_ms=duration_ms,
    )


def tool_failed(
    tool_call_id: str,
    tool_name: str,
    error: str,
    duration_ms: float,
    session_id: str | None = None,
) -> ToolEvent:
    """Create a tool failed event."""
    return ToolEvent(
        event_type=EventType.TOOL_FAILED,
        session_id=session_id,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        error=error,
        duration_ms=duration_ms,
    )


def turn_completed(
    turn_id: str, revision: int, session_id: str | None = None
) -> PipelineEvent:
    """Create a turn completed event."""
    return PipelineEvent(
        event_type=EventType.TURN_COMPLETED,
        session_id=session_id,
        data={"turn_id": turn_id, "revision": revision},
    )


def render_failed(
    artifact_type: str, error: str, session_id: str | None = None
) -> ArtifactEvent:
    """Create a render failure event."""
    return ArtifactEvent(
        event_type=EventType.RENDER_FAILED,
        session_id=session_id,
        artifact_type=artifact_type,
        data={"error": error},
    )


def error_event(
    message: str, details: dict[str, Any] | None = None, session_id: str | None = None
) -> PipelineEvent:
    """Create an error event."""
    return PipelineEvent(
        event_type=EventType.ERROR,
        session_id=session_id,
        data={"message": message, "details": details or {}},
    )
