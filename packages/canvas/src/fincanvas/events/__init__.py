"""Pipeline events and their WebSocket publisher."""

from fincanvas.events.publisher import ClientConnection, EventPublisher
from fincanvas.events.types import (
    ArtifactEvent,
    EventType,
    PipelineEvent,
    ToolEvent,
    artifact_changed,
    artifact_event,
    error_event,
    render_failed,
    tool_called,
    tool_completed,
    tool_failed,
    turn_completed,
)

__all__ = [
    "EventType",
    "PipelineEvent",
    "ArtifactEvent",
    "ToolEvent",
    "artifact_changed",
    "artifact_event",
    "tool_called",
    "tool_completed",
    "tool_failed",
    "turn_completed",
    "render_failed",
    "error_event",
    "EventPublisher",
    "ClientConnection",
]
