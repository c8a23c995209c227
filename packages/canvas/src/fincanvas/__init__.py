"""fincanvas - staged AI artifact pipeline for financial analysis canvases."""

__version__ = "0.1.0"

from fincanvas.artifacts import (
    Artifact,
    ArtifactLookup,
    ArtifactStore,
    ArtifactType,
    Selection,
    Stage,
)
from fincanvas.assistant import AssistantReply, CanvasAssistant
from fincanvas.canvas import CanvasTabs, RendererRegistry, RendererRouter
from fincanvas.clients import ClaudeClient
from fincanvas.config import configure_logging, get_settings
from fincanvas.conversation import ConversationLog, MutableConversationState
from fincanvas.events import EventPublisher
from fincanvas.session import CanvasSession
from fincanvas.tools import MetricsAPIClient, ToolExecutor

__all__ = [
    # Version
    "__version__",
    # Artifacts
    "Artifact",
    "ArtifactLookup",
    "ArtifactStore",
    "ArtifactType",
    "Selection",
    "Stage",
    # Conversation
    "ConversationLog",
    "MutableConversationState",
    # Canvas
    "CanvasTabs",
    "RendererRegistry",
    "RendererRouter",
    # Session & Assistant
    "CanvasSession",
    "CanvasAssistant",
    "AssistantReply",
    # Clients & Tools
    "ClaudeClient",
    "MetricsAPIClient",
    "ToolExecutor",
    "EventPublisher",
    # Config
    "get_settings",
    "configure_logging",
]
