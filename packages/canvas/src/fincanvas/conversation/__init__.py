"""Conversation log and the write contract used by tool executors."""

from fincanvas.conversation.messages import (
    ContentPart,
    ConversationMessage,
    Role,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    assistant_message,
    new_tool_call_id,
    tool_call_message,
    tool_result_message,
    user_message,
)
from fincanvas.conversation.state import (
    ConversationLog,
    ConversationSnapshot,
    ConversationStateError,
    MutableConversationState,
    OrphanedToolResultError,
    StaleSnapshotError,
    ToolCallStatus,
    TurnClosedError,
    TurnCompleted,
    swap,
    swap_async,
)

__all__ = [
    # Messages
    "Role",
    "ContentPart",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "ConversationMessage",
    "new_tool_call_id",
    "user_message",
    "assistant_message",
    "tool_call_message",
    "tool_result_message",
    # State
    "ConversationLog",
    "ConversationSnapshot",
    "MutableConversationState",
    "TurnCompleted",
    "ToolCallStatus",
    "swap",
    "swap_async",
    # Errors
    "ConversationStateError",
    "TurnClosedError",
    "StaleSnapshotError",
    "OrphanedToolResultError",
]
