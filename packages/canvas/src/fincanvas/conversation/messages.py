"""Conversation message model.

Assistant and tool messages carry content parts. Tool calls and their
results are correlated by ``tool_call_id``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import uuid4


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def new_tool_call_id() -> str:
    """Generate a unique tool call identifier."""
    return f"call_{uuid4().hex}"


@dataclass(frozen=True)
class TextPart:
    text: str
    type: str = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    arguments: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    type: str = field(default="tool-call", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "arguments": dict(self.arguments),
        }


@dataclass(frozen=True)
class ToolResultPart:
    tool_call_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False
    type: str = field(default="tool-result", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "result": self.result,
            "is_error": self.is_error,
        }


ContentPart = TextPart | ToolCallPart | ToolResultPart


@dataclass(frozen=True)
class ConversationMessage:
    """A single entry in the append-only conversation log."""

    role: Role
    content: tuple[ContentPart, ...] = ()
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.content if isinstance(part, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [part for part in self.content if isinstance(part, ToolResultPart)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": [part.to_dict() for part in self.content],
            "created_at": self.created_at.isoformat(),
        }


def user_message(text: str) -> ConversationMessage:
    return ConversationMessage(role=Role.USER, content=(TextPart(text),))


def assistant_message(
    text: str = "", tool_calls: list[ToolCallPart] | None = None
) -> ConversationMessage:
    """Create an assistant message with optional text and tool calls."""
    parts: list[ContentPart] = []
    if text:
        parts.append(TextPart(text))
    parts.extend(tool_calls or [])
    return ConversationMessage(role=Role.ASSISTANT, content=tuple(parts))


def tool_call_message(
    tool_name: str,
    arguments: Mapping[str, Any] | None = None,
    tool_call_id: str | None = None,
) -> ConversationMessage:
    """Create an assistant message announcing a single tool call."""
    call = ToolCallPart(
        tool_call_id=tool_call_id or new_tool_call_id(),
        tool_name=tool_name,
        arguments=MappingProxyType(dict(arguments or {})),
    )
    return ConversationMessage(role=Role.ASSISTANT, content=(call,))


def tool_result_message(
    call: ToolCallPart, result: Any, is_error: bool = False
) -> ConversationMessage:
    """Create the tool message answering a tool call."""
    part = ToolResultPart(
        tool_call_id=call.tool_call_id,
        tool_name=call.tool_name,
        result=result,
        is_error=is_error,
    )
    return ConversationMessage(role=Role.TOOL, content=(part,))
