"""Claude (Anthropic) LLM client with function calling support."""

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import anthropic
import structlog

from fincanvas.config import get_settings
from fincanvas.conversation.messages import (
    ConversationMessage,
    Role,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

logger = structlog.get_logger(__name__)

INCOMPLETE_TOOL_RESULT = "Tool call did not complete."


@dataclass
class ClaudeResponse:
    """Response from Claude API."""

    content: str
    tool_calls: list[dict[str, Any]]
    stop_reason: str
    usage: dict[str, int]


@dataclass
class _Exchange:
    """One assistant message and the tool results answering it."""

    parts: list[TextPart | ToolCallPart] = field(default_factory=list)
    results: dict[str, ToolResultPart] = field(default_factory=dict)

    @property
    def call_ids(self) -> list[str]:
        return [p.tool_call_id for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def settled(self) -> bool:
        ids = self.call_ids
        return bool(ids) and all(i in self.results for i in ids)


def _tool_result_block(
    tool_call_id: str, result: ToolResultPart | None
) -> dict[str, Any]:
    if result is None:
        return {
            "type": "tool_result",
            "tool_use_id": tool_call_id,
            "content": INCOMPLETE_TOOL_RESULT,
            "is_error": True,
        }
    return {
        "type": "tool_result",
        "tool_use_id": tool_call_id,
        "content": json.dumps(result.result, default=str),
        "is_error": result.is_error,
    }


def convert_messages(messages: Sequence[ConversationMessage]) -> list[dict[str, Any]]:
    """Convert the conversation log to Anthropic's message format.

    Tool calls and results are committed independently by concurrent tools,
    so the log may interleave them. Each tool-use block is regrouped with
    its result so the result lands in the user message right after it. Calls
    that never finished get an error result.
    """
    anthropic_messages: list[dict[str, Any]] = []
    exchanges: list[_Exchange] = []

    def flush() -> None:
        for exchange in exchanges:
            content = []
            for part in exchange.parts:
                if isinstance(part, TextPart):
                    if part.text:
                        content.append({"type": "text", "text": part.text})
                else:
                    content.append({
                        "type": "tool_use",
                        "id": part.tool_call_id,
                        "name": part.tool_name,
                        "input": dict(part.arguments),
                    })
            if not content:
                continue
            anthropic_messages.append({"role": "assistant", "content": content})
            if exchange.call_ids:
                anthropic_messages.append({
                    "role": "user",
                    "content": [
                        _tool_result_block(i, exchange.results.get(i))
                        for i in exchange.call_ids
                    ],
                })
        exchanges.clear()

    for msg in messages:
        if msg.role == Role.USER:
            flush()
            anthropic_messages.append({"role": "user", "content": msg.text})
        elif msg.role == Role.ASSISTANT:
            if not exchanges or exchanges[-1].settled:
                exchanges.append(_Exchange())
            exchanges[-1].parts.extend(
                p for p in msg.content if isinstance(p, TextPart | ToolCallPart)
            )
        elif msg.role == Role.TOOL:
            for result in msg.tool_results:
                for exchange in reversed(exchanges):
                    if result.tool_call_id in exchange.call_ids:
                        exchange.results[result.tool_call_id] = result
                        break
    flush()
    return anthropic_messages


class ClaudeClient:
    """Client for Anthropic's Claude API with tool use support."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.anthropic_api_key.get_secret_value()
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = client or anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _convert_tools_to_anthropic_format(
        self, tools: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Keep only the keys Anthropic accepts for a tool definition."""
        return [
            {
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["input_schema"],
            }
            for tool in tools
        ]

    def _parse_response(self, response: anthropic.types.Message) -> ClaudeResponse:
        """Parse Anthropic response into our format."""
        content = ""
        tool_calls = []

        for block in response.content:
            if block.type == "text":
                content = block.text
            elif block.type == "tool_use":
                tool_calls.append({
                    "id": block.id,
                    "name": block.name,
                    "arguments": block.input,
                })

        return ClaudeResponse(
            content=content,
            tool_calls=tool_calls,
            stop_reason=response.stop_reason or "end_turn",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> ClaudeResponse:
        """Generate a response from Claude.

        Args:
            system_prompt: The system prompt defining assistant behavior.
            messages: Conversation log messages.
            tools: Optional list of tool definitions for function calling.

        Returns:
            ClaudeResponse with content, tool calls, and usage info.
        """
        self._logger.debug(
            "generating_response",
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system_prompt,
            "messages": convert_messages(messages),
        }

        # Tool use works better with the default temperature
        if not tools:
            kwargs["temperature"] = self._temperature

        if tools:
            kwargs["tools"] = self._convert_tools_to_anthropic_format(tools)

        try:
            response = await self._client.messages.create(**kwargs)

            parsed = self._parse_response(response)

            self._logger.info(
                "response_generated",
                stop_reason=parsed.stop_reason,
                tool_calls=len(parsed.tool_calls),
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )

            return parsed

        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise
