"""Tests for Claude LLM client."""

import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from fincanvas.clients.claude import (
    INCOMPLETE_TOOL_RESULT,
    ClaudeClient,
    ClaudeResponse,
    convert_messages,
)
from fincanvas.conversation.messages import (
    assistant_message,
    tool_call_message,
    tool_result_message,
    user_message,
)


def make_api_response(content, stop_reason="end_turn"):
    mock_response = MagicMock()
    mock_response.content = content
    mock_response.stop_reason = stop_reason
    mock_response.usage = MagicMock(input_tokens=10, output_tokens=5)
    return mock_response


class TestClaudeClient:
    """Tests for ClaudeClient."""

    def test_client_initialization_with_defaults(self):
        """Test client initializes with settings defaults."""
        client = ClaudeClient()

        assert client._model is not None
        assert client._max_tokens > 0

    def test_client_initialization_with_custom_params(self):
        """Test client accepts custom parameters."""
        client = ClaudeClient(
            api_key="test-key",
            model="claude-sonnet-4-5",
            max_tokens=2048,
            temperature=0.5,
        )

        assert client._api_key == "test-key"
        assert client._model == "claude-sonnet-4-5"
        assert client._max_tokens == 2048
        assert client._temperature == 0.5

    def test_convert_tools_to_anthropic_format(self):
        """Test tool format conversion drops extra keys."""
        client = ClaudeClient()
        tools = [
            {
                "name": "test_tool",
                "description": "A test tool",
                "input_schema": {"type": "object", "properties": {}},
                "internal": True,
            }
        ]

        converted = client._convert_tools_to_anthropic_format(tools)

        assert converted == [
            {
                "name": "test_tool",
                "description": "A test tool",
                "input_schema": {"type": "object", "properties": {}},
            }
        ]

    def test_parse_text_response(self):
        """Test parsing text-only response."""
        client = ClaudeClient()

        parsed = client._parse_response(
            make_api_response([MagicMock(type="text", text="Hello there")])
        )

        assert parsed.content == "Hello there"
        assert parsed.tool_calls == []
        assert parsed.stop_reason == "end_turn"
        assert parsed.usage["input_tokens"] == 10
        assert parsed.usage["output_tokens"] == 5

    def test_parse_tool_use_response(self):
        """Test parsing response with tool calls."""
        client = ClaudeClient()

        tool_block = MagicMock()
        tool_block.type = "tool_use"
        tool_block.id = "call_abc"
        tool_block.name = "get_runway"
        tool_block.input = {"currency": "USD"}

        parsed = client._parse_response(make_api_response([tool_block], "tool_use"))

        assert parsed.tool_calls == [
            {"id": "call_abc", "name": "get_runway", "arguments": {"currency": "USD"}}
        ]
        assert parsed.stop_reason == "tool_use"

    @pytest.mark.asyncio
    async def test_generate_with_tools(self):
        """Test tools are sent and temperature is left to the default."""
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=make_api_response([MagicMock(type="text", text="Hi")])
        )
        client = ClaudeClient(client=sdk)
        tools = [{"name": "t", "description": "d", "input_schema": {}}]

        response = await client.generate("system", [user_message("Hello")], tools)

        assert response.content == "Hi"
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["tools"][0]["name"] == "t"
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    async def test_generate_without_tools_sets_temperature(self):
        """Test plain generation passes the temperature."""
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=make_api_response([MagicMock(type="text", text="Title")])
        )
        client = ClaudeClient(client=sdk, temperature=0.3)

        await client.generate("system", [user_message("Hello")])

        assert sdk.messages.create.call_args.kwargs["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_generate_reraises_api_errors(self):
        """Test API errors propagate after logging."""
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))
        client = ClaudeClient(client=sdk)

        with pytest.raises(anthropic.APIError):
            await client.generate("system", [user_message("Hello")])


class TestConvertMessages:
    """Tests for converting the conversation log to Anthropic messages."""

    def test_user_message(self):
        """Test user message conversion."""
        assert convert_messages([user_message("Hello")]) == [
            {"role": "user", "content": "Hello"}
        ]

    def test_text_and_tool_calls_share_one_assistant_message(self):
        """Test assistant text followed by recorded tool calls is one message."""
        call = tool_call_message("get_runway", {"currency": "USD"}, "call_1")
        converted = convert_messages([
            user_message("Runway?"),
            assistant_message("Let me check"),
            call,
            tool_result_message(call.tool_calls[0], {"months": 14}),
        ])

        assert [m["role"] for m in converted] == ["user", "assistant", "user"]
        content = converted[1]["content"]
        assert content[0] == {"type": "text", "text": "Let me check"}
        assert content[1]["type"] == "tool_use"
        assert content[1]["id"] == "call_1"
        assert content[1]["input"] == {"currency": "USD"}

        result = converted[2]["content"][0]
        assert result["type"] == "tool_result"
        assert result["tool_use_id"] == "call_1"
        assert json.loads(result["content"]) == {"months": 14}
        assert result["is_error"] is False

    def test_interleaved_results_are_regrouped(self):
        """Test results committed in any order follow their calls."""
        first = tool_call_message("get_runway", tool_call_id="call_1")
        second = tool_call_message("get_spending", tool_call_id="call_2")
        converted = convert_messages([
            user_message("Both"),
            first,
            second,
            tool_result_message(second.tool_calls[0], {"b": 2}),
            tool_result_message(first.tool_calls[0], {"a": 1}, is_error=True),
        ])

        assert [m["role"] for m in converted] == ["user", "assistant", "user"]
        assert [b["id"] for b in converted[1]["content"]] == ["call_1", "call_2"]
        results = converted[2]["content"]
        assert [r["tool_use_id"] for r in results] == ["call_1", "call_2"]
        assert results[0]["is_error"] is True

    def test_unfinished_call_gets_error_result(self):
        """Test a call without a result is closed with an error."""
        call = tool_call_message("get_runway", tool_call_id="call_1")
        converted = convert_messages([user_message("Runway?"), call, user_message("Hello?")])

        assert [m["role"] for m in converted] == ["user", "assistant", "user", "user"]
        result = converted[2]["content"][0]
        assert result["content"] == INCOMPLETE_TOOL_RESULT
        assert result["is_error"] is True

    def test_settled_exchange_starts_new_message(self):
        """Test calls after a settled exchange form a new assistant message."""
        first = tool_call_message("get_runway", tool_call_id="call_1")
        second = tool_call_message("get_spending", tool_call_id="call_2")
        converted = convert_messages([
            user_message("Go"),
            first,
            tool_result_message(first.tool_calls[0], {}),
            second,
            tool_result_message(second.tool_calls[0], {}),
            assistant_message("Done"),
        ])

        assert [m["role"] for m in converted] == [
            "user",
            "assistant",
            "user",
            "assistant",
            "user",
            "assistant",
        ]
        assert converted[-1]["content"] == [{"type": "text", "text": "Done"}]


class TestClaudeResponse:
    """Tests for ClaudeResponse dataclass."""

    def test_response_creation(self):
        """Test ClaudeResponse creation."""
        response = ClaudeResponse(
            content="Hello",
            tool_calls=[{"id": "1", "name": "test", "arguments": {}}],
            stop_reason="tool_use",
            usage={"input_tokens": 10, "output_tokens": 5},
        )

        assert response.content == "Hello"
        assert len(response.tool_calls) == 1
        assert response.stop_reason == "tool_use"
        assert response.usage["input_tokens"] == 10
