"""Financial assistant: the Claude tool-use loop that drives a canvas session."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import anthropic
import structlog

from fincanvas.clients.claude import ClaudeClient
from fincanvas.config import get_settings
from fincanvas.conversation.messages import assistant_message
from fincanvas.session import CanvasSession
from fincanvas.tools.definitions import ALL_TOOLS

logger = structlog.get_logger(__name__)

ASSISTANT_SYSTEM_PROMPT = """You are a financial assistant for a small business.
You answer questions about the business's finances using the analysis tools
available to you.

## Guidelines
1. Use a tool whenever the question needs numbers; never invent figures
2. Set show_canvas to true when the user asks to see, show or visualize data
3. Use get_metrics_breakdown whenever the user asks for a breakdown
4. Default to the fiscal year to date unless the user names a period
5. Keep answers short and lead with the key number

When a tool fails, say so plainly and suggest what the user can try next."""

TITLE_SYSTEM_PROMPT = """Write a title of at most six words for a conversation that
starts with the user's message. Reply with the title only, no quotes."""

MAX_TITLE_LENGTH = 60


@dataclass
class AssistantReply:
    """Outcome of one user message."""

    text: str
    steps: int
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    exhausted: bool = False


def fallback_title(text: str) -> str:
    """First line of the user's message, trimmed to title length."""
    first_line = text.strip().splitlines()[0] if text.strip() else "New chat"
    if len(first_line) <= MAX_TITLE_LENGTH:
        return first_line
    return first_line[: MAX_TITLE_LENGTH - 3].rstrip() + "..."


class CanvasAssistant:
    """Runs think/act cycles against a session until Claude stops calling tools.

    Tool calls from one response run concurrently, each through its own
    conversation handle, so their results land in the log in whatever order
    they finish.
    """

    def __init__(
        self,
        session: CanvasSession,
        llm_client: ClaudeClient | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_steps: int | None = None,
        system_prompt: str = ASSISTANT_SYSTEM_PROMPT,
    ):
        self._session = session
        self._llm_client = llm_client or ClaudeClient()
        self._tools = ALL_TOOLS if tools is None else tools
        self._max_steps = max_steps or get_settings().assistant_max_steps
        self._system_prompt = system_prompt
        self._logger = logger.bind(component="assistant", session_id=session.session_id)

    async def respond(self, text: str) -> AssistantReply:
        """Handle one user message.

        Args:
            text: The user's message.

        Returns:
            The final assistant text plus every tool result produced.
        """
        self._logger.info("starting_turn", message=text[:100])
        self._session.add_user_message(text)
        if self._session.title is None:
            self._session.set_title(await self._generate_title(text))

        tool_results: list[dict[str, Any]] = []
        last_text = ""

        for step in range(self._max_steps):
            self._logger.debug("step", number=step + 1)
            response = await self._llm_client.generate(
                self._system_prompt,
                self._session.log.get().messages,
                self._tools,
            )
            last_text = response.content

            if response.content:
                message = assistant_message(response.content)
                self._session.open_turn().done(lambda snapshot: snapshot.append(message))

            if not response.tool_calls:
                self._logger.info("turn_completed", steps=step + 1, tools=len(tool_results))
                return AssistantReply(text=response.content, steps=step + 1, tool_results=tool_results)

            results = await asyncio.gather(
                *(
                    self._session.run_tool(call["name"], call["arguments"], call["id"])
                    for call in response.tool_calls
                )
            )
            tool_results.extend(results)

        self._logger.warning("max_steps_reached", steps=self._max_steps)
        return AssistantReply(
            text=last_text,
            steps=self._max_steps,
            tool_results=tool_results,
            exhausted=True,
        )

    async def _generate_title(self, text: str) -> str:
        try:
            response = await self._llm_client.generate(
                TITLE_SYSTEM_PROMPT, self._session.log.get().messages[-1:]
            )
        except anthropic.APIError as e:
            self._logger.warning("title_generation_failed", error=str(e))
            return fallback_title(text)
        title = response.content.strip().strip('"')
        return fallback_title(title) if title else fallback_title(text)
