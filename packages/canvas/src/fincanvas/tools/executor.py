"""Tool executor that bridges LLM tool calls to the analysis tools.

Every invocation follows the same contract against its own conversation
state handle: the tool-call item is committed before the tool runs, and
exactly one tool-result item (success or error) is committed through
``done`` when it finishes, fails or is cancelled.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from functools import partial
from typing import Any

import structlog

from fincanvas.conversation.state import MutableConversationState
from fincanvas.events.types import PipelineEvent, tool_called, tool_completed, tool_failed
from fincanvas.tools.analysis import ANALYSIS_DEFINITIONS, BREAKDOWN_TOOL_NAME, AnalysisTools
from fincanvas.tools.metrics_api import MetricsAPIError

logger = structlog.get_logger(__name__)

ToolHandler = Callable[..., Awaitable[dict[str, Any]]]
EventSink = Callable[[PipelineEvent], None]


class ToolExecutionError(Exception):
    """Error during tool execution."""

    def __init__(self, tool_name: str, message: str, details: Any = None):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.details = details


class ToolExecutor:
    """Executes LLM tool calls as tasks that outlive the UI that started them."""

    def __init__(
        self,
        tools: AnalysisTools,
        event_sink: EventSink | None = None,
        session_id: str | None = None,
    ):
        self.tools = tools
        self._event_sink = event_sink
        self._session_id = session_id
        self._tasks: set[asyncio.Task[dict[str, Any]]] = set()
        self._tool_handlers: dict[str, ToolHandler] = {
            definition.tool_name: partial(tools.run_analysis, definition)
            for definition in ANALYSIS_DEFINITIONS
        }
        self._tool_handlers[BREAKDOWN_TOOL_NAME] = tools.metrics_breakdown
        self._logger = logger.bind(component="tool_executor", session_id=session_id)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tool_handlers)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def register(self, tool_name: str, handler: ToolHandler) -> None:
        """Add or replace a handler; it must accept ``tool_call_id``."""
        self._tool_handlers[tool_name] = handler

    async def execute(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        state: MutableConversationState,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Execute a tool call and return the recorded result."""
        args = dict(arguments or {})
        call = state.record_tool_call(tool_name, args, tool_call_id)
        self._emit(tool_called(call.tool_call_id, tool_name, args, self._session_id))
        self._logger.info("executing_tool", tool=tool_name, tool_call_id=call.tool_call_id, args=args)

        started = time.monotonic()
        try:
            handler = self._tool_handlers.get(tool_name)
            if not handler:
                raise ToolExecutionError(tool_name, f"Unknown tool: {tool_name}")
            result = await handler(tool_call_id=call.tool_call_id, **args)
            self._logger.info("tool_executed", tool=tool_name, success=True)
            outcome: dict[str, Any] = {"success": True, "result": result}
        except asyncio.CancelledError:
            self._logger.warning("tool_cancelled", tool=tool_name, tool_call_id=call.tool_call_id)
            state.record_tool_result(call, {"success": False, "error": "cancelled"}, is_error=True)
            self._emit(
                tool_failed(
                    call.tool_call_id, tool_name, "cancelled", _elapsed_ms(started), self._session_id
                )
            )
            raise
        except MetricsAPIError as e:
            self._logger.warning(
                "tool_api_error",
                tool=tool_name,
                status=e.status_code,
                details=e.details,
            )
            outcome = {
                "success": False,
                "error": str(e),
                "status_code": e.status_code,
                "details": e.details,
            }
        except TypeError as e:
            self._logger.warning("tool_invalid_arguments", tool=tool_name, error=str(e))
            outcome = {"success": False, "error": f"Invalid arguments: {e}"}
        except Exception as e:
            self._logger.exception("tool_execution_error", tool=tool_name)
            outcome = {"success": False, "error": str(e)}

        duration_ms = _elapsed_ms(started)
        state.record_tool_result(call, outcome, is_error=not outcome["success"])
        if outcome["success"]:
            self._emit(
                tool_completed(
                    call.tool_call_id, tool_name, outcome["result"], duration_ms, self._session_id
                )
            )
        else:
            self._emit(
                tool_failed(
                    call.tool_call_id, tool_name, outcome["error"], duration_ms, self._session_id
                )
            )
        return {**outcome, "tool_call_id": call.tool_call_id}

    def start(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        state: MutableConversationState,
        tool_call_id: str | None = None,
    ) -> asyncio.Task[dict[str, Any]]:
        """Schedule a tool call as a task owned by this executor."""
        task = asyncio.create_task(
            self.execute(tool_name, arguments, state, tool_call_id),
            name=f"tool:{tool_name}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        state: MutableConversationState,
        tool_call_id: str | None = None,
    ) -> dict[str, Any]:
        """Run a tool call; cancelling the caller does not cancel the tool."""
        task = self.start(tool_name, arguments, state, tool_call_id)
        return await asyncio.shield(task)

    async def cancel_all(self) -> None:
        """Cancel outstanding tool tasks and wait for them to record results."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self._logger.info("tool_tasks_cancelled", count=len(tasks))

    def _emit(self, event: PipelineEvent) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink(event)
        except Exception as e:
            self._logger.error("event_sink_error", error=str(e))


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)
