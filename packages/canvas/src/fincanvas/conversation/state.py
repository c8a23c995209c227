"""Conversation state aggregator.

The log is append-only and revisioned. Writers follow a compare-and-swap
discipline: read the latest snapshot, compute the next one, and commit only
if nobody committed in between; otherwise recompute against the newer
snapshot. Two tool executors finishing around the same time therefore
cannot lose each other's messages.

Each tool invocation works through its own ``MutableConversationState``
handle, which is finalized by exactly one ``done`` call.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import uuid4

import structlog

from fincanvas.conversation.messages import (
    ConversationMessage,
    ToolCallPart,
    ToolResultPart,
    tool_call_message,
    tool_result_message,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 8


class ConversationStateError(Exception):
    """Base error for conversation state contract violations."""


class TurnClosedError(ConversationStateError):
    """update() or done() called on a handle that already finished."""

    def __init__(self, turn_id: str):
        super().__init__(f"Turn '{turn_id}' is already done")
        self.turn_id = turn_id


class StaleSnapshotError(ConversationStateError):
    """A write was computed against a snapshot that is no longer current."""

    def __init__(self, expected_revision: int, actual_revision: int):
        super().__init__(
            f"Snapshot revision {expected_revision} is stale (current {actual_revision})"
        )
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class OrphanedToolResultError(ConversationStateError):
    """A tool result references a tool call that does not precede it."""

    def __init__(self, tool_call_ids: list[str]):
        super().__init__(f"Tool results without a preceding call: {', '.join(tool_call_ids)}")
        self.tool_call_ids = tool_call_ids


class ToolCallStatus(str, Enum):
    """Display state of a tool call."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    STUCK = "stuck"


@dataclass(frozen=True)
class ConversationSnapshot:
    """Immutable view of the conversation at one revision.

    Snapshots derived with ``append`` or ``with_metadata`` keep the revision
    they were derived from, which is what the log compares on commit.
    """

    messages: tuple[ConversationMessage, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    revision: int = 0

    def append(self, *messages: ConversationMessage) -> "ConversationSnapshot":
        return replace(self, messages=self.messages + tuple(messages))

    def with_metadata(self, **values: Any) -> "ConversationSnapshot":
        merged = dict(self.metadata)
        merged.update(values)
        return replace(self, metadata=MappingProxyType(merged))

    def tool_calls(self) -> dict[str, ToolCallPart]:
        return {
            call.tool_call_id: call for message in self.messages for call in message.tool_calls
        }

    def tool_results(self) -> dict[str, ToolResultPart]:
        return {
            result.tool_call_id: result
            for message in self.messages
            for result in message.tool_results
        }

    def orphaned_tool_results(self) -> list[ToolResultPart]:
        """Results whose call does not appear earlier in the log."""
        seen: set[str] = set()
        orphaned: list[ToolResultPart] = []
        for message in self.messages:
            for part in message.content:
                if isinstance(part, ToolCallPart):
                    seen.add(part.tool_call_id)
                elif isinstance(part, ToolResultPart) and part.tool_call_id not in seen:
                    orphaned.append(part)
        return orphaned

    def dangling_tool_calls(self) -> list[ToolCallPart]:
        """Calls that have no result yet."""
        results = self.tool_results()
        return [call for call_id, call in self.tool_calls().items() if call_id not in results]

    def tool_call_started_at(self, tool_call_id: str) -> datetime | None:
        for message in self.messages:
            if any(call.tool_call_id == tool_call_id for call in message.tool_calls):
                return message.created_at
        return None

    def tool_call_status(
        self,
        tool_call_id: str,
        timeout_seconds: float,
        now: datetime | None = None,
    ) -> ToolCallStatus:
        """Classify a tool call for display.

        A call without a result is PENDING until ``timeout_seconds`` have
        passed since it was recorded, then STUCK.

        Raises:
            KeyError: If no such tool call exists.
        """
        started_at = self.tool_call_started_at(tool_call_id)
        if started_at is None:
            raise KeyError(tool_call_id)

        result = self.tool_results().get(tool_call_id)
        if result is not None:
            return ToolCallStatus.FAILED if result.is_error else ToolCallStatus.COMPLETED

        now = now or datetime.now(UTC)
        if (now - started_at).total_seconds() >= timeout_seconds:
            return ToolCallStatus.STUCK
        return ToolCallStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "revision": self.revision,
            "metadata": dict(self.metadata),
            "messages": [message.to_dict() for message in self.messages],
        }


@dataclass(frozen=True)
class TurnCompleted:
    """Emitted when a handle commits its terminal snapshot."""

    turn_id: str
    snapshot: ConversationSnapshot
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


SnapshotChange = ConversationSnapshot | Callable[[ConversationSnapshot], ConversationSnapshot]
TurnListener = Callable[[TurnCompleted], None]


class ConversationLog:
    """Append-only, revisioned conversation log owned by one session."""

    def __init__(self, metadata: Mapping[str, Any] | None = None):
        self._snapshot = ConversationSnapshot(metadata=MappingProxyType(dict(metadata or {})))
        self._turn_listeners: list[TurnListener] = []
        self._logger = logger.bind(component="conversation_log")

    @property
    def revision(self) -> int:
        return self._snapshot.revision

    def get(self) -> ConversationSnapshot:
        """Return the latest committed snapshot."""
        return self._snapshot

    def compare_and_set(self, expected_revision: int, candidate: ConversationSnapshot) -> bool:
        """Commit ``candidate`` if the log is still at ``expected_revision``.

        Returns:
            False when another writer committed first.

        Raises:
            ConversationStateError: If the candidate rewrites history.
            OrphanedToolResultError: If the candidate contains a tool result
                without a preceding call.
        """
        current = self._snapshot
        if current.revision != expected_revision:
            return False

        committed = len(current.messages)
        if candidate.messages[:committed] != current.messages:
            raise ConversationStateError("Conversation log is append-only")

        orphaned = candidate.orphaned_tool_results()
        if orphaned:
            self._logger.error(
                "orphaned_tool_result_rejected",
                tool_call_ids=[r.tool_call_id for r in orphaned],
            )
            raise OrphanedToolResultError([r.tool_call_id for r in orphaned])

        self._snapshot = replace(candidate, revision=current.revision + 1)
        self._logger.debug(
            "conversation_committed",
            revision=self._snapshot.revision,
            appended=len(candidate.messages) - committed,
        )
        return True

    def open_turn(
        self, turn_id: str | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> "MutableConversationState":
        """Create a write handle for one tool invocation or assistant turn."""
        return MutableConversationState(self, turn_id=turn_id, max_attempts=max_attempts)

    def on_turn_completed(self, listener: TurnListener) -> Callable[[], None]:
        """Register a listener for finalized turns. Returns an unsubscribe callable."""
        self._turn_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._turn_listeners:
                self._turn_listeners.remove(listener)

        return unsubscribe

    def _turn_completed(self, event: TurnCompleted) -> None:
        for listener in list(self._turn_listeners):
            try:
                listener(event)
            except Exception as e:
                self._logger.error("turn_listener_error", turn_id=event.turn_id, error=str(e))


def swap(
    log: ConversationLog,
    fn: Callable[[ConversationSnapshot], ConversationSnapshot],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ConversationSnapshot:
    """Read-compute-commit loop against the latest snapshot.

    Raises:
        StaleSnapshotError: If every attempt lost the race.
    """
    for attempt in range(max_attempts):
        current = log.get()
        candidate = fn(current)
        if log.compare_and_set(current.revision, candidate):
            return log.get()
        logger.debug("conversation_swap_retry", attempt=attempt + 1)
    raise StaleSnapshotError(current.revision, log.revision)


async def swap_async(
    log: ConversationLog,
    fn: Callable[[ConversationSnapshot], Awaitable[ConversationSnapshot]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ConversationSnapshot:
    """Like ``swap`` for transformations that await while computing.

    Another writer may commit while ``fn`` is suspended; the transformation
    is then re-run against the newer snapshot.
    """
    for attempt in range(max_attempts):
        current = log.get()
        candidate = await fn(current)
        if log.compare_and_set(current.revision, candidate):
            return log.get()
        logger.debug("conversation_swap_retry", attempt=attempt + 1)
    raise StaleSnapshotError(current.revision, log.revision)


class MutableConversationState:
    """Write handle used by one tool executor (or one assistant turn).

    ``update`` and ``done`` accept either a transformation of the latest
    snapshot, which is retried on conflict, or a precomputed snapshot, which
    is rejected with StaleSnapshotError if another commit happened after the
    snapshot it was derived from. After ``done`` the handle is closed and
    further writes raise TurnClosedError.
    """

    def __init__(
        self,
        log: ConversationLog,
        turn_id: str | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._log = log
        self.turn_id = turn_id or uuid4().hex
        self._max_attempts = max_attempts
        self._closed = False
        self._logger = logger.bind(turn_id=self.turn_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self) -> ConversationSnapshot:
        """Current snapshot of the shared log."""
        return self._log.get()

    def update(self, change: SnapshotChange) -> ConversationSnapshot:
        """Apply a non-terminal change."""
        self._ensure_open()
        return self._commit(change)

    async def update_async(
        self, fn: Callable[[ConversationSnapshot], Awaitable[ConversationSnapshot]]
    ) -> ConversationSnapshot:
        """Apply a non-terminal change computed by a coroutine."""
        self._ensure_open()
        return await swap_async(self._log, fn, self._max_attempts)

    def done(self, change: SnapshotChange) -> ConversationSnapshot:
        """Apply the terminal change and close this handle."""
        self._ensure_open()
        snapshot = self._commit(change)
        self._closed = True
        self._logger.debug("turn_done", revision=snapshot.revision)
        self._log._turn_completed(TurnCompleted(turn_id=self.turn_id, snapshot=snapshot))
        return snapshot

    # === Tool contract helpers ===

    def record_tool_call(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        tool_call_id: str | None = None,
    ) -> ToolCallPart:
        """Append the tool-call item before the tool starts working."""
        message = tool_call_message(tool_name, arguments, tool_call_id)
        self.update(lambda snapshot: snapshot.append(message))
        return message.tool_calls[0]

    def record_tool_result(
        self, call: ToolCallPart, result: Any, is_error: bool = False
    ) -> ConversationSnapshot:
        """Append the tool-result item and finish the handle."""
        message = tool_result_message(call, result, is_error=is_error)
        return self.done(lambda snapshot: snapshot.append(message))

    # === Internals ===

    def _ensure_open(self) -> None:
        if self._closed:
            self._logger.warning("write_after_done_rejected")
            raise TurnClosedError(self.turn_id)

    def _commit(self, change: SnapshotChange) -> ConversationSnapshot:
        if isinstance(change, ConversationSnapshot):
            if not self._log.compare_and_set(change.revision, change):
                raise StaleSnapshotError(change.revision, self._log.revision)
            return self._log.get()
        return swap(self._log, change, self._max_attempts)
