"""WebSocket event publisher that mirrors canvas sessions to frontends.

A frontend connects, names the session whose canvas it shows, and receives
that session's artifact snapshot followed by its buffered events, then
every new event as it is published. Clients may narrow the stream further
by event type or artifact type; monthly breakdowns are matched by family.
"""

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from fincanvas.artifacts.types import get_base_breakdown_type
from fincanvas.config import get_settings
from fincanvas.events.types import EventType, PipelineEvent

logger = structlog.get_logger(__name__)

SnapshotProvider = Callable[[], dict[str, Any]]
EventHook = Callable[[PipelineEvent], None]


@dataclass
class ClientConnection:
    """A connected frontend and the slice of events it wants."""

    websocket: ServerConnection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    session_id: str | None = None
    subscribed_events: set[EventType] = field(default_factory=set)
    subscribed_artifact_types: set[str] = field(default_factory=set)
    client_id: str = ""

    def __post_init__(self) -> None:
        if not self.client_id and self.websocket.remote_address:
            addr = self.websocket.remote_address
            self.client_id = f"{addr[0]}:{addr[1]}" if isinstance(addr, tuple) else str(addr)

    def __hash__(self) -> int:
        """Make hashable for use in sets (required for websockets v15+)."""
        return hash(id(self.websocket))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientConnection):
            return False
        return self.websocket is other.websocket

    def wants(self, event: PipelineEvent) -> bool:
        """Apply the session, event type and artifact type filters."""
        if self.session_id is not None and event.session_id != self.session_id:
            return False

        if self.subscribed_events and event.event_type not in self.subscribed_events:
            return False

        # Events without an artifact type pass the artifact filter
        if self.subscribed_artifact_types:
            artifact_type = getattr(event, "artifact_type", None)
            if (
                artifact_type
                and get_base_breakdown_type(artifact_type) not in self.subscribed_artifact_types
            ):
                return False

        return True

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.client_id,
            "session_id": self.session_id,
            "connected_at": self.connected_at.isoformat(),
            "event_types": sorted(et.value for et in self.subscribed_events),
            "artifact_types": sorted(self.subscribed_artifact_types),
        }


class EventPublisher:
    """WebSocket server fanning pipeline events out to canvas clients.

    Usage:
        publisher = EventPublisher()
        await publisher.start()

        async with CanvasSession(provider, publisher=publisher) as session:
            ...  # session events reach every client watching it

        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int | None = None,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port
        self._buffer_size = buffer_size or settings.event_buffer_size
        self._ping_interval = settings.ws_ping_interval
        self._ping_timeout = settings.ws_ping_timeout

        self._server: Server | None = None
        self._clients: set[ClientConnection] = set()
        # Replay buffers keyed by session id; None holds session-less events
        self._history: dict[str | None, deque[PipelineEvent]] = {}
        self._snapshots: dict[str, SnapshotProvider] = {}
        self._event_hooks: list[EventHook] = []
        self._is_running = False

        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def sessions(self) -> list[str]:
        """Ids of sessions currently registered for snapshots."""
        return list(self._snapshots)

    def recent_events(self, session_id: str | None = None) -> list[PipelineEvent]:
        """Buffered events of one session, or of every session when None."""
        if session_id is not None:
            return list(self._history.get(session_id, ()))
        merged = [event for buffer in self._history.values() for event in buffer]
        return sorted(merged, key=lambda e: e.timestamp)

    def add_event_hook(self, hook: EventHook) -> None:
        """Call ``hook`` synchronously for every published event."""
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: EventHook) -> None:
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    # === Sessions ===

    def register_session(self, session_id: str, snapshot: SnapshotProvider) -> None:
        """Serve ``snapshot()`` to clients that start watching this session."""
        self._snapshots[session_id] = snapshot
        self._logger.debug("session_registered", session_id=session_id)

    def unregister_session(self, session_id: str) -> None:
        """Forget a closed session's snapshot provider and replay buffer."""
        self._snapshots.pop(session_id, None)
        self._history.pop(session_id, None)
        self._logger.debug("session_unregistered", session_id=session_id)

    # === Server lifecycle ===

    async def start(self) -> None:
        """Start the WebSocket server."""
        if self._is_running:
            self._logger.warning("publisher_already_running")
            return

        self._server = await websockets.serve(
            self._handle_client,
            self._host,
            self._port,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
        )
        self._is_running = True
        self._logger.info("publisher_started", address=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Disconnect every client and stop the server."""
        if not self._is_running:
            return

        self._logger.info("stopping_publisher", client_count=len(self._clients))
        await asyncio.gather(
            *(c.websocket.close(1001, "Server shutting down") for c in list(self._clients)),
            return_exceptions=True,
        )
        self._clients.clear()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._is_running = False
        self._logger.info("publisher_stopped")

    # === Client protocol ===

    async def _handle_client(self, websocket: ServerConnection) -> None:
        client = ClientConnection(websocket=websocket)
        self._clients.add(client)
        self._logger.info("client_connected", client_id=client.client_id)

        try:
            async for message in websocket:
                await self._handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info(
                "client_disconnected", client_id=client.client_id, code=e.code, reason=e.reason
            )
        except Exception as e:
            self._logger.error("client_error", client_id=client.client_id, error=str(e))
        finally:
            self._clients.discard(client)

    async def _handle_message(self, client: ClientConnection, message: str | bytes) -> None:
        """Dispatch one client message.

        Supported message types:
        - subscribe: {"session_id", "event_types", "artifact_types"}
        - unsubscribe: {"event_types", "artifact_types"}
        - ping: health check
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._logger.warning("invalid_client_message", client_id=client.client_id)
            return

        if not isinstance(data, dict):
            self._logger.warning("invalid_client_message", client_id=client.client_id)
            return

        msg_type = data.get("type", "")
        try:
            if msg_type == "subscribe":
                await self._handle_subscribe(client, data)
            elif msg_type == "unsubscribe":
                self._handle_unsubscribe(client, data)
            elif msg_type == "ping":
                await client.websocket.send(json.dumps({"type": "pong"}))
            else:
                self._logger.warning(
                    "unknown_message_type", client_id=client.client_id, msg_type=msg_type
                )
        except websockets.ConnectionClosed:
            self._clients.discard(client)

    async def _handle_subscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        """Apply filters, confirm, then replay the session's state."""
        session_id = data.get("session_id")
        if isinstance(session_id, str) and session_id:
            client.session_id = session_id

        client.subscribed_events.update(_parse_event_types(data.get("event_types", [])))
        client.subscribed_artifact_types.update(
            _parse_artifact_types(data.get("artifact_types", []))
        )

        self._logger.debug("client_subscribed", **client.describe())
        await client.websocket.send(json.dumps({"type": "subscribed", **client.describe()}))
        await self._replay(client)

    def _handle_unsubscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        client.subscribed_events.difference_update(
            _parse_event_types(data.get("event_types", []))
        )
        client.subscribed_artifact_types.difference_update(
            _parse_artifact_types(data.get("artifact_types", []))
        )

    async def _replay(self, client: ClientConnection) -> None:
        """Send the session snapshot and the buffered events the client wants."""
        if client.session_id is not None:
            provider = self._snapshots.get(client.session_id)
            if provider is not None:
                try:
                    snapshot = provider()
                except Exception as e:
                    self._logger.error(
                        "snapshot_failed", session_id=client.session_id, error=str(e)
                    )
                else:
                    await client.websocket.send(
                        json.dumps(
                            {
                                "type": "session_snapshot",
                                "session_id": client.session_id,
                                "snapshot": snapshot,
                            },
                            default=str,
                        )
                    )

        events = [e for e in self.recent_events(client.session_id) if client.wants(e)]
        if events:
            await client.websocket.send(
                json.dumps({"type": "event_history", "events": [e.to_dict() for e in events]})
            )

    # === Publishing ===

    def publish(self, event: PipelineEvent) -> None:
        """Buffer an event, run hooks and schedule delivery. Never blocks."""
        self._record(event)
        if self._is_running:
            asyncio.create_task(self._broadcast(event))

    async def broadcast_all(self, event: PipelineEvent) -> None:
        """Like publish(), but waits until every client has been sent the event."""
        self._record(event)
        await self._broadcast(event)

    def _record(self, event: PipelineEvent) -> None:
        buffer = self._history.get(event.session_id)
        if buffer is None:
            buffer = self._history[event.session_id] = deque(maxlen=self._buffer_size)
        buffer.append(event)

        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_error", error=str(e))

    async def _broadcast(self, event: PipelineEvent) -> None:
        if not self._clients:
            return

        message = json.dumps(event.to_dict())
        targets = [c for c in list(self._clients) if c.wants(event)]
        if targets:
            await asyncio.gather(
                *(self._safe_send(c, message) for c in targets), return_exceptions=True
            )

    async def _safe_send(self, client: ClientConnection, message: str) -> None:
        try:
            await client.websocket.send(message)
        except websockets.ConnectionClosed:
            self._clients.discard(client)
        except Exception as e:
            self._logger.error("send_error", client_id=client.client_id, error=str(e))

    def get_status(self) -> dict[str, Any]:
        """Publisher status for health endpoints."""
        return {
            "is_running": self._is_running,
            "host": self._host,
            "port": self._port,
            "client_count": len(self._clients),
            "sessions": self.sessions,
            "buffered_events": sum(len(b) for b in self._history.values()),
            "clients": [c.describe() for c in self._clients],
        }


def _parse_event_types(values: Iterable[Any]) -> set[EventType]:
    parsed = set()
    for value in values:
        with contextlib.suppress(ValueError):
            parsed.add(EventType(value))
    return parsed


def _parse_artifact_types(values: Iterable[Any]) -> set[str]:
    return {get_base_breakdown_type(v) for v in values if isinstance(v, str) and v}
