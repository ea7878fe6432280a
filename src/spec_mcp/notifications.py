"""Best-effort fan-out of spec lifecycle events to connected observers.

Each observer owns a bounded outbound queue drained by its WebSocket
connection. publish() may be called from any thread: delivery is scheduled
on the hub's event loop so a write never waits on observers. Delivery is
at-most-once and nothing is replayed to observers that connect later.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

SPEC_CREATED = "spec_created"
SPEC_UPDATED = "spec_updated"
SPEC_DELETED = "spec_deleted"
SPEC_STATUS_CHANGED = "spec_status_changed"
STATS_UPDATED = "stats_updated"
CONNECTION_ACK = "connection_ack"
PING = "ping"
PONG = "pong"

LIFECYCLE_EVENTS = (SPEC_CREATED, SPEC_UPDATED, SPEC_DELETED, SPEC_STATUS_CHANGED, STATS_UPDATED)

# WebSocket close code for "try again later"
CLOSE_TRY_AGAIN_LATER = 1013

DEFAULT_QUEUE_SIZE = 100


class ClientMessage(BaseModel):
    """A message sent by an observer."""

    model_config = ConfigDict(extra="allow")

    type: Literal["ping", "pong"]
    timestamp: str | None = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_message(event_type: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": event_type, "data": data or {}, "timestamp": _timestamp()}


@dataclass
class Observer:
    """A connected client and its pending outbound messages.

    A None in the queue tells the connection to close.
    """

    client_id: str
    queue: asyncio.Queue
    connected_at: float = field(default_factory=time.monotonic)
    last_seen: float = field(default_factory=time.monotonic)


class NotificationHub:
    """Registry of observers with broadcast and heartbeat."""

    def __init__(
        self,
        max_connections: int = 100,
        heartbeat_interval: float = 30,
        heartbeat_timeout: float = 60,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.max_connections = max_connections
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.queue_size = queue_size
        self._observers: dict[str, Observer] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def start(self, heartbeat: bool = True) -> None:
        """Bind to the running event loop and start the heartbeat task."""
        self._loop = asyncio.get_running_loop()
        if heartbeat and self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat())
        logger.info(
            "Notification hub started (max %d observers, heartbeat %ss/%ss)",
            self.max_connections, self.heartbeat_interval, self.heartbeat_timeout,
        )

    async def stop(self) -> None:
        """Stop the heartbeat and ask every observer to close."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for client_id in list(self._observers):
            self.disconnect(client_id, close=True)
        self._loop = None
        logger.info("Notification hub stopped")

    # Observers

    def connect(self) -> Observer | None:
        """Register a new observer, or return None when the hub is full."""
        if len(self._observers) >= self.max_connections:
            logger.warning(
                "Rejecting observer: connection limit %d reached", self.max_connections
            )
            return None

        observer = Observer(client_id=uuid.uuid4().hex, queue=asyncio.Queue(self.queue_size))
        self._observers[observer.client_id] = observer
        observer.queue.put_nowait(make_message(CONNECTION_ACK, {"client_id": observer.client_id}))
        logger.info("Observer %s connected (%d total)", observer.client_id, len(self._observers))
        return observer

    def disconnect(self, client_id: str, close: bool = False) -> None:
        observer = self._observers.pop(client_id, None)
        if observer is None:
            return
        if close:
            self._offer(observer, None)
        logger.info("Observer %s disconnected (%d total)", client_id, len(self._observers))

    def handle_message(self, observer: Observer, raw: str) -> None:
        """Process one message from an observer; any message counts as liveness."""
        observer.last_seen = time.monotonic()
        try:
            message = ClientMessage.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                "Ignoring invalid message from observer %s: %s",
                observer.client_id, e.errors()[0]["msg"],
            )
            return

        if message.type == PING:
            self._offer(observer, make_message(PONG))

    # Delivery

    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        """Schedule a broadcast of an event to every current observer."""
        if self._loop is None or self._loop.is_closed():
            logger.debug("No event loop bound, dropping %s event", event_type)
            return
        message = make_message(event_type, data)
        self._loop.call_soon_threadsafe(self._broadcast, message)

    def _broadcast(self, message: dict[str, Any]) -> None:
        for observer in list(self._observers.values()):
            self._offer(observer, message)

    def _offer(self, observer: Observer, message: dict[str, Any] | None) -> None:
        try:
            observer.queue.put_nowait(message)
        except asyncio.QueueFull:
            if message is None:
                # The close marker must get through; drop the oldest pending message
                observer.queue.get_nowait()
                observer.queue.put_nowait(None)
                return
            logger.warning(
                "Observer %s queue full, dropping %s",
                observer.client_id, message["type"],
            )

    # Heartbeat

    def sweep(self, now: float | None = None) -> list[str]:
        """Drop observers silent longer than the timeout and ping the rest.

        Returns:
            Client ids of the dropped observers
        """
        now = time.monotonic() if now is None else now
        dropped = []
        for observer in list(self._observers.values()):
            if now - observer.last_seen > self.heartbeat_timeout:
                logger.warning(
                    "Observer %s silent for %.0fs, dropping",
                    observer.client_id, now - observer.last_seen,
                )
                self.disconnect(observer.client_id, close=True)
                dropped.append(observer.client_id)
            else:
                self._offer(observer, make_message(PING))
        return dropped

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self.sweep()
