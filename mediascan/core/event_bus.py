"""Progress broadcast hub.

Fans scan progress events out to any number of live subscribers. Each
subscriber owns a bounded queue; a subscriber whose queue is full is dropped
instead of slowing the broadcaster down. The last scan event is remembered
and replayed to subscribers that join while a scan is in flight.

Example:
    >>> hub = ProgressHub()
    >>> await hub.start()
    >>> sub = hub.subscribe()
    >>> async for event in hub.stream(sub):
    ...     print(event["type"])
"""

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import structlog

from ..scan.models import EventType, ProgressEvent

logger = structlog.get_logger(__name__)

HEARTBEAT_INTERVAL = 30.0
STALE_SUBSCRIBER_SECONDS = 30 * 60
DEFAULT_QUEUE_SIZE = 256


def new_connection_id() -> str:
    return f"conn_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@dataclass
class Subscriber:
    """A registered progress stream consumer."""

    connection_id: str
    queue: "asyncio.Queue[Optional[Dict[str, Any]]]"
    connected_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    closed: bool = False


class ProgressHub:
    """Publish/subscribe registry for scan progress events."""

    def __init__(
        self,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        stale_after: float = STALE_SUBSCRIBER_SECONDS,
    ) -> None:
        self.queue_size = queue_size
        self.heartbeat_interval = heartbeat_interval
        self.stale_after = stale_after
        self._subscribers: Dict[str, Subscriber] = {}
        self._last_event: Optional[Dict[str, Any]] = None
        self._active_scan_id: Optional[str] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def last_event(self) -> Optional[Dict[str, Any]]:
        return self._last_event

    @property
    def scan_active(self) -> bool:
        return self._active_scan_id is not None

    def _stamp(self, event: ProgressEvent) -> Dict[str, Any]:
        stamped = event.model_copy(
            update={
                "timestamp": datetime.now(timezone.utc),
                "active_connections": len(self._subscribers),
            }
        )
        return stamped.to_wire()

    def _deliver(self, subscriber: Subscriber, payload: Dict[str, Any]) -> bool:
        if subscriber.closed:
            return False
        try:
            subscriber.queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            return False

    def subscribe(self, connection_id: Optional[str] = None) -> Subscriber:
        """
        Register a subscriber.

        The subscriber's queue starts with a ``connected`` event, followed by
        the last known scan event when a scan is in flight.
        """
        connection_id = connection_id or new_connection_id()
        if connection_id in self._subscribers:
            self.unsubscribe(connection_id)

        subscriber = Subscriber(
            connection_id=connection_id,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        self._subscribers[connection_id] = subscriber

        self._deliver(
            subscriber,
            self._stamp(
                ProgressEvent(
                    type=EventType.CONNECTED,
                    connection_id=connection_id,
                    scan_id=self._active_scan_id,
                    message="Connected to scan progress stream",
                )
            ),
        )
        if self.scan_active and self._last_event is not None:
            self._deliver(subscriber, self._last_event)

        logger.info(
            "progress_subscriber_added",
            connection_id=connection_id,
            active_connections=len(self._subscribers),
            replayed=self.scan_active and self._last_event is not None,
        )
        return subscriber

    def unsubscribe(self, connection_id: str) -> None:
        subscriber = self._subscribers.pop(connection_id, None)
        if subscriber is None:
            return
        subscriber.closed = True
        try:
            subscriber.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass
        logger.info(
            "progress_subscriber_removed",
            connection_id=connection_id,
            active_connections=len(self._subscribers),
        )

    def release(self, subscriber: Subscriber) -> None:
        """Unsubscribe ``subscriber`` unless its id now belongs to a newer one."""
        if self._subscribers.get(subscriber.connection_id) is subscriber:
            self.unsubscribe(subscriber.connection_id)

    async def broadcast(self, event: ProgressEvent) -> int:
        """
        Stamp and fan out an event.

        Scan events (everything except ``connected`` and ``heartbeat``) are
        recorded as the last known state even with zero subscribers.

        Returns:
            Number of subscribers the event was delivered to
        """
        payload = self._stamp(event)

        if event.type not in (EventType.HEARTBEAT, EventType.CONNECTED):
            self._last_event = payload

        delivered = 0
        for connection_id, subscriber in list(self._subscribers.items()):
            if self._deliver(subscriber, payload):
                delivered += 1
            else:
                logger.warning("progress_subscriber_dropped", connection_id=connection_id)
                self.unsubscribe(connection_id)

        logger.debug(
            "progress_event_broadcast",
            event_type=event.type.value,
            delivered=delivered,
        )
        return delivered

    def mark_scan_started(self, scan_id: str) -> None:
        """Record that a scan is in flight so late joiners get a replay."""
        self._active_scan_id = scan_id
        self._last_event = None

    def clear_scan_state(self) -> None:
        """Forget the in-flight scan; late joiners no longer get a replay."""
        self._active_scan_id = None

    async def stream(self, subscriber: Subscriber) -> AsyncIterator[Dict[str, Any]]:
        """Yield events for one subscriber until it is removed."""
        try:
            while True:
                payload = await subscriber.queue.get()
                if payload is None:
                    return
                subscriber.last_activity = time.monotonic()
                yield payload
                if subscriber.closed and subscriber.queue.empty():
                    return
        finally:
            self.release(subscriber)

    def cleanup_stale(self) -> int:
        """Drop subscribers that have not consumed anything for too long."""
        cutoff = time.monotonic() - self.stale_after
        stale = [cid for cid, sub in self._subscribers.items() if sub.last_activity < cutoff]
        for connection_id in stale:
            logger.info("progress_subscriber_stale", connection_id=connection_id)
            self.unsubscribe(connection_id)
        return len(stale)

    async def _heartbeat_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.heartbeat_interval)
                self.cleanup_stale()
                await self.broadcast(
                    ProgressEvent(type=EventType.HEARTBEAT, scan_id=self._active_scan_id)
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("progress_heartbeat_error", error=str(e), exc_info=True)

    async def start(self) -> None:
        """Start the periodic heartbeat."""
        if self._heartbeat_task is not None:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("progress_hub_started", heartbeat_interval=self.heartbeat_interval)

    async def stop(self) -> None:
        """Stop the heartbeat and close every subscriber."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for connection_id in list(self._subscribers):
            self.unsubscribe(connection_id)
        logger.info("progress_hub_stopped")
