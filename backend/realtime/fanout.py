"""
Real-time event fanout.

Mutations publish an Event after their database commit. Project-scoped
events go to the channel named by the project id; project-created and
project-deleted go to every connected client.

Delivery is best-effort and at-most-once: nothing is persisted, nothing is
replayed, and a failed publish never propagates into the mutation that
triggered it. Each subscriber has its own bounded queue drained by a single
writer task, so events on one channel reach a subscriber in publish order;
a subscriber that falls behind loses the overflow.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)

# Pending messages per subscriber; further messages are dropped while full
SUBSCRIBER_QUEUE_SIZE = 256


class EventKind(str, Enum):
    project_created = "project-created"
    project_updated = "project-updated"
    project_deleted = "project-deleted"
    member_added = "member-added"
    member_removed = "member-removed"
    task_created = "task-created"
    task_updated = "task-updated"
    task_deleted = "task-deleted"
    comment_added = "comment-added"


# Broadcast to all connected clients rather than a project channel
GLOBAL_EVENTS = {EventKind.project_created, EventKind.project_deleted}


def channel_for(project_id: int) -> str:
    return str(project_id)


@dataclass(frozen=True)
class Event:
    kind: EventKind
    data: Dict[str, Any]
    project_id: Optional[int] = None

    def __post_init__(self):
        if self.kind not in GLOBAL_EVENTS and self.project_id is None:
            raise ValueError(f"Event '{self.kind.value}' must be scoped to a project")

    @property
    def channel(self) -> Optional[str]:
        """Channel name, or None for events broadcast to everyone."""
        if self.kind in GLOBAL_EVENTS:
            return None
        return channel_for(self.project_id)

    def message(self) -> Dict[str, Any]:
        return {"event": self.kind.value, "channel": self.channel, "data": self.data}


class EventPublisher(Protocol):
    """Port used by project and task operations to announce committed changes."""

    def publish(self, event: Event) -> None: ...


def emit(publisher: EventPublisher, event: Event) -> None:
    """Publish an event, logging and dropping any failure."""
    try:
        publisher.publish(event)
    except Exception as e:
        logger.warning(f"Dropped '{event.kind.value}' event for channel {event.channel}: {e}")


@dataclass(eq=False)
class Subscriber:
    websocket: WebSocket
    user_id: int
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue
    channels: Set[str] = field(default_factory=set)
    writer: Optional[asyncio.Task] = None


class ConnectionManager:
    """
    In-process EventPublisher backed by WebSocket connections.

    publish() may be called from any thread (sync route handlers run in a
    worker pool); delivery is handed to the subscriber's event loop.
    """

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self._subscribers: Set[Subscriber] = set()
        self._queue_size = queue_size
        self._lock = threading.Lock()

    async def connect(self, websocket: WebSocket, user_id: int) -> Subscriber:
        await websocket.accept()
        subscriber = Subscriber(
            websocket=websocket,
            user_id=user_id,
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        subscriber.writer = asyncio.create_task(self._drain(subscriber))
        with self._lock:
            self._subscribers.add(subscriber)
        logger.info(f"Subscriber connected for user {user_id} ({self.subscriber_count()} connected)")
        return subscriber

    async def disconnect(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.discard(subscriber)
        if subscriber.writer is not None and not subscriber.writer.done():
            subscriber.writer.cancel()
            try:
                await subscriber.writer
            except asyncio.CancelledError:
                pass
        logger.info(f"Subscriber disconnected for user {subscriber.user_id}")

    def join(self, subscriber: Subscriber, channel: str) -> None:
        with self._lock:
            subscriber.channels.add(channel)
        logger.debug(f"User {subscriber.user_id} joined channel {channel}")

    def leave(self, subscriber: Subscriber, channel: str) -> None:
        with self._lock:
            subscriber.channels.discard(channel)
        logger.debug(f"User {subscriber.user_id} left channel {channel}")

    def send(self, subscriber: Subscriber, message: Dict[str, Any]) -> None:
        """Queue a direct message behind any events already pending for this subscriber."""
        self._enqueue(subscriber, message)

    def publish(self, event: Event) -> None:
        message = event.message()
        channel = event.channel
        with self._lock:
            targets = [
                s for s in self._subscribers
                if channel is None or channel in s.channels
            ]
        logger.debug(f"Publishing '{event.kind.value}' to channel {channel} ({len(targets)} subscribers)")
        for subscriber in targets:
            self._enqueue(subscriber, message)

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        with self._lock:
            if channel is None:
                return len(self._subscribers)
            return sum(1 for s in self._subscribers if channel in s.channels)

    async def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            await self.disconnect(subscriber)

    def _enqueue(self, subscriber: Subscriber, message: Dict[str, Any]) -> None:
        if subscriber.writer is not None and subscriber.writer.done():
            logger.debug(f"Dropped message for user {subscriber.user_id}: writer stopped")
            with self._lock:
                self._subscribers.discard(subscriber)
            return
        try:
            subscriber.loop.call_soon_threadsafe(self._put, subscriber, message)
        except RuntimeError:
            # Subscriber's loop already closed
            logger.warning(f"Dropped message for user {subscriber.user_id}: connection loop closed")
            with self._lock:
                self._subscribers.discard(subscriber)

    def _put(self, subscriber: Subscriber, message: Dict[str, Any]) -> None:
        # Runs on the subscriber's loop
        try:
            subscriber.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                f"Dropped message for user {subscriber.user_id}: "
                f"{subscriber.queue.maxsize} messages already pending"
            )

    async def _drain(self, subscriber: Subscriber) -> None:
        while True:
            message = await subscriber.queue.get()
            try:
                await subscriber.websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Delivery to user {subscriber.user_id} failed, dropping subscriber: {e}")
                with self._lock:
                    self._subscribers.discard(subscriber)
                return


def get_fanout(request: Request) -> EventPublisher:
    """FastAPI dependency returning the application's event publisher."""
    return request.app.state.fanout
