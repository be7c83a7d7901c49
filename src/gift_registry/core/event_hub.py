"""Live event fan-out to per-inventory subscribers."""

from __future__ import annotations

import asyncio
import json
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import AsyncIterator
from uuid import UUID, uuid4

import structlog

from gift_registry.core.errors import Result
from gift_registry.core.models import DomainEvent, User

logger = structlog.get_logger()


class StreamClosedError(Exception):
    """Raised when a message cannot be delivered to a subscriber stream."""

    pass


@dataclass(frozen=True)
class StreamMessage:
    """One named event with its JSON payload."""

    event: str
    data: dict


def format_sse(message: StreamMessage) -> str:
    """Render a message as a text/event-stream frame."""
    return f"event: {message.event}\ndata: {json.dumps(message.data)}\n\n"


@dataclass(eq=False)
class SubscriberStream:
    """Channel between the hub (producer) and one transport connection (consumer).

    The hub writes with ``send`` from any thread; the transport consumes
    ``listen`` on its event loop. A stream whose buffer fills up is treated
    as dead, so a stalled consumer never blocks delivery to anyone else.
    """

    inventory_id: UUID
    user_id: UUID
    max_pending: int = 100
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        self._queue: queue.Queue[StreamMessage] = queue.Queue(maxsize=self.max_pending)
        self._closed = threading.Event()
        self._waker: tuple[asyncio.AbstractEventLoop, asyncio.Event] | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: str, data: dict) -> None:
        """Enqueue a message without blocking.

        Raises:
            StreamClosedError: If the stream is closed or its buffer is full
        """
        if self._closed.is_set():
            raise StreamClosedError(f"stream {self.id} is closed")
        try:
            self._queue.put_nowait(StreamMessage(event, data))
        except queue.Full:
            raise StreamClosedError(f"stream {self.id} is not draining")
        self._wake()

    def close(self) -> None:
        self._closed.set()
        self._wake()

    def _wake(self) -> None:
        waker = self._waker
        if waker is None:
            return
        loop, ready = waker
        try:
            loop.call_soon_threadsafe(ready.set)
        except RuntimeError:
            # Consumer's event loop is gone
            self._closed.set()

    async def listen(self, poll_seconds: float = 1.0) -> AsyncIterator[list[StreamMessage]]:
        """Yield batches of queued messages until the stream is closed.

        Waits on the running event loop, never on a worker thread. While idle
        an empty batch is yielded every ``poll_seconds`` so the consumer can
        check on its connection.
        """
        ready = asyncio.Event()
        self._waker = (asyncio.get_running_loop(), ready)
        try:
            while not self._closed.is_set():
                ready.clear()
                batch = self.drain()
                if batch:
                    yield batch
                    continue
                try:
                    await asyncio.wait_for(ready.wait(), poll_seconds)
                except asyncio.TimeoutError:
                    yield []
        finally:
            self._waker = None

    def drain(self) -> list[StreamMessage]:
        """Return every message queued so far without waiting."""
        drained = []
        while True:
            try:
                drained.append(self._queue.get_nowait())
            except queue.Empty:
                return drained


class EventBroadcastHub:
    """Process-wide registry of live subscriptions.

    The lock guards only the subscriber map and the per-user counters.
    Delivery always works on a snapshot taken under the lock, so a slow
    subscriber never holds it.
    """

    def __init__(
        self,
        max_connections_per_user: int = 5,
        max_pending_messages: int = 100,
        heartbeat_interval_seconds: float = 30.0,
        stream_poll_seconds: float = 1.0,
    ):
        self.max_connections_per_user = max_connections_per_user
        self.max_pending_messages = max_pending_messages
        self.heartbeat_interval_seconds = heartbeat_interval_seconds
        self.stream_poll_seconds = stream_poll_seconds
        self._lock = threading.Lock()
        self._streams_by_inventory: dict[UUID, list[SubscriberStream]] = {}
        self._connections_by_user: dict[UUID, int] = {}
        self._heartbeat: HeartbeatTask | None = None

    # Lifecycle

    def start(self) -> None:
        """Start the periodic heartbeat sweep."""
        if self._heartbeat is not None:
            return
        self._heartbeat = HeartbeatTask(self, self.heartbeat_interval_seconds)
        self._heartbeat.start()
        logger.info("event_hub_started", heartbeat_interval=self.heartbeat_interval_seconds)

    def stop(self) -> None:
        """Stop the heartbeat and close every open subscription."""
        if self._heartbeat is not None:
            self._heartbeat.stop()
            self._heartbeat = None

        with self._lock:
            streams = [s for entries in self._streams_by_inventory.values() for s in entries]
        for stream in streams:
            self.unsubscribe(stream)
        logger.info("event_hub_stopped", closed_streams=len(streams))

    # Subscriptions

    def subscribe(self, inventory_id: UUID, user: User) -> Result[SubscriberStream]:
        """Register a live stream for the user on an inventory.

        Fails with CONFLICT when the user already holds the maximum number of
        concurrent streams across all inventories.
        """
        with self._lock:
            current = self._connections_by_user.get(user.id, 0)
            if current >= self.max_connections_per_user:
                logger.warning(
                    "subscription_rejected",
                    user_id=str(user.id),
                    inventory_id=str(inventory_id),
                    connections=current,
                )
                return Result.conflict(
                    "Too many active connections",
                    f"User: {user.id}, Connections: {current}",
                )
            stream = SubscriberStream(inventory_id, user.id, self.max_pending_messages)
            self._streams_by_inventory.setdefault(inventory_id, []).append(stream)
            self._connections_by_user[user.id] = current + 1

        try:
            stream.send("connected", {"inventoryId": str(inventory_id)})
        except StreamClosedError:
            self.unsubscribe(stream)

        logger.info(
            "subscription_created",
            inventory_id=str(inventory_id),
            user_id=str(user.id),
            stream_id=str(stream.id),
        )
        return Result.success(stream)

    def unsubscribe(self, stream: SubscriberStream) -> bool:
        """Remove a stream and release its user's connection slot.

        Idempotent: only the first call for a given stream has any effect.
        Returns whether the stream was registered.
        """
        stream.close()
        with self._lock:
            entries = self._streams_by_inventory.get(stream.inventory_id)
            if not entries or stream not in entries:
                return False
            entries.remove(stream)
            if not entries:
                del self._streams_by_inventory[stream.inventory_id]

            remaining = self._connections_by_user.get(stream.user_id, 0) - 1
            if remaining > 0:
                self._connections_by_user[stream.user_id] = remaining
            else:
                self._connections_by_user.pop(stream.user_id, None)

        logger.debug(
            "subscription_removed",
            inventory_id=str(stream.inventory_id),
            user_id=str(stream.user_id),
            stream_id=str(stream.id),
        )
        return True

    # Delivery

    def publish(self, event: DomainEvent) -> int:
        """Deliver an event to every subscriber of its inventory.

        Subscribers whose delivery fails are removed; the failure never
        reaches the publisher. Returns the number of successful deliveries.
        """
        with self._lock:
            streams = list(self._streams_by_inventory.get(event.inventory_id, ()))
        if not streams:
            return 0

        delivered = self._deliver(streams, event.name, event.payload())
        logger.debug(
            "event_published",
            event_type=event.type.value,
            inventory_id=str(event.inventory_id),
            subscribers=delivered,
        )
        return delivered

    def heartbeat(self) -> int:
        """Send a heartbeat to every subscription, reaping the dead ones.

        Returns the number of subscriptions removed.
        """
        with self._lock:
            streams = [s for entries in self._streams_by_inventory.values() for s in entries]
        if not streams:
            return 0

        delivered = self._deliver(streams, "heartbeat", {"timestamp": time.time_ns() // 1_000_000})
        removed = len(streams) - delivered
        logger.debug("heartbeat_sweep", subscribers=len(streams), removed=removed)
        return removed

    def _deliver(self, streams: list[SubscriberStream], name: str, data: dict) -> int:
        delivered = 0
        for stream in streams:
            try:
                stream.send(name, data)
            except StreamClosedError as e:
                logger.debug("delivery_failed", stream_id=str(stream.id), error=str(e))
                self.unsubscribe(stream)
            else:
                delivered += 1
        return delivered

    # Introspection

    def connection_count(self, user_id: UUID) -> int:
        with self._lock:
            return self._connections_by_user.get(user_id, 0)

    def subscriber_count(self, inventory_id: UUID) -> int:
        with self._lock:
            return len(self._streams_by_inventory.get(inventory_id, ()))


class HeartbeatTask:
    """Background thread calling ``hub.heartbeat()`` at a fixed interval."""

    def __init__(self, hub: EventBroadcastHub, interval_seconds: float):
        self._hub = hub
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="event-hub-heartbeat", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._hub.heartbeat()
            except Exception:
                logger.exception("heartbeat_sweep_failed")
