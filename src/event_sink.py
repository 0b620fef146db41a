"""Outbound event delivery for session status and activity lines."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from .models import StatusEvent, ActivityLineEvent

logger = logging.getLogger(__name__)

SessionEvent = Union[StatusEvent, ActivityLineEvent]

# Events buffered per subscriber before it is dropped as lagging
SUBSCRIBER_QUEUE_SIZE = 5000


class EventSink(ABC):
    """Push interface the registry publishes normalized events through."""

    @abstractmethod
    def publish_status(self, event: StatusEvent) -> None:
        """Publish a status change."""

    @abstractmethod
    def publish_line(self, event: ActivityLineEvent) -> None:
        """Publish an activity line."""


class CallbackEventSink(EventSink):
    """Adapts two plain callables to the EventSink interface."""

    def __init__(
        self,
        on_status: Callable[[StatusEvent], None],
        on_line: Callable[[ActivityLineEvent], None],
    ):
        self.on_status = on_status
        self.on_line = on_line

    def publish_status(self, event: StatusEvent) -> None:
        self.on_status(event)

    def publish_line(self, event: ActivityLineEvent) -> None:
        self.on_line(event)


class EventSubscription:
    """
    One consumer's view of the event stream.

    Iterate with ``async for``; events arrive in publish order. Call
    ``close()`` (or use as an async context manager) to unsubscribe.

    A subscriber that falls more than ``maxsize`` events behind is closed;
    it still receives its backlog, then the end of the stream.
    """

    def __init__(
        self,
        broadcaster: "EventBroadcaster",
        session_id: Optional[str] = None,
        maxsize: int = SUBSCRIBER_QUEUE_SIZE,
    ):
        self.session_id = session_id
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def matches(self, event: SessionEvent) -> bool:
        return self.session_id is None or event.session_id == self.session_id

    def _deliver(self, event: SessionEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                f"Event subscriber (session={self.session_id or '*'}) lagging by {self._queue.maxsize} events, closing"
            )
            self.close()

    async def get(self, timeout: Optional[float] = None) -> Optional[SessionEvent]:
        """
        Wait for the next event.

        Returns:
            The event, or None if the subscription was closed

        Raises:
            asyncio.TimeoutError: If timeout elapses first
        """
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broadcaster._unsubscribe(self)
        # Wake a pending get(). A full queue has no pending get(), and get()
        # reports the closure once the backlog is drained.
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> SessionEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "EventSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventBroadcaster(EventSink):
    """Fans every published event out to any number of subscribers."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscriptions: list[EventSubscription] = []

    def subscribe(self, session_id: Optional[str] = None) -> EventSubscription:
        """Subscribe to all events, or only those of session_id."""
        subscription = EventSubscription(self, session_id, maxsize=self.queue_size)
        self._subscriptions.append(subscription)
        logger.debug(f"Event subscriber added (session={session_id or '*'}, total={len(self._subscriptions)})")
        return subscription

    def _unsubscribe(self, subscription: EventSubscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug(f"Event subscriber removed (total={len(self._subscriptions)})")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _broadcast(self, event: SessionEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription._deliver(event)

    def publish_status(self, event: StatusEvent) -> None:
        self._broadcast(event)

    def publish_line(self, event: ActivityLineEvent) -> None:
        self._broadcast(event)

    def close_all(self) -> None:
        """Close every subscription (server shutdown)."""
        for subscription in list(self._subscriptions):
            subscription.close()
