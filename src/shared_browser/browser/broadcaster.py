"""In-memory fan-out of session events to event-stream subscribers.

Delivery is best-effort: each subscriber has its own unbounded queue, sees
events in publish order, and gets nothing published before it subscribed.
A slow subscriber only grows its own backlog.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from shared_browser.browser.events import PageConsoleEvent, SessionEvent

logger = logging.getLogger(__name__)

# Structured event records go through their own logger so the JSON log file
# carries one line per event.
event_logger = logging.getLogger('shared_browser.events')

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
}

_CLOSED = object()


@dataclass(frozen=True)
class ConsoleSuppressionRule:
    """Mutes console messages containing ``text`` from the event stream."""

    text: str

    def matches(self, event: SessionEvent) -> bool:
        return isinstance(event, PageConsoleEvent) and self.text in event.text


class Subscription:
    """One event-stream connection's view of the broadcast."""

    def __init__(self, broadcaster: 'EventBroadcaster', subscriber_id: int):
        self.id = subscriber_id
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            item = await self.get()
            if item is None:
                return
            yield item

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def deliver(self, payload: dict[str, Any]) -> None:
        if not self.closed:
            self._queue.put_nowait(payload)

    async def get(self) -> dict[str, Any] | None:
        """Next event payload, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Detach from the broadcaster and end iteration."""
        if self.closed:
            return
        self.closed = True
        self._broadcaster._remove(self)
        self._queue.put_nowait(_CLOSED)


class EventBroadcaster:
    """Publishes session events to every live subscriber."""

    def __init__(self, suppression: ConsoleSuppressionRule | None = None):
        self.suppression = suppression
        self._subscribers: dict[int, Subscription] = {}
        self._next_id = 1

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._next_id)
        self._next_id += 1
        self._subscribers[subscription.id] = subscription
        logger.debug(f'Event subscriber {subscription.id} connected ({self.subscriber_count} total)')
        return subscription

    def publish(self, event: SessionEvent) -> None:
        """Log ``event`` and push it to every subscriber.

        Synchronous so driver callbacks can call it directly.
        """
        fields = event.log_fields()
        if self.suppression is not None and self.suppression.matches(event):
            event_logger.debug(f'{event.type} (suppressed)', extra={**fields, 'suppressed': True})
            return

        event_logger.log(_LEVELS.get(event.level, logging.INFO), event.type, extra=fields)

        payload = event.to_wire()
        for subscription in list(self._subscribers.values()):
            subscription.deliver(payload)

    def close(self) -> None:
        """End every subscription (server shutdown)."""
        for subscription in list(self._subscribers.values()):
            subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.debug(f'Event subscriber {subscription.id} disconnected ({self.subscriber_count} left)')
