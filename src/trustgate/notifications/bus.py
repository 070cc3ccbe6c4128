"""Event bus - publish/subscribe delivery of notification events.

Subscribers register callbacks per user (or for every user). Each
published event is appended to the injected EventLog, handed to the
sinks and then to subscribers. A failing sink or subscriber is logged
and never affects the publisher.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, List, Optional, Sequence

from trustgate.common.constants import NotificationConstants
from trustgate.notifications.events import NotificationEvent
from trustgate.notifications.sink import LoggingSink, NotificationSink


logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationEvent], None]


class EventLog(ABC):
    """Per-user record of recent notification events."""

    @abstractmethod
    def append(self, event: NotificationEvent) -> None:
        ...

    @abstractmethod
    def recent(self, user_id: str, limit: Optional[int] = None) -> List[NotificationEvent]:
        """Newest first."""
        ...

    @abstractmethod
    def clear(self, user_id: str) -> None:
        ...


class InMemoryEventLog(EventLog):
    """Bounded per-user event log (oldest events fall off)."""

    def __init__(self, max_events: int = NotificationConstants.EVENT_LOG_SIZE):
        self.max_events = max_events
        self._events: Dict[str, Deque[NotificationEvent]] = defaultdict(
            lambda: deque(maxlen=self.max_events)
        )
        self._lock = threading.Lock()

    def append(self, event: NotificationEvent) -> None:
        with self._lock:
            self._events[event.user_id].append(event)

    def recent(self, user_id: str, limit: Optional[int] = None) -> List[NotificationEvent]:
        with self._lock:
            events = list(reversed(self._events.get(user_id, ())))
        return events[:limit] if limit is not None else events

    def clear(self, user_id: str) -> None:
        with self._lock:
            self._events.pop(user_id, None)


class Subscription:
    """Handle returned by EventBus.subscribe; call cancel() to stop receiving."""

    def __init__(self, bus: "EventBus", user_id: Optional[str], callback: Subscriber):
        self._bus = bus
        self.user_id = user_id
        self.callback = callback

    def cancel(self) -> None:
        self._bus.unsubscribe(self)


class EventBus:
    """Publish/subscribe channel for notification events."""

    def __init__(
        self,
        event_log: Optional[EventLog] = None,
        sinks: Optional[Sequence[NotificationSink]] = None,
    ):
        self.event_log = event_log or InMemoryEventLog()
        self.sinks: List[NotificationSink] = list(sinks) if sinks is not None else [LoggingSink()]
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber, user_id: Optional[str] = None) -> Subscription:
        """Register a callback for one user's events, or all events when user_id is None."""
        subscription = Subscription(self, user_id, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self, user_id: Optional[str] = None) -> int:
        with self._lock:
            if user_id is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.user_id in (None, user_id))

    def publish(self, event: NotificationEvent) -> int:
        """Record and deliver an event.

        Returns:
            Number of subscribers that received the event without error
        """
        self.event_log.append(event)

        for sink in self.sinks:
            try:
                sink.deliver(event)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}", exc_info=True)

        with self._lock:
            targets = [s for s in self._subscriptions if s.user_id in (None, event.user_id)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Notification subscriber failed for {event.user_id}: {e}", exc_info=True)
        return delivered

    def recent_events(self, user_id: str, limit: Optional[int] = None) -> List[NotificationEvent]:
        return self.event_log.recent(user_id, limit)
