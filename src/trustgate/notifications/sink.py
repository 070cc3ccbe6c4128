"""Notification sinks - where emitted events are delivered."""

import logging
from abc import ABC, abstractmethod
from typing import List

from trustgate.notifications.events import NotificationEvent, NotificationSeverity


logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Delivery collaborator for notification events."""

    @abstractmethod
    def deliver(self, event: NotificationEvent) -> None:
        ...


class LoggingSink(NotificationSink):
    """Writes every event to the log; critical events at WARNING."""

    def deliver(self, event: NotificationEvent) -> None:
        level = logging.WARNING if event.severity == NotificationSeverity.CRITICAL else logging.INFO
        logger.log(
            level,
            f"[{event.notification_type.value}] {event.title}: {event.message}",
            extra={"user_id": event.user_id, "session_id": event.session_id},
        )


class CollectingSink(NotificationSink):
    """Keeps delivered events in memory."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def deliver(self, event: NotificationEvent) -> None:
        self.events.append(event)
