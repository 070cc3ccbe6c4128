"""Notifications - structured security events and their delivery."""

from trustgate.notifications.events import (
    NotificationEvent,
    NotificationSeverity,
    NotificationType,
)
from trustgate.notifications.sink import CollectingSink, LoggingSink, NotificationSink
from trustgate.notifications.bus import EventBus, EventLog, InMemoryEventLog, Subscription

__all__ = [
    "NotificationEvent",
    "NotificationSeverity",
    "NotificationType",
    "NotificationSink",
    "LoggingSink",
    "CollectingSink",
    "EventBus",
    "EventLog",
    "InMemoryEventLog",
    "Subscription",
]
