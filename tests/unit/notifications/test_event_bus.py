"""Tests for notification events, sinks and the event bus."""

import logging

from trustgate.notifications.bus import EventBus, InMemoryEventLog
from trustgate.notifications.events import NotificationEvent, NotificationSeverity, NotificationType
from trustgate.notifications.sink import CollectingSink, LoggingSink, NotificationSink


def _event(user_id="user_1", notification_type=NotificationType.NEW_DEVICE, **data):
    return NotificationEvent.build(user_id, notification_type, "Title", "Message", **data)


class BrokenSink(NotificationSink):
    def deliver(self, event):
        raise RuntimeError("smtp down")


class TestNotificationEvent:

    def test_default_severity_per_type(self):
        assert _event().severity == NotificationSeverity.INFO
        assert _event(notification_type=NotificationType.NEW_LOCATION).severity == NotificationSeverity.WARNING
        assert _event(notification_type=NotificationType.SECURITY_ALERT).severity == NotificationSeverity.CRITICAL

    def test_data_is_kept(self):
        event = _event(country="Japan", score=72.5)
        assert event.data == {"country": "Japan", "score": 72.5}
        assert event.event_id.startswith("evt_")


class TestEventLog:

    def test_newest_first_and_bounded(self):
        log = InMemoryEventLog(max_events=2)
        events = [_event(n=i) for i in range(3)]
        for event in events:
            log.append(event)

        assert [e.data["n"] for e in log.recent("user_1")] == [2, 1]
        assert len(log.recent("user_1", limit=1)) == 1

    def test_clear(self):
        log = InMemoryEventLog()
        log.append(_event())
        log.clear("user_1")
        assert log.recent("user_1") == []


class TestEventBus:

    def test_publish_reaches_sinks_log_and_subscribers(self):
        sink = CollectingSink()
        bus = EventBus(sinks=[sink])
        received = []
        bus.subscribe(received.append, user_id="user_1")

        delivered = bus.publish(_event())

        assert delivered == 1
        assert len(sink.events) == 1
        assert received == sink.events
        assert bus.recent_events("user_1") == sink.events

    def test_subscribers_filtered_by_user(self):
        bus = EventBus(sinks=[])
        mine, everyone = [], []
        bus.subscribe(mine.append, user_id="user_2")
        bus.subscribe(everyone.append)

        bus.publish(_event(user_id="user_1"))

        assert mine == []
        assert len(everyone) == 1
        assert bus.subscriber_count() == 2
        assert bus.subscriber_count("user_1") == 1

    def test_cancelled_subscription_stops_receiving(self):
        bus = EventBus(sinks=[])
        received = []
        subscription = bus.subscribe(received.append)
        subscription.cancel()

        assert bus.publish(_event()) == 0
        assert received == []

    def test_failing_sink_and_subscriber_do_not_affect_publisher(self):
        collecting = CollectingSink()
        bus = EventBus(sinks=[BrokenSink(), collecting])
        received = []

        def broken(event):
            raise ValueError("bad subscriber")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        assert bus.publish(_event()) == 1
        assert len(collecting.events) == 1
        assert len(received) == 1

    def test_logging_sink_is_default(self, caplog):
        bus = EventBus()
        with caplog.at_level(logging.INFO, logger="trustgate.notifications.sink"):
            bus.publish(_event(notification_type=NotificationType.SUSPICIOUS_ACTIVITY))

        assert isinstance(bus.sinks[0], LoggingSink)
        assert "[suspicious_activity] Title: Message" in caplog.text
        assert caplog.records[0].levelno == logging.WARNING
