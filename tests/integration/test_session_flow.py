"""
Integration tests for a user's session lifecycle.

A user signs in from three countries in half an hour; the engine must
notify, surface the conflict, resolve it, and finally sweep what is left.
"""

import json
from datetime import timedelta

from trustgate.anomaly.detector import AnomalyDetector
from trustgate.anomaly.schema import AnomalyType, ConflictGroupType, ResolutionStrategy
from trustgate.lifecycle.schema import CreateSessionRequest, SessionDecision
from trustgate.lifecycle.sweeper import SessionSweeper
from trustgate.notifications.events import NotificationType

from fixtures.sessions import (
    BERLIN,
    CHROME_WINDOWS_UA,
    NEW_YORK,
    NOW,
    SAFARI_IPAD_UA,
    SAFARI_IPHONE_UA,
    TOKYO,
)


def _login(manager, ip_address, user_agent, at):
    return manager.create_session(
        CreateSessionRequest(user_id="user_1", ip_address=ip_address, user_agent=user_agent),
        now=at,
    )


class TestMultiCountrySessionFlow:

    def test_full_flow(self, manager, store, sink):
        home = _login(manager, NEW_YORK.ip_address, CHROME_WINDOWS_UA, NOW - timedelta(minutes=30))
        assert home.decision == SessionDecision.ALLOW
        assert home.notifications == []

        phone = _login(manager, TOKYO.ip_address, SAFARI_IPHONE_UA, NOW - timedelta(minutes=20))
        assert phone.decision != SessionDecision.DENY
        # device notification wins over location
        assert phone.notifications[0] == NotificationType.NEW_DEVICE
        assert phone.risk.has_factor("impossible_travel")

        tablet = _login(manager, BERLIN.ip_address, SAFARI_IPAD_UA, NOW - timedelta(minutes=10))
        assert tablet.decision != SessionDecision.DENY
        assert NotificationType.SECURITY_ALERT in tablet.notifications
        assert any(e.notification_type == NotificationType.SECURITY_ALERT for e in sink.events)

        manager.log_activity(home.session.session_id, "view_dashboard", now=NOW - timedelta(minutes=5))

        anomalies = AnomalyDetector(store).detect_anomalies("user_1", now=NOW)
        assert AnomalyType.MULTIPLE_COUNTRIES in [a.anomaly_type for a in anomalies]

        conflicts = AnomalyDetector(store).detect_conflicts("user_1", now=NOW)
        concurrent = [c for c in conflicts if c.conflict_type == ConflictGroupType.CONCURRENT_LOCATION]
        assert len(concurrent) == 1
        assert concurrent[0].session_ids[0] == home.session.session_id

        result = manager.auto_resolve_conflicts("user_1", ResolutionStrategy.KEEP_NEWEST, now=NOW)

        assert sorted(result.deleted_session_ids) == sorted(
            [phone.session.session_id, tablet.session.session_id]
        )
        remaining = manager.get_user_sessions("user_1", NOW)
        assert [s.session_id for s in remaining] == [home.session.session_id]

        assert manager.validate_session(home.session.session_id, now=NOW).valid is True
        assert manager.validate_session(phone.session.session_id, now=NOW).valid is False

        exported = json.loads(manager.export_sessions("user_1", "json", now=NOW))
        assert [row["session_id"] for row in exported] == [home.session.session_id]

        swept = SessionSweeper(store, clock=lambda: NOW + timedelta(hours=3)).run_once()
        assert swept.expired_session_ids == [home.session.session_id]
        assert store.list_sessions_for_user("user_1") == []

    def test_returning_user_gains_trust(self, manager):
        levels = []
        for days_ago in (30, 20, 10, 1):
            result = _login(manager, NEW_YORK.ip_address, CHROME_WINDOWS_UA, NOW - timedelta(days=days_ago))
            levels.append(result.session.trust_level)

        # three earlier logins over more than a week
        assert levels == [0, 0, 0, 1]
