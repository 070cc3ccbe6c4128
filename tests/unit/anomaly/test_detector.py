"""Tests for session comparison, conflict grouping and anomaly detection."""

from datetime import timedelta

import pytest

from trustgate.anomaly.detector import (
    AnomalyDetector,
    analyze_behavioral_patterns,
    compare_all_sessions,
    compare_sessions,
    detect_anomalies,
    detect_conflict_groups,
    detect_takeover_candidates,
    find_duplicate_sessions,
    severity_for_score,
)
from trustgate.anomaly.schema import AnomalyType, ConflictGroupType, ConflictType
from trustgate.data.schemas import DeviceType, SessionActivity
from trustgate.data.schemas.risk import Severity

from fixtures.sessions import NOW, make_session


def _tokyo(**overrides):
    values = dict(country="Japan", city="Tokyo", ip_address="133.242.5.20")
    values.update(overrides)
    return make_session(**values)


def _iphone(**overrides):
    values = dict(
        device_name="Apple iPhone",
        device_type=DeviceType.MOBILE,
        browser="Mobile Safari",
        os="iOS",
    )
    values.update(overrides)
    return make_session(**values)


class TestCompareSessions:

    def test_identical_sessions_are_duplicates(self):
        comparison = compare_sessions(make_session(), make_session())
        assert comparison.similarity == 100
        assert comparison.differences == []
        assert comparison.conflict_type == ConflictType.DUPLICATE

    def test_concurrent_countries_are_location_mismatch(self):
        home = make_session()
        abroad = _tokyo(created_at=NOW - timedelta(minutes=10))

        comparison = compare_sessions(home, abroad)

        # country 20 + city 10 + ip 15
        assert comparison.similarity == 55
        assert [d.field for d in comparison.differences] == ["Country", "City", "IP Address"]
        assert comparison.conflict is True
        assert comparison.conflict_type == ConflictType.LOCATION_MISMATCH
        assert "different countries" in comparison.recommendation

    def test_unknown_country_is_a_location_difference(self):
        home = make_session()
        unresolved = make_session(country=None, city=None, ip_address="8.8.8.8",
                                  created_at=NOW - timedelta(minutes=10))

        comparison = compare_sessions(home, unresolved)

        assert comparison.similarity == 55
        assert comparison.conflict_type == ConflictType.LOCATION_MISMATCH

    def test_two_unknown_countries_do_not_conflict(self):
        a = make_session(country=None, city=None, ip_address="8.8.8.8")
        b = make_session(country=None, city=None, ip_address="8.8.4.4")

        comparison = compare_sessions(a, b)

        assert comparison.similarity == 85
        assert comparison.conflict is False

    def test_only_ip_differs_is_normal(self):
        comparison = compare_sessions(make_session(), make_session(ip_address="74.125.20.99"))
        assert comparison.similarity == 85
        assert comparison.conflict is False
        assert comparison.conflict_type is None
        assert comparison.recommendation == "Sessions appear normal"

    def test_new_device_abroad_with_low_trust_is_takeover(self):
        trusted = make_session(trust_level=2, created_at=NOW - timedelta(days=3))
        intruder = _iphone(country="Japan", city="Tokyo", ip_address="133.242.5.20")

        comparison = compare_sessions(trusted, intruder)

        assert comparison.similarity == 0
        assert comparison.differences[-1].field == "Trust Level"
        assert comparison.conflict_type == ConflictType.TAKEOVER

    def test_different_device_and_city_is_shared_account(self):
        desktop = make_session()
        phone = _iphone(city="Boston", ip_address="74.125.30.1")

        comparison = compare_sessions(desktop, phone)

        assert comparison.similarity == 30
        assert comparison.conflict_type == ConflictType.SHARED_ACCOUNT

    def test_trust_gap_penalized(self):
        comparison = compare_sessions(make_session(trust_level=0), make_session(trust_level=2))
        assert comparison.similarity == 90
        assert [d.field for d in comparison.differences] == ["Trust Level"]

    def test_small_trust_gap_ignored(self):
        comparison = compare_sessions(make_session(trust_level=1), make_session(trust_level=2))
        assert comparison.similarity == 100

    def test_similarity_is_symmetric(self):
        a = make_session(trust_level=2)
        b = _iphone(country="Japan", city="Tokyo", ip_address="133.242.5.20")
        assert compare_sessions(a, b).similarity == compare_sessions(b, a).similarity
        assert compare_sessions(a, b).conflict_type == compare_sessions(b, a).conflict_type

    def test_compare_all_returns_conflicting_pairs_only(self):
        home = make_session()
        office = make_session(ip_address="74.125.20.99")
        abroad = _tokyo(created_at=NOW - timedelta(minutes=10))

        comparisons = compare_all_sessions([home, office, abroad])

        assert len(comparisons) == 2
        assert {c.conflict_type for c in comparisons} == {ConflictType.LOCATION_MISMATCH}


class TestDetectAnomalies:

    def test_more_than_two_countries(self):
        sessions = [
            make_session(created_at=NOW - timedelta(hours=1)),
            _tokyo(created_at=NOW - timedelta(hours=2)),
            make_session(country="Germany", city="Berlin", created_at=NOW - timedelta(hours=3)),
        ]
        anomalies = detect_anomalies(sessions, NOW)
        assert [a.anomaly_type for a in anomalies] == [AnomalyType.MULTIPLE_COUNTRIES]
        assert anomalies[0].severity == Severity.HIGH
        assert len(anomalies[0].session_ids) == 3

    def test_two_countries_is_not_anomalous(self):
        sessions = [make_session(created_at=NOW - timedelta(hours=1)), _tokyo(created_at=NOW - timedelta(hours=2))]
        assert detect_anomalies(sessions, NOW) == []

    def test_rapid_logins(self):
        sessions = [make_session(created_at=NOW - timedelta(minutes=m)) for m in (1, 2, 3)]
        anomalies = detect_anomalies(sessions, NOW)
        assert [a.anomaly_type for a in anomalies] == [AnomalyType.RAPID_LOGIN]
        assert anomalies[0].description == "3 sessions created in last 10 minutes"

    def test_flagged_sessions(self):
        sessions = [
            make_session(created_at=NOW - timedelta(hours=1), is_suspicious=True),
            make_session(created_at=NOW - timedelta(hours=2)),
        ]
        anomalies = detect_anomalies(sessions, NOW)
        assert anomalies[0].anomaly_type == AnomalyType.SUSPICIOUS_ACTIVITY
        assert anomalies[0].severity == Severity.MEDIUM
        assert anomalies[0].session_ids == [sessions[0].session_id]


class TestDuplicates:

    def test_same_device_and_ip_grouped(self):
        a = make_session()
        b = make_session()
        other = make_session(ip_address="74.125.20.99")

        groups = find_duplicate_sessions([a, b, other])

        assert len(groups) == 1
        assert groups[0].session_ids == [a.session_id, b.session_id]
        assert groups[0].reason == "Multiple sessions from same device and IP: Windows desktop-74.125.20.7"

    def test_no_duplicates(self):
        assert find_duplicate_sessions([make_session(), make_session(ip_address="74.125.20.99")]) == []


class TestTakeover:

    @pytest.mark.parametrize("score,expected", [
        (0, Severity.LOW),
        (29, Severity.LOW),
        (30, Severity.MEDIUM),
        (50, Severity.HIGH),
        (70, Severity.CRITICAL),
        (135, Severity.CRITICAL),
    ])
    def test_severity_bands(self, score, expected):
        assert severity_for_score(score) == expected

    def test_single_session_has_no_candidates(self):
        assert detect_takeover_candidates([make_session()], NOW) == []

    def test_scores_against_most_trusted_session(self):
        trusted = make_session(trust_level=2, created_at=NOW - timedelta(days=3))
        night = make_session(trust_level=1, created_at=(NOW - timedelta(days=1)).replace(hour=2))
        intruder = _iphone(
            country="Japan",
            city="Tokyo",
            ip_address="133.242.5.20",
            created_at=NOW - timedelta(minutes=10),
            is_suspicious=True,
        )

        candidates = detect_takeover_candidates([trusted, night, intruder], NOW)

        assert [c.session_id for c in candidates] == [intruder.session_id, night.session_id]
        assert {c.baseline_session_id for c in candidates} == {trusted.session_id}

        worst = candidates[0]
        # 30 + 25 + 20 + 30
        assert worst.score == 105
        assert worst.severity == Severity.CRITICAL
        assert worst.recommendation.startswith("Terminate")
        assert "Completely different IP range" in worst.indicators

        assert candidates[1].indicators == ["Login at unusual time compared to normal pattern"]
        assert candidates[1].severity == Severity.LOW
        assert candidates[1].recommendation.startswith("Monitor")

    def test_consistent_sessions_are_not_candidates(self):
        trusted = make_session(trust_level=2, created_at=NOW - timedelta(days=3))
        sibling = make_session(trust_level=1, created_at=NOW - timedelta(days=1))
        assert detect_takeover_candidates([trusted, sibling], NOW) == []


class TestConflictGroups:

    def test_concurrent_locations_form_connected_component(self):
        us = make_session(device_name="Laptop", last_activity_at=NOW, created_at=NOW - timedelta(hours=3))
        jp = _tokyo(device_name="Phone", last_activity_at=NOW - timedelta(minutes=50),
                    created_at=NOW - timedelta(hours=3))
        de = make_session(country="Germany", city="Berlin", ip_address="85.214.132.44", device_name="Tablet",
                          last_activity_at=NOW - timedelta(minutes=100), created_at=NOW - timedelta(hours=3))

        groups = detect_conflict_groups([de, us, jp])

        # us-de are 100 minutes apart but linked through jp
        assert len(groups) == 1
        assert groups[0].conflict_type == ConflictGroupType.CONCURRENT_LOCATION
        assert groups[0].severity == Severity.HIGH
        assert groups[0].session_ids == [us.session_id, jp.session_id, de.session_id]

    def test_same_device_from_different_ips(self):
        a = make_session(last_activity_at=NOW, created_at=NOW - timedelta(hours=2))
        b = make_session(ip_address="74.125.20.99", created_at=NOW - timedelta(hours=2))

        groups = detect_conflict_groups([b, a])

        assert len(groups) == 1
        assert groups[0].conflict_type == ConflictGroupType.DUPLICATE_DEVICE
        assert groups[0].severity == Severity.MEDIUM
        assert groups[0].session_ids == [a.session_id, b.session_id]

    def test_same_device_same_ip_is_not_conflict(self):
        assert detect_conflict_groups([make_session(), make_session()]) == []


class TestBehavioralPatterns:

    def _activity(self, session, minutes):
        return SessionActivity(
            session_id=session.session_id,
            user_id=session.user_id,
            action="request",
            timestamp=session.created_at + timedelta(minutes=minutes),
        )

    def test_habits(self):
        sessions = [
            make_session(created_at=(NOW - timedelta(days=d)).replace(hour=h))
            for d, h in ((1, 9), (2, 10), (3, 11))
        ]
        activities = {sessions[0].session_id: [self._activity(sessions[0], 30), self._activity(sessions[0], 0)]}

        pattern = analyze_behavioral_patterns("user_1", sessions, activities)

        assert pattern.total_sessions == 3
        assert pattern.typical_login_hour == 10
        assert pattern.primary_device == "Windows desktop"
        assert pattern.locations == ["New York, United States"]
        assert pattern.avg_session_duration_minutes == 10
        assert pattern.avg_activities_per_session == pytest.approx(0.7)
        assert not pattern.has_anomalies

    def test_anomalous_habits(self):
        places = [("Japan", "Tokyo"), ("Germany", "Berlin"), ("France", "Paris"), ("Spain", "Madrid")]
        sessions = [
            make_session(country=country, city=city, is_suspicious=i < 2,
                         created_at=NOW - timedelta(days=i + 1))
            for i, (country, city) in enumerate(places)
        ]

        pattern = analyze_behavioral_patterns("user_1", sessions)

        assert "Multiple locations: 4 different locations" in pattern.anomalies
        assert "High suspicious activity rate: 50.0%" in pattern.anomalies

    def test_no_sessions(self):
        pattern = analyze_behavioral_patterns("user_1", [])
        assert pattern.total_sessions == 0
        assert pattern.primary_device is None


class TestAnomalyDetector:

    def test_compare_missing_session_is_none(self, store):
        session = make_session()
        store.insert_session_with_cap(session, 5)
        assert AnomalyDetector(store).compare_sessions(session.session_id, "sess_missing") is None

    def test_only_active_sessions_considered(self, store):
        live = [make_session(created_at=NOW - timedelta(minutes=m)) for m in (1, 2)]
        expired = make_session(created_at=NOW - timedelta(days=2))
        for session in live + [expired]:
            store.insert_session_with_cap(session, 5)

        detector = AnomalyDetector(store)

        assert {s.session_id for s in detector.active_sessions("user_1", NOW)} == {s.session_id for s in live}
        assert detector.detect_anomalies("user_1", NOW) == []

    def test_behavioral_patterns_from_store(self, store):
        session = make_session(created_at=NOW - timedelta(days=2))
        store.insert_session_with_cap(session, 5)
        store.add_activity(SessionActivity(
            session_id=session.session_id,
            user_id="user_1",
            action="login",
            timestamp=session.created_at,
        ))

        pattern = AnomalyDetector(store).analyze_behavioral_patterns("user_1", days=30, now=NOW)

        assert pattern.total_sessions == 1
        assert pattern.avg_activities_per_session == 1.0
