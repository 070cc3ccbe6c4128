"""Tests for weighted risk scoring.

Tests each factor rule in isolation, the aggregate thresholds and the
store-backed RiskScorer.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import requests

from trustgate.data.schemas import ExternalSignal, RiskLevel, SessionActivity
from trustgate.risk.recommendations import generate_recommendations
from trustgate.risk.scorer import (
    FACTOR_WEIGHTS,
    RiskContext,
    RiskRequest,
    RiskScorer,
    risk_level_for,
    sanitize_history,
    score_risk,
)
from trustgate.risk.vpn import IpApiProxyDetector, PatternVpnDetector, VpnDetector

from fixtures.sessions import NOW, make_session


def _ctx(**overrides) -> RiskContext:
    values = dict(
        user_id="user_1",
        ip_address="74.125.20.7",
        country="United States",
        city="New York",
        is_new_device=False,
        is_new_location=False,
        now=NOW,
    )
    values.update(overrides)
    return RiskContext(**values)


class NoVpn(VpnDetector):
    def check(self, ip, deadline=None):
        return ExternalSignal.available("vpn_proxy", False, source="test")


class TestFactorRules:

    def test_clean_context_scores_zero(self):
        assessment = score_risk(_ctx())
        assert assessment.factors == []
        assert assessment.total_score == 0
        assert assessment.risk_level == RiskLevel.LOW

    def test_new_device_without_history(self):
        factor = score_risk(_ctx(is_new_device=True)).factors[0]
        assert factor.kind == "new_device"
        assert factor.score == 20

    def test_new_device_with_prior_devices(self):
        assessment = score_risk(_ctx(is_new_device=True, history=[make_session(created_at=NOW - timedelta(days=3))]))
        assert assessment.factors[0].score == 40
        assert assessment.total_score == pytest.approx(6.0)

    def test_new_country(self):
        history = [make_session(country="Germany", city="Berlin", created_at=NOW - timedelta(days=3))]
        assessment = score_risk(_ctx(is_new_location=True, history=history))
        assert assessment.fired_kinds == ["new_country"]
        assert assessment.factors[0].known_countries == ["Germany"]

    def test_new_city_when_country_known(self):
        history = [make_session(city="Boston", created_at=NOW - timedelta(days=3))]
        assessment = score_risk(_ctx(is_new_location=True, history=history))
        assert assessment.fired_kinds == ["new_city"]

    def test_new_country_requires_known_countries(self):
        assessment = score_risk(_ctx(is_new_location=True))
        assert assessment.fired_kinds == ["new_city"]

    def test_impossible_travel(self):
        history = [make_session(country="Japan", city="Tokyo", created_at=NOW - timedelta(minutes=90))]
        assessment = score_risk(_ctx(history=history))
        assert assessment.has_factor("impossible_travel")
        travel = next(f for f in assessment.factors if f.kind == "impossible_travel")
        assert travel.previous_country == "Japan"
        assert travel.hours_between == pytest.approx(1.5)

    def test_impossible_travel_only_checks_most_recent(self):
        history = [
            make_session(created_at=NOW - timedelta(minutes=20)),
            make_session(country="Japan", created_at=NOW - timedelta(minutes=40)),
        ]
        assert not score_risk(_ctx(history=history)).has_factor("impossible_travel")

    def test_travel_after_window_is_possible(self):
        history = [make_session(country="Japan", created_at=NOW - timedelta(hours=2))]
        assert not score_risk(_ctx(history=history)).has_factor("impossible_travel")

    @pytest.mark.parametrize("failed,expected", [(1, 15), (3, 45), (7, 100), (20, 100)])
    def test_failed_attempts_capped(self, failed, expected):
        factor = score_risk(_ctx(failed_attempts=failed)).factors[0]
        assert factor.score == expected

    def test_unusual_time_needs_five_samples(self):
        early = [make_session(created_at=(NOW - timedelta(days=d)).replace(hour=3)) for d in range(1, 5)]
        assert not score_risk(_ctx(history=early)).has_factor("unusual_time")

        early.append(make_session(created_at=(NOW - timedelta(days=6)).replace(hour=3)))
        assert score_risk(_ctx(history=early)).has_factor("unusual_time")

    def test_usual_time(self):
        midday = [make_session(created_at=(NOW - timedelta(days=d)).replace(hour=10)) for d in range(1, 8)]
        assert not score_risk(_ctx(history=midday)).has_factor("unusual_time")

    def test_suspicious_history_capped(self):
        history = [make_session(is_suspicious=True, created_at=NOW - timedelta(days=d)) for d in range(1, 8)]
        factor = next(f for f in score_risk(_ctx(history=history)).factors if f.kind == "suspicious_history")
        assert factor.score == 50

    def test_vpn_only_when_signal_true(self):
        detected = ExternalSignal.available("vpn_proxy", True, source="pattern")
        clean = ExternalSignal.available("vpn_proxy", False, source="pattern")
        missing = ExternalSignal.unavailable("vpn_proxy", "timeout")

        assert score_risk(_ctx(vpn_signal=detected)).fired_kinds == ["vpn_proxy"]
        assert score_risk(_ctx(vpn_signal=clean)).factors == []
        assert score_risk(_ctx(vpn_signal=missing)).factors == []

    def test_rapid_logins(self):
        history = [make_session(created_at=NOW - timedelta(minutes=m)) for m in (1, 4, 8)]
        assessment = score_risk(_ctx(history=history))
        assert assessment.has_factor("rapid_logins")

    def test_two_recent_logins_are_not_rapid(self):
        history = [make_session(created_at=NOW - timedelta(minutes=m)) for m in (1, 4, 12)]
        assert not score_risk(_ctx(history=history)).has_factor("rapid_logins")


class TestAggregate:

    def test_level_bands(self):
        assert risk_level_for(0) == RiskLevel.LOW
        assert risk_level_for(24.99) == RiskLevel.LOW
        assert risk_level_for(25) == RiskLevel.MEDIUM
        assert risk_level_for(50) == RiskLevel.HIGH
        assert risk_level_for(70) == RiskLevel.CRITICAL

    def test_weights_sum_above_one(self):
        assert sum(FACTOR_WEIGHTS.values()) == pytest.approx(1.25)

    def test_worst_case_score(self):
        # Just past midnight so the recent logins also look like an unusual hour
        now = NOW.replace(hour=0, minute=5)
        history = [
            make_session(country="Japan", is_suspicious=True, created_at=now - timedelta(minutes=m))
            for m in (5, 6, 7, 8, 9)
        ]
        ctx = _ctx(
            now=now,
            is_new_device=True,
            is_new_location=True,
            history=history,
            failed_attempts=10,
            vpn_signal=ExternalSignal.available("vpn_proxy", True),
        )
        # 6 + 10 + 22.5 + 15 + 1.25 + 5 + 3.5 + 9
        assessment = score_risk(ctx)
        assert assessment.total_score == pytest.approx(72.25)
        assert assessment.risk_level == RiskLevel.CRITICAL
        assert assessment.should_require_step_up is True
        assert assessment.should_notify is True
        assert assessment.should_block is False

    def test_adding_a_factor_never_lowers_score(self):
        base = _ctx(is_new_device=True)
        worse = _ctx(is_new_device=True, failed_attempts=2)
        worst = _ctx(is_new_device=True, failed_attempts=2,
                     vpn_signal=ExternalSignal.available("vpn_proxy", True))
        scores = [score_risk(c).total_score for c in (base, worse, worst)]
        assert scores == sorted(scores)

    @pytest.mark.parametrize("failed", range(0, 10))
    def test_monotonic_in_failed_attempts(self, failed):
        assert score_risk(_ctx(failed_attempts=failed + 1)).total_score >= score_risk(
            _ctx(failed_attempts=failed)
        ).total_score

    def test_unavailable_signals_reported(self):
        geo = ExternalSignal.unavailable("geolocation", "timeout", source="ip-api")
        vpn = ExternalSignal.unavailable("vpn_proxy", "timeout", source="ip-api")
        assessment = score_risk(_ctx(country=None, city=None, extra_signals=[geo], vpn_signal=vpn))
        assert [s.name for s in assessment.unavailable_signals] == ["geolocation", "vpn_proxy"]

    def test_sanitize_history_sorts_newest_first(self):
        older = make_session(created_at=NOW - timedelta(days=2))
        newer = make_session(created_at=NOW - timedelta(days=1))
        assert [s.session_id for s in sanitize_history([older, newer])] == [newer.session_id, older.session_id]

    def test_malformed_history_treated_as_empty(self):
        assert sanitize_history([make_session(), {"user_id": "x"}]) == []


class TestRecommendations:

    def test_level_then_factor_recommendations(self):
        recs = generate_recommendations(["impossible_travel"], RiskLevel.CRITICAL)
        assert recs[0] == "Require immediate password change"
        assert "Verify this login was legitimate" in recs

    def test_low_level_only_factor_recommendations(self):
        recs = generate_recommendations(["new_device"], RiskLevel.LOW)
        assert recs == ["Send email verification for new device", "Require device approval"]

    def test_no_factors_low_risk(self):
        assert generate_recommendations([], RiskLevel.LOW) == []


class TestRiskScorer:

    def test_reads_history_and_failed_logins(self, store):
        previous = make_session(country="Germany", city="Berlin", created_at=NOW - timedelta(days=2))
        store.insert_session_with_cap(previous, 5)
        store.add_activity(SessionActivity(
            session_id=previous.session_id,
            user_id="user_1",
            action="login",
            is_error=True,
            timestamp=NOW - timedelta(hours=1),
        ))

        scorer = RiskScorer(store, vpn_detector=NoVpn())
        assessment = scorer.calculate_session_risk(
            RiskRequest(user_id="user_1", ip_address="74.125.20.7", country="United States",
                        city="New York", is_new_location=True),
            now=NOW,
        )

        assert assessment.fired_kinds == ["new_country", "failed_attempts"]
        assert assessment.total_score == pytest.approx(10 + 2.25)

    def test_session_under_evaluation_excluded(self, store):
        session = make_session(country="Japan", created_at=NOW - timedelta(minutes=5))
        store.insert_session_with_cap(session, 5)
        assessment = RiskScorer(store, vpn_detector=NoVpn()).assess_existing(session, now=NOW)
        assert assessment.factors == []

    def test_risk_statistics(self, store):
        for days in (1, 2, 3):
            store.insert_session_with_cap(make_session(created_at=NOW - timedelta(days=days)), 10)
        stats = RiskScorer(store, vpn_detector=NoVpn()).risk_statistics("user_1", now=NOW)
        assert stats.total_sessions == 3
        assert stats.risk_levels["low"] == 3


class TestVpnDetectors:

    @pytest.mark.parametrize("ip", ["10.1.2.3", "172.16.0.1", "172.31.255.1", "192.168.0.10"])
    def test_pattern_flags_private_ranges(self, ip):
        signal = PatternVpnDetector().check(ip)
        assert signal.is_available and signal.value is True

    def test_pattern_public_ip(self):
        assert PatternVpnDetector().check("74.125.20.7").value is False

    def test_pattern_unknown_ip_skipped(self):
        assert PatternVpnDetector().check("unknown").is_available is False

    def test_ip_api_proxy_failure_is_unavailable(self):
        http = MagicMock(spec=requests.Session)
        http.get.side_effect = requests.Timeout("slow")
        signal = IpApiProxyDetector(http=http).check("74.125.20.7")
        assert signal.status.value == "unavailable"
