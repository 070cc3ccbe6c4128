"""Tests for trust levels and the suspicion heuristic."""

from datetime import timedelta

import pytest

from trustgate.trust.evaluator import (
    SuspicionInputs,
    TrustInputs,
    calculate_trust_level,
    has_rapid_location_change,
    is_suspicious_activity,
    reevaluate_trust,
    requires_step_up,
    suspicion_score,
    trust_inputs_from_history,
)

from fixtures.sessions import NOW, make_session


def _inputs(**overrides) -> TrustInputs:
    values = dict(
        is_first_session=False,
        previous_login_count=0,
        same_device=True,
        same_location=True,
        days_since_first_login=0,
    )
    values.update(overrides)
    return TrustInputs(**values)


class TestCalculateTrustLevel:

    def test_first_session_is_untrusted(self):
        assert calculate_trust_level(_inputs(is_first_session=True, previous_login_count=50,
                                             days_since_first_login=90)) == 0

    @pytest.mark.parametrize("same_device,same_location", [(False, True), (True, False), (False, False)])
    def test_new_device_or_location_resets(self, same_device, same_location):
        inputs = _inputs(
            previous_login_count=20,
            days_since_first_login=60,
            same_device=same_device,
            same_location=same_location,
        )
        assert calculate_trust_level(inputs) == 0

    def test_recognized(self):
        assert calculate_trust_level(_inputs(previous_login_count=3, days_since_first_login=7)) == 1

    def test_highly_trusted(self):
        assert calculate_trust_level(_inputs(previous_login_count=10, days_since_first_login=30)) == 2

    def test_many_logins_in_short_period_only_recognized(self):
        assert calculate_trust_level(_inputs(previous_login_count=15, days_since_first_login=10)) == 1

    def test_few_days_is_untrusted(self):
        assert calculate_trust_level(_inputs(previous_login_count=5, days_since_first_login=2)) == 0

    def test_never_negative_and_bounded(self):
        for count in (0, 1, 3, 10, 100):
            for days in (0, 7, 30, 365):
                level = calculate_trust_level(_inputs(previous_login_count=count, days_since_first_login=days))
                assert 0 <= level <= 2


class TestReevaluateTrust:

    def test_rises_one_step_at_a_time(self):
        inputs = _inputs(previous_login_count=12, days_since_first_login=45)
        assert reevaluate_trust(0, inputs) == 1
        assert reevaluate_trust(1, inputs) == 2
        assert reevaluate_trust(2, inputs) == 2

    def test_mismatch_resets_to_zero(self):
        assert reevaluate_trust(2, _inputs(same_device=False)) == 0

    def test_never_lowered_without_mismatch(self):
        assert reevaluate_trust(2, _inputs(previous_login_count=3, days_since_first_login=8)) == 2

    def test_no_jump_from_zero_to_two(self):
        for count in range(0, 30, 3):
            for days in (0, 10, 40, 400):
                level = reevaluate_trust(0, _inputs(previous_login_count=count, days_since_first_login=days))
                assert level in (0, 1)


class TestTrustInputsFromHistory:

    def test_empty_history_is_first_session(self):
        inputs = trust_inputs_from_history([], "74.125.20.7", "Windows desktop", "United States", "New York", NOW)
        assert inputs.is_first_session is True

    def test_twelve_logins_over_45_days_is_highly_trusted(self):
        history = [
            make_session(created_at=NOW - timedelta(days=45) + timedelta(days=4 * i))
            for i in range(12)
        ]
        inputs = trust_inputs_from_history(
            history, "74.125.20.7", "Windows desktop", "United States", "New York", NOW
        )

        assert inputs.previous_login_count == 12
        assert inputs.days_since_first_login == pytest.approx(45)
        assert calculate_trust_level(inputs) == 2

    def test_history_matches_by_ip_or_device(self):
        history = [
            make_session(ip_address="74.125.20.7", device_name="Other laptop"),
            make_session(ip_address="85.214.132.44", device_name="Windows desktop"),
            make_session(ip_address="85.214.132.45", device_name="Unrelated"),
        ]
        inputs = trust_inputs_from_history(
            history, "74.125.20.7", "Windows desktop", "United States", "New York", NOW
        )
        assert inputs.previous_login_count == 2

    def test_excluded_session_is_ignored(self):
        session = make_session()
        inputs = trust_inputs_from_history(
            [session], session.ip_address, session.device_name, session.country, session.city, NOW,
            exclude_session_id=session.session_id,
        )
        assert inputs.is_first_session is True

    def test_malformed_history_is_conservative(self):
        inputs = trust_inputs_from_history([object()], "74.125.20.7", "x", None, None, NOW)
        assert inputs.is_first_session is True


class TestSuspicion:

    def test_rapid_location_change(self):
        history = [make_session(country="Japan", created_at=NOW - timedelta(minutes=30))]
        assert has_rapid_location_change(history, "United States", NOW)
        assert not has_rapid_location_change(history, "Japan", NOW)
        assert not has_rapid_location_change(history, None, NOW)

    def test_location_change_outside_window(self):
        history = [make_session(country="Japan", created_at=NOW - timedelta(hours=2))]
        assert not has_rapid_location_change(history, "United States", NOW)

    def test_rapid_change_with_failures_is_suspicious(self):
        assert is_suspicious_activity(SuspicionInputs(rapid_location_change=True, failed_attempts_recent=1))

    def test_vpn_new_device_and_failures_is_suspicious(self):
        assert is_suspicious_activity(SuspicionInputs(vpn_detected=True, new_device=True, failed_attempts_recent=3))

    def test_weighted_threshold(self):
        inputs = SuspicionInputs(new_device=True, new_location=True, failed_attempts_recent=3)
        assert suspicion_score(inputs) == 4
        assert is_suspicious_activity(inputs)

    def test_single_signal_is_not_suspicious(self):
        assert not is_suspicious_activity(SuspicionInputs(rapid_location_change=True))
        assert not is_suspicious_activity(SuspicionInputs(new_device=True, new_location=True))
        assert not is_suspicious_activity(SuspicionInputs(vpn_detected=True))


class TestRequiresStepUp:

    @pytest.mark.parametrize("action", ["password_change", "Password Change", " 2FA-disable "])
    def test_sensitive(self, action):
        assert requires_step_up(action)

    def test_not_sensitive(self):
        assert not requires_step_up("view_profile")
