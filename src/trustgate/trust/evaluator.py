"""Trust Evaluator - session trust level from login history.

Levels: 0 = new/untrusted, 1 = recognized, 2 = highly trusted.
calculate_trust_level is pure; callers persist the result.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from trustgate.common.clock import as_utc
from trustgate.common.constants import TrustConstants
from trustgate.data.schemas import Session


logger = logging.getLogger(__name__)

RAPID_LOCATION_CHANGE_WINDOW = timedelta(hours=1)

DEFAULT_SENSITIVE_ACTIONS = (
    "password_change",
    "email_change",
    "2fa_disable",
    "account_delete",
    "admin_action",
    "role_change",
    "permission_change",
)


@dataclass(frozen=True)
class TrustInputs:
    """Inputs of the trust transition rule."""
    is_first_session: bool
    previous_login_count: int
    same_device: bool
    same_location: bool
    days_since_first_login: float


@dataclass(frozen=True)
class SuspicionInputs:
    """Signals feeding the weighted suspicion heuristic."""
    rapid_location_change: bool = False
    new_device: bool = False
    new_location: bool = False
    failed_attempts_recent: int = 0
    vpn_detected: bool = False


def calculate_trust_level(inputs: TrustInputs) -> int:
    """Deterministic trust level for a session attempt."""
    if inputs.is_first_session:
        return TrustConstants.UNTRUSTED

    # New device or location resets trust
    if not inputs.same_device or not inputs.same_location:
        return TrustConstants.UNTRUSTED

    if (
        inputs.previous_login_count >= TrustConstants.HIGHLY_TRUSTED_MIN_LOGINS
        and inputs.days_since_first_login >= TrustConstants.HIGHLY_TRUSTED_MIN_DAYS
    ):
        return TrustConstants.HIGHLY_TRUSTED

    if (
        inputs.previous_login_count >= TrustConstants.RECOGNIZED_MIN_LOGINS
        and inputs.days_since_first_login >= TrustConstants.RECOGNIZED_MIN_DAYS
    ):
        return TrustConstants.RECOGNIZED

    return TrustConstants.UNTRUSTED


def reevaluate_trust(current_level: int, inputs: TrustInputs) -> int:
    """Step an existing session's trust level.

    A device or location mismatch resets to 0 immediately. Otherwise the
    level rises at most one step per evaluation toward the computed
    target and is never lowered.
    """
    current_level = max(TrustConstants.UNTRUSTED, min(current_level, TrustConstants.HIGHLY_TRUSTED))
    if inputs.is_first_session or not inputs.same_device or not inputs.same_location:
        return TrustConstants.UNTRUSTED

    target = calculate_trust_level(inputs)
    if target > current_level:
        return current_level + 1
    return current_level


def relevant_history(
    history: Iterable[Session],
    ip_address: str,
    device_name: str,
    exclude_session_id: Optional[str] = None,
) -> List[Session]:
    """Previous sessions sharing the IP address or the device name."""
    return [
        s for s in history
        if s.session_id != exclude_session_id
        and (s.ip_address == ip_address or s.device_name == device_name)
    ]


def trust_inputs_from_history(
    history: Sequence[Session],
    ip_address: str,
    device_name: str,
    country: Optional[str],
    city: Optional[str],
    now: datetime,
    exclude_session_id: Optional[str] = None,
) -> TrustInputs:
    """Build trust inputs from a user's session history.

    Malformed records are skipped; an unusable history yields the
    conservative first-session inputs.
    """
    try:
        previous = relevant_history(history, ip_address, device_name, exclude_session_id)
    except (AttributeError, TypeError) as e:
        logger.warning(f"Ignoring malformed session history: {e}")
        previous = []

    if not previous:
        return TrustInputs(
            is_first_session=True,
            previous_login_count=0,
            same_device=False,
            same_location=False,
            days_since_first_login=0,
        )

    first_login = min(s.created_at for s in previous)
    days = (as_utc(now) - first_login).total_seconds() / 86400

    return TrustInputs(
        is_first_session=False,
        previous_login_count=len(previous),
        same_device=any(s.device_name == device_name for s in previous),
        same_location=any(s.country == country and s.city == city for s in previous),
        days_since_first_login=max(0.0, days),
    )


def has_rapid_location_change(
    history: Iterable[Session],
    country: Optional[str],
    now: datetime,
    window: timedelta = RAPID_LOCATION_CHANGE_WINDOW,
) -> bool:
    """Another country seen within the last hour."""
    if country is None:
        return False
    now = as_utc(now)
    return any(
        now - s.created_at < window and s.country is not None and s.country != country
        for s in history
    )


def suspicion_score(inputs: SuspicionInputs) -> int:
    score = 0
    if inputs.rapid_location_change:
        score += TrustConstants.SUSPICION_WEIGHT_RAPID_LOCATION_CHANGE
    if inputs.new_device and inputs.new_location:
        score += TrustConstants.SUSPICION_WEIGHT_NEW_DEVICE_AND_LOCATION
    if inputs.failed_attempts_recent >= TrustConstants.SUSPICION_FAILED_ATTEMPTS_MIN:
        score += TrustConstants.SUSPICION_WEIGHT_FAILED_ATTEMPTS
    if inputs.vpn_detected:
        score += TrustConstants.SUSPICION_WEIGHT_VPN
    return score


def is_suspicious_activity(inputs: SuspicionInputs) -> bool:
    """Strong indicators first, then the weighted threshold."""
    if inputs.rapid_location_change and inputs.failed_attempts_recent > 0:
        return True
    if (
        inputs.vpn_detected
        and inputs.new_device
        and inputs.failed_attempts_recent >= TrustConstants.SUSPICION_FAILED_ATTEMPTS_MIN
    ):
        return True
    return suspicion_score(inputs) >= TrustConstants.SUSPICION_THRESHOLD


def normalize_action(action: str) -> str:
    return "".join(c if c.isalnum() or c == "_" else "_" for c in action.strip().lower())


def requires_step_up(action: str, sensitive_actions: Iterable[str] = DEFAULT_SENSITIVE_ACTIONS) -> bool:
    return normalize_action(action) in set(sensitive_actions)
