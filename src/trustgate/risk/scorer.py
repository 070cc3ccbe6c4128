"""Risk Scorer - weighted, table-driven session risk assessment.

Each rule in FACTOR_RULES inspects a RiskContext and returns at most one
RiskFactor. The weighted sum of fired factors is clamped to [0, 100].
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from trustgate.common.clock import as_utc, utc_now
from trustgate.common.constants import RiskConstants, SessionLimits
from trustgate.common.deadline import Deadline
from trustgate.data.schemas import ExternalSignal, Session, SignalStatus
from trustgate.data.schemas.risk import (
    FactorCount,
    FailedAttemptsFactor,
    ImpossibleTravelFactor,
    NewCityFactor,
    NewCountryFactor,
    NewDeviceFactor,
    RapidLoginsFactor,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    RiskStatistics,
    Severity,
    SuspiciousHistoryFactor,
    UnusualTimeFactor,
    VpnProxyFactor,
)
from trustgate.risk.recommendations import generate_recommendations
from trustgate.risk.vpn import PatternVpnDetector, VpnDetector
from trustgate.store.base import SessionStore


logger = logging.getLogger(__name__)


FACTOR_WEIGHTS = {
    "new_device": 0.15,
    "new_country": 0.20,
    "new_city": 0.10,
    "impossible_travel": 0.25,
    "failed_attempts": 0.15,
    "unusual_time": 0.05,
    "suspicious_history": 0.10,
    "vpn_proxy": 0.10,
    "rapid_logins": 0.15,
}

# Ordered (threshold, level); first match wins
RISK_LEVEL_BANDS: Tuple[Tuple[float, RiskLevel], ...] = (
    (RiskConstants.LEVEL_CRITICAL, RiskLevel.CRITICAL),
    (RiskConstants.LEVEL_HIGH, RiskLevel.HIGH),
    (RiskConstants.LEVEL_MEDIUM, RiskLevel.MEDIUM),
)


@dataclass
class RiskContext:
    """Everything a factor rule may look at.

    history holds the user's previous sessions, newest first, and never
    includes the session under evaluation.
    """
    user_id: str
    ip_address: str
    country: Optional[str]
    city: Optional[str]
    is_new_device: bool
    is_new_location: bool
    now: datetime
    history: List[Session] = field(default_factory=list)
    failed_attempts: int = 0
    vpn_signal: Optional[ExternalSignal] = None
    session_id: Optional[str] = None
    extra_signals: List[ExternalSignal] = field(default_factory=list)


def _new_device(ctx: RiskContext) -> Optional[RiskFactor]:
    if not ctx.is_new_device:
        return None
    has_prior = any(s.device_name for s in ctx.history)
    return NewDeviceFactor(
        name="New Device",
        score=40 if has_prior else 20,
        weight=FACTOR_WEIGHTS["new_device"],
        severity=Severity.MEDIUM if has_prior else Severity.LOW,
        description="First time login from this device" if has_prior else "Device recently used",
        has_prior_devices=has_prior,
    )


def _location(ctx: RiskContext) -> Optional[RiskFactor]:
    """New country dominates new city; the two never fire together."""
    if not ctx.country:
        return None
    known = sorted({s.country for s in ctx.history if s.country})
    if known and ctx.country not in known:
        return NewCountryFactor(
            name="New Country",
            score=50,
            weight=FACTOR_WEIGHTS["new_country"],
            severity=Severity.HIGH,
            description=f"First login from {ctx.country}",
            country=ctx.country,
            known_countries=known,
        )
    if ctx.is_new_location:
        return NewCityFactor(
            name="New City",
            score=30,
            weight=FACTOR_WEIGHTS["new_city"],
            severity=Severity.MEDIUM,
            description=f"New city: {ctx.city or 'Unknown'}",
            city=ctx.city,
        )
    return None


def _impossible_travel(ctx: RiskContext) -> Optional[RiskFactor]:
    # Only the single most recent prior session is compared
    if not ctx.history or not ctx.country:
        return None
    previous = ctx.history[0]
    if not previous.country or previous.country == ctx.country:
        return None
    elapsed = ctx.now - previous.created_at
    if elapsed >= RiskConstants.IMPOSSIBLE_TRAVEL_WINDOW:
        return None
    hours = max(elapsed.total_seconds(), 0) / 3600
    return ImpossibleTravelFactor(
        name="Impossible Travel",
        score=90,
        weight=FACTOR_WEIGHTS["impossible_travel"],
        severity=Severity.CRITICAL,
        description=f"Login from {ctx.country} {hours:.1f}h after login from {previous.country}",
        previous_country=previous.country,
        current_country=ctx.country,
        hours_between=round(hours, 2),
    )


def _failed_attempts(ctx: RiskContext) -> Optional[RiskFactor]:
    if ctx.failed_attempts <= 0:
        return None
    return FailedAttemptsFactor(
        name="Failed Login Attempts",
        score=min(ctx.failed_attempts * 15, 100),
        weight=FACTOR_WEIGHTS["failed_attempts"],
        severity=Severity.HIGH if ctx.failed_attempts >= 3 else Severity.MEDIUM,
        description=f"{ctx.failed_attempts} failed login attempts in last 24h",
        failed_attempts=ctx.failed_attempts,
    )


def _unusual_time(ctx: RiskContext) -> Optional[RiskFactor]:
    hours = [s.created_at.hour for s in ctx.history[:RiskConstants.UNUSUAL_TIME_MAX_SAMPLES]]
    if len(hours) < RiskConstants.UNUSUAL_TIME_MIN_SAMPLES:
        return None
    typical = sum(hours) / len(hours)
    current = ctx.now.hour
    if abs(current - typical) <= RiskConstants.UNUSUAL_TIME_HOUR_DELTA:
        return None
    return UnusualTimeFactor(
        name="Unusual Time",
        score=25,
        weight=FACTOR_WEIGHTS["unusual_time"],
        severity=Severity.LOW,
        description=f"Login at {current}:00 UTC (typical: {round(typical)}:00)",
        login_hour=current,
        typical_hour=round(typical, 2),
    )


def _suspicious_history(ctx: RiskContext) -> Optional[RiskFactor]:
    count = sum(1 for s in ctx.history if s.is_suspicious)
    if count == 0:
        return None
    return SuspiciousHistoryFactor(
        name="Suspicious History",
        score=min(count * 10, 50),
        weight=FACTOR_WEIGHTS["suspicious_history"],
        severity=Severity.HIGH if count >= 3 else Severity.MEDIUM,
        description=f"{count} previous suspicious sessions",
        suspicious_sessions=count,
    )


def _vpn_proxy(ctx: RiskContext) -> Optional[RiskFactor]:
    signal = ctx.vpn_signal
    if signal is None or not signal.is_available or not signal.value:
        return None
    return VpnProxyFactor(
        name="VPN/Proxy Detected",
        score=35,
        weight=FACTOR_WEIGHTS["vpn_proxy"],
        severity=Severity.MEDIUM,
        description="Connection through VPN or proxy",
        source=signal.source,
    )


def _rapid_logins(ctx: RiskContext) -> Optional[RiskFactor]:
    recent = [
        s for s in ctx.history
        if ctx.now - s.created_at < RiskConstants.RAPID_LOGIN_WINDOW
    ]
    if len(recent) < RiskConstants.RAPID_LOGIN_MIN_SESSIONS:
        return None
    return RapidLoginsFactor(
        name="Rapid Logins",
        score=60,
        weight=FACTOR_WEIGHTS["rapid_logins"],
        severity=Severity.HIGH,
        description=f"{len(recent)} logins in last 10 minutes",
        recent_sessions=len(recent),
    )


FACTOR_RULES: Tuple[Callable[[RiskContext], Optional[RiskFactor]], ...] = (
    _new_device,
    _location,
    _impossible_travel,
    _failed_attempts,
    _unusual_time,
    _suspicious_history,
    _vpn_proxy,
    _rapid_logins,
)


def risk_level_for(total: float) -> RiskLevel:
    for threshold, level in RISK_LEVEL_BANDS:
        if total >= threshold:
            return level
    return RiskLevel.LOW


def sanitize_history(history: Sequence[Any]) -> List[Session]:
    """Validate raw history records, newest first.

    Any malformed record makes the whole history unusable; evaluation
    then proceeds as if there were no history.
    """
    try:
        sessions = [
            item if isinstance(item, Session) else Session.model_validate(item)
            for item in history
        ]
    except (PydanticValidationError, TypeError) as e:
        logger.warning(f"Malformed session history treated as empty: {e}")
        return []
    return sorted(sessions, key=lambda s: s.created_at, reverse=True)


def score_risk(
    ctx: RiskContext,
    rules: Sequence[Callable[[RiskContext], Optional[RiskFactor]]] = FACTOR_RULES,
) -> RiskAssessment:
    """Pure risk computation over a prepared context."""
    ctx.now = as_utc(ctx.now)
    factors: List[RiskFactor] = []
    for rule in rules:
        factor = rule(ctx)
        if factor is not None:
            factors.append(factor)

    raw_total = sum(f.contribution for f in factors)
    total = max(RiskConstants.SCORE_MIN, min(RiskConstants.SCORE_MAX, raw_total))
    level = risk_level_for(total)

    signals = list(ctx.extra_signals)
    if ctx.vpn_signal is not None:
        signals.append(ctx.vpn_signal)
    unavailable = [s for s in signals if s.status == SignalStatus.UNAVAILABLE]

    return RiskAssessment(
        user_id=ctx.user_id,
        session_id=ctx.session_id,
        factors=factors,
        total_score=round(total, 2),
        risk_level=level,
        should_block=total >= RiskConstants.BLOCK_THRESHOLD,
        should_require_step_up=total >= RiskConstants.STEP_UP_THRESHOLD,
        should_notify=total >= RiskConstants.NOTIFY_THRESHOLD,
        recommendations=generate_recommendations([f.kind for f in factors], level),
        unavailable_signals=unavailable,
        assessed_at=ctx.now,
    )


@dataclass
class RiskRequest:
    """Caller-facing inputs of calculate_session_risk."""
    user_id: str
    ip_address: str
    country: Optional[str] = None
    city: Optional[str] = None
    device_name: Optional[str] = None
    is_new_device: bool = False
    is_new_location: bool = False
    session_id: Optional[str] = None
    signals: List[ExternalSignal] = field(default_factory=list)


class RiskScorer:
    """Reads history from the store and scores a session attempt.

    Side-effect free: safe to call speculatively.
    """

    def __init__(
        self,
        store: SessionStore,
        vpn_detector: Optional[VpnDetector] = None,
        history_limit: int = SessionLimits.HISTORY_LIMIT,
    ):
        self.store = store
        self.vpn_detector = vpn_detector or PatternVpnDetector()
        self.history_limit = history_limit

    def build_context(
        self,
        request: RiskRequest,
        now: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
        history: Optional[Sequence[Any]] = None,
    ) -> RiskContext:
        now = as_utc(now or utc_now())
        if history is None:
            history = self.store.list_sessions_for_user(request.user_id, limit=self.history_limit + 1)
        sessions = [
            s for s in sanitize_history(history)
            if s.session_id != request.session_id
        ][:self.history_limit]

        failed = self.store.count_failed_logins(
            request.user_id, now - RiskConstants.FAILED_ATTEMPTS_WINDOW
        )
        return RiskContext(
            user_id=request.user_id,
            session_id=request.session_id,
            ip_address=request.ip_address,
            country=request.country,
            city=request.city,
            is_new_device=request.is_new_device,
            is_new_location=request.is_new_location,
            now=now,
            history=sessions,
            failed_attempts=failed,
            vpn_signal=self.vpn_detector.check(request.ip_address, deadline),
            extra_signals=list(request.signals),
        )

    def calculate_session_risk(
        self,
        request: RiskRequest,
        now: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
    ) -> RiskAssessment:
        assessment = score_risk(self.build_context(request, now, deadline))
        logger.debug(
            f"Risk for user {request.user_id}: {assessment.total_score} "
            f"({assessment.risk_level.value}) factors={assessment.fired_kinds}"
        )
        return assessment

    def assess_existing(self, session: Session, now: Optional[datetime] = None) -> RiskAssessment:
        """Retroactive assessment of a stored session (no new device/location)."""
        return self.calculate_session_risk(
            RiskRequest(
                user_id=session.user_id,
                session_id=session.session_id,
                ip_address=session.ip_address,
                country=session.country,
                city=session.city,
                device_name=session.device_name,
            ),
            now=now,
        )

    def risk_history(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        days: int = 30,
    ) -> List[Tuple[Session, RiskAssessment]]:
        now = as_utc(now or utc_now())
        sessions = self.store.list_sessions_created_since(user_id, now - timedelta(days=days))
        return [(s, self.assess_existing(s, now)) for s in sessions]

    def risk_statistics(self, user_id: str, now: Optional[datetime] = None) -> RiskStatistics:
        return summarize_risk_history(user_id, self.risk_history(user_id, now))


def summarize_risk_history(
    user_id: str,
    history: Sequence[Tuple[Session, RiskAssessment]],
) -> RiskStatistics:
    """Level counts, average score and the five most common factors."""
    stats = RiskStatistics(user_id=user_id, total_sessions=len(history))
    if not history:
        return stats

    for _, assessment in history:
        stats.risk_levels[assessment.risk_level.value] += 1
    stats.average_score = round(
        sum(a.total_score for _, a in history) / len(history), 2
    )

    counts: Dict[str, int] = Counter(f.name for _, a in history for f in a.factors)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    stats.top_factors = [
        FactorCount(name=name, count=count)
        for name, count in ranked[:RiskConstants.TOP_FACTORS]
    ]
    stats.recent_high_risk = [
        s.session_id for s, a in history
        if a.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    ][:10]
    return stats
