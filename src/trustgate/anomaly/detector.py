"""Anomaly & Conflict Detector - pairwise and set-level session analysis.

Module-level functions are pure over a list of sessions. AnomalyDetector
wraps them with store reads.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from itertools import combinations
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from trustgate.anomaly.schema import (
    AnomalyType,
    BehavioralPattern,
    ConflictGroup,
    ConflictGroupType,
    ConflictType,
    DuplicateGroup,
    SessionAnomaly,
    SessionComparison,
    SessionDifference,
    TakeoverCandidate,
)
from trustgate.common.clock import as_utc, utc_now
from trustgate.common.constants import (
    ConflictConstants,
    ContextConstants,
    RiskConstants,
    TrustConstants,
)
from trustgate.data.schemas import Session, SessionActivity
from trustgate.data.schemas.risk import Severity
from trustgate.store.base import SessionStore


logger = logging.getLogger(__name__)


# (label, accessor, penalty, significance)
COMPARISON_FIELDS: Tuple[Tuple[str, Callable[[Session], object], int, Severity], ...] = (
    ("Device Name", lambda s: s.device_name, ConflictConstants.PENALTY_DEVICE_NAME, Severity.HIGH),
    ("Device Type", lambda s: s.device_type.value, ConflictConstants.PENALTY_DEVICE_TYPE, Severity.MEDIUM),
    ("Country", lambda s: s.country, ConflictConstants.PENALTY_COUNTRY, Severity.HIGH),
    ("City", lambda s: s.city, ConflictConstants.PENALTY_CITY, Severity.MEDIUM),
    ("IP Address", lambda s: s.ip_address, ConflictConstants.PENALTY_IP, Severity.HIGH),
    ("Browser", lambda s: s.device.browser, ConflictConstants.PENALTY_BROWSER, Severity.MEDIUM),
    ("OS", lambda s: s.device.os, ConflictConstants.PENALTY_OS, Severity.MEDIUM),
)

CONFLICT_RECOMMENDATIONS = {
    ConflictType.DUPLICATE: "Sessions are nearly identical - possible duplicate login",
    ConflictType.LOCATION_MISMATCH: (
        "Concurrent sessions from different countries detected - possible account compromise"
    ),
    ConflictType.TAKEOVER: "Suspicious: new device from new location with low trust - verify ownership",
    ConflictType.SHARED_ACCOUNT: "Multiple devices and locations - possible account sharing",
}

SEVERITY_ORDER = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


# ===== PAIRWISE =====

def _countries_differ(s1: Session, s2: Session) -> bool:
    """An unknown country differs from any known one."""
    return s1.country != s2.country


def classify_conflict(s1: Session, s2: Session, similarity: int) -> Optional[ConflictType]:
    """First matching rule wins."""
    if similarity >= ConflictConstants.DUPLICATE_SIMILARITY:
        return ConflictType.DUPLICATE

    if (
        _countries_differ(s1, s2)
        and abs(s1.last_activity_at - s2.last_activity_at) < ConflictConstants.LOCATION_MISMATCH_WINDOW
    ):
        return ConflictType.LOCATION_MISMATCH

    if (
        s1.device_name != s2.device_name
        and _countries_differ(s1, s2)
        and TrustConstants.UNTRUSTED in (s1.trust_level, s2.trust_level)
    ):
        return ConflictType.TAKEOVER

    if (
        s1.device_type != s2.device_type
        and s1.city != s2.city
        and similarity < ConflictConstants.SHARED_ACCOUNT_SIMILARITY
    ):
        return ConflictType.SHARED_ACCOUNT

    return None


def compare_sessions(s1: Session, s2: Session) -> SessionComparison:
    """Similarity starts at 100 and loses a fixed penalty per differing attribute."""
    differences: List[SessionDifference] = []
    similarity = ConflictConstants.SIMILARITY_START

    for label, accessor, penalty, significance in COMPARISON_FIELDS:
        v1, v2 = accessor(s1), accessor(s2)
        if v1 != v2:
            differences.append(
                SessionDifference(field=label, value_1=v1, value_2=v2, significance=significance)
            )
            similarity -= penalty

    if abs(s1.trust_level - s2.trust_level) >= ConflictConstants.TRUST_GAP_MIN:
        differences.append(
            SessionDifference(
                field="Trust Level",
                value_1=s1.trust_level,
                value_2=s2.trust_level,
                significance=Severity.HIGH,
            )
        )
        similarity -= ConflictConstants.PENALTY_TRUST_GAP

    similarity = max(0, similarity)
    conflict_type = classify_conflict(s1, s2, similarity)

    return SessionComparison(
        session_id_1=s1.session_id,
        session_id_2=s2.session_id,
        similarity=similarity,
        differences=differences,
        conflict=conflict_type is not None,
        conflict_type=conflict_type,
        recommendation=(
            CONFLICT_RECOMMENDATIONS[conflict_type] if conflict_type else "Sessions appear normal"
        ),
    )


def compare_all_sessions(sessions: Sequence[Session]) -> List[SessionComparison]:
    """Every conflicting pair among the given sessions."""
    comparisons = (compare_sessions(a, b) for a, b in combinations(sessions, 2))
    return [c for c in comparisons if c.conflict]


# ===== SET LEVEL =====

def detect_anomalies(sessions: Sequence[Session], now: datetime) -> List[SessionAnomaly]:
    """Multiple countries, rapid logins and flagged sessions."""
    now = as_utc(now)
    anomalies: List[SessionAnomaly] = []

    countries = {s.country for s in sessions if s.country}
    if len(countries) > ConflictConstants.MULTIPLE_COUNTRIES_MAX:
        anomalies.append(
            SessionAnomaly(
                anomaly_type=AnomalyType.MULTIPLE_COUNTRIES,
                severity=Severity.HIGH,
                description=(
                    f"Active sessions detected from {len(countries)} different countries simultaneously"
                ),
                session_ids=[s.session_id for s in sessions],
            )
        )

    recent = [s for s in sessions if now - s.created_at < RiskConstants.RAPID_LOGIN_WINDOW]
    if len(recent) >= RiskConstants.RAPID_LOGIN_MIN_SESSIONS:
        anomalies.append(
            SessionAnomaly(
                anomaly_type=AnomalyType.RAPID_LOGIN,
                severity=Severity.HIGH,
                description=f"{len(recent)} sessions created in last 10 minutes",
                session_ids=[s.session_id for s in recent],
            )
        )

    suspicious = [s for s in sessions if s.is_suspicious]
    if suspicious:
        anomalies.append(
            SessionAnomaly(
                anomaly_type=AnomalyType.SUSPICIOUS_ACTIVITY,
                severity=Severity.MEDIUM,
                description=f"{len(suspicious)} sessions flagged as suspicious",
                session_ids=[s.session_id for s in suspicious],
            )
        )

    return anomalies


def find_duplicate_sessions(sessions: Sequence[Session]) -> List[DuplicateGroup]:
    """Groups of sessions with the same (device name, IP address)."""
    groups: Dict[Tuple[str, str], List[str]] = defaultdict(list)
    for session in sessions:
        groups[(session.device_name, session.ip_address)].append(session.session_id)

    return [
        DuplicateGroup(
            device_name=device_name,
            ip_address=ip_address,
            session_ids=ids,
            reason=f"Multiple sessions from same device and IP: {device_name}-{ip_address}",
        )
        for (device_name, ip_address), ids in groups.items()
        if len(ids) > 1
    ]


def _first_octet(ip: str) -> Optional[str]:
    if not ip or ip == ContextConstants.UNKNOWN_IP:
        return None
    separator = ":" if ":" in ip else "."
    return ip.split(separator)[0]


def severity_for_score(score: int) -> Severity:
    if score >= ConflictConstants.SEVERITY_CRITICAL:
        return Severity.CRITICAL
    if score >= ConflictConstants.SEVERITY_HIGH:
        return Severity.HIGH
    if score >= ConflictConstants.SEVERITY_MEDIUM:
        return Severity.MEDIUM
    return Severity.LOW


def detect_takeover_candidates(sessions: Sequence[Session], now: datetime) -> List[TakeoverCandidate]:
    """Score every session against the most trusted one, most severe first."""
    if len(sessions) < 2:
        return []
    now = as_utc(now)

    ordered = sorted(sessions, key=lambda s: s.created_at, reverse=True)
    baseline = ordered[0]
    for session in ordered[1:]:
        if session.trust_level > baseline.trust_level:
            baseline = session

    candidates: List[TakeoverCandidate] = []
    for session in ordered:
        if session.session_id == baseline.session_id:
            continue

        indicators: List[str] = []
        score = 0

        if session.device_name != baseline.device_name and session.country != baseline.country:
            indicators.append("New device from unfamiliar location")
            score += ConflictConstants.TAKEOVER_NEW_DEVICE_COUNTRY

        if (
            now - session.created_at < ConflictConstants.TAKEOVER_YOUNG_AGE
            and session.trust_level == TrustConstants.UNTRUSTED
        ):
            indicators.append("Very recent login with no trust history")
            score += ConflictConstants.TAKEOVER_YOUNG_UNTRUSTED

        octet, baseline_octet = _first_octet(session.ip_address), _first_octet(baseline.ip_address)
        if octet and baseline_octet and octet != baseline_octet:
            indicators.append("Completely different IP range")
            score += ConflictConstants.TAKEOVER_IP_RANGE

        if session.is_suspicious:
            indicators.append("Flagged by automated security systems")
            score += ConflictConstants.TAKEOVER_SUSPICIOUS_FLAG

        if abs(session.created_at.hour - baseline.created_at.hour) > ConflictConstants.TAKEOVER_LOGIN_HOUR_DELTA:
            indicators.append("Login at unusual time compared to normal pattern")
            score += ConflictConstants.TAKEOVER_LOGIN_HOUR

        if not indicators:
            continue

        severity = severity_for_score(score)
        candidates.append(
            TakeoverCandidate(
                session_id=session.session_id,
                baseline_session_id=baseline.session_id,
                indicators=indicators,
                score=score,
                severity=severity,
                recommendation=(
                    "Terminate this session immediately and force password reset"
                    if severity in (Severity.CRITICAL, Severity.HIGH)
                    else "Monitor this session closely and verify with user"
                ),
            )
        )

    candidates.sort(key=lambda c: SEVERITY_ORDER[c.severity], reverse=True)
    return candidates


def detect_conflict_groups(sessions: Sequence[Session]) -> List[ConflictGroup]:
    """Concurrent-location groups (high) and duplicate-device groups (medium).

    Concurrent-location groups are the connected components of the
    "different known countries, active within an hour" relation.
    """
    by_activity = sorted(sessions, key=lambda s: s.last_activity_at, reverse=True)
    groups: List[ConflictGroup] = []

    parent = {s.session_id: s.session_id for s in by_activity}

    def find(sid: str) -> str:
        while parent[sid] != sid:
            parent[sid] = parent[parent[sid]]
            sid = parent[sid]
        return sid

    linked = set()
    for a, b in combinations(by_activity, 2):
        if (
            _countries_differ(a, b)
            and abs(a.last_activity_at - b.last_activity_at) < ConflictConstants.LOCATION_MISMATCH_WINDOW
        ):
            parent[find(a.session_id)] = find(b.session_id)
            linked.update((a.session_id, b.session_id))

    components: Dict[str, List[str]] = defaultdict(list)
    for session in by_activity:
        if session.session_id in linked:
            components[find(session.session_id)].append(session.session_id)

    for member_ids in components.values():
        groups.append(
            ConflictGroup(
                conflict_type=ConflictGroupType.CONCURRENT_LOCATION,
                severity=Severity.HIGH,
                session_ids=member_ids,
                recommendation="Terminate suspicious session immediately",
            )
        )

    by_device: Dict[str, List[Session]] = defaultdict(list)
    for session in by_activity:
        if session.device_name:
            by_device[session.device_name].append(session)

    for device_sessions in by_device.values():
        if len(device_sessions) > 1 and len({s.ip_address for s in device_sessions}) > 1:
            groups.append(
                ConflictGroup(
                    conflict_type=ConflictGroupType.DUPLICATE_DEVICE,
                    severity=Severity.MEDIUM,
                    session_ids=[s.session_id for s in device_sessions],
                    recommendation="Verify device ownership and recent activity",
                )
            )

    return groups


def analyze_behavioral_patterns(
    user_id: str,
    sessions: Sequence[Session],
    activities: Optional[Dict[str, List[SessionActivity]]] = None,
) -> BehavioralPattern:
    """Typical hour, primary device and location, plus habit anomalies."""
    activities = activities or {}
    ordered = sorted(sessions, key=lambda s: s.created_at)
    pattern = BehavioralPattern(user_id=user_id, total_sessions=len(ordered))
    if not ordered:
        return pattern

    pattern.login_hours = [s.created_at.hour for s in ordered]
    pattern.typical_login_hour = int(sum(pattern.login_hours) / len(pattern.login_hours) + 0.5)

    device_counts = Counter(s.device_name for s in ordered if s.device_name)
    pattern.devices = list(device_counts)
    if device_counts:
        pattern.primary_device = device_counts.most_common(1)[0][0]

    location_counts = Counter(
        f"{s.city}, {s.country}" for s in ordered if s.city and s.country
    )
    pattern.locations = list(location_counts)
    if location_counts:
        pattern.primary_location = location_counts.most_common(1)[0][0]

    durations = []
    activity_counts = []
    for session in ordered:
        entries = sorted(activities.get(session.session_id, []), key=lambda a: a.timestamp)
        activity_counts.append(len(entries))
        if entries:
            durations.append((entries[-1].timestamp - entries[0].timestamp).total_seconds() / 60)
        else:
            durations.append(0.0)
    pattern.avg_session_duration_minutes = round(sum(durations) / len(durations))
    pattern.avg_activities_per_session = round(sum(activity_counts) / len(activity_counts), 1)

    if len(pattern.devices) > ConflictConstants.BEHAVIOR_MAX_DEVICES:
        pattern.anomalies.append(f"High number of devices: {len(pattern.devices)}")
    if len(pattern.locations) > ConflictConstants.BEHAVIOR_MAX_LOCATIONS:
        pattern.anomalies.append(f"Multiple locations: {len(pattern.locations)} different locations")

    recent = ordered[-10:]
    suspicious_rate = sum(1 for s in recent if s.is_suspicious) / len(recent)
    if suspicious_rate > ConflictConstants.BEHAVIOR_SUSPICIOUS_RATE:
        pattern.anomalies.append(f"High suspicious activity rate: {suspicious_rate * 100:.1f}%")

    return pattern


class AnomalyDetector:
    """Store-backed entry points over the pure detectors."""

    def __init__(self, store: SessionStore):
        self.store = store

    def active_sessions(self, user_id: str, now: Optional[datetime] = None) -> List[Session]:
        return self.store.list_sessions_for_user(user_id, active_at=as_utc(now or utc_now()))

    def compare_sessions(self, session_id_1: str, session_id_2: str) -> Optional[SessionComparison]:
        """None when either session does not exist."""
        s1 = self.store.get_session(session_id_1)
        s2 = self.store.get_session(session_id_2)
        if s1 is None or s2 is None:
            return None
        return compare_sessions(s1, s2)

    def compare_all_user_sessions(self, user_id: str, now: Optional[datetime] = None) -> List[SessionComparison]:
        return compare_all_sessions(self.active_sessions(user_id, now))

    def detect_anomalies(self, user_id: str, now: Optional[datetime] = None) -> List[SessionAnomaly]:
        now = as_utc(now or utc_now())
        return detect_anomalies(self.active_sessions(user_id, now), now)

    def find_duplicate_sessions(self, user_id: str, now: Optional[datetime] = None) -> List[DuplicateGroup]:
        return find_duplicate_sessions(self.active_sessions(user_id, now))

    def detect_takeover(self, user_id: str, now: Optional[datetime] = None) -> List[TakeoverCandidate]:
        now = as_utc(now or utc_now())
        return detect_takeover_candidates(self.active_sessions(user_id, now), now)

    def detect_conflicts(self, user_id: str, now: Optional[datetime] = None) -> List[ConflictGroup]:
        return detect_conflict_groups(self.active_sessions(user_id, now))

    def analyze_behavioral_patterns(
        self,
        user_id: str,
        days: int = 30,
        now: Optional[datetime] = None,
    ) -> BehavioralPattern:
        now = as_utc(now or utc_now())
        sessions = self.store.list_sessions_created_since(user_id, now - timedelta(days=days))
        activities = {s.session_id: self.store.list_activities(s.session_id) for s in sessions}
        return analyze_behavioral_patterns(user_id, sessions, activities)
