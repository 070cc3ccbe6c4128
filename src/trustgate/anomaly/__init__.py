"""Anomaly & conflict detector."""

from trustgate.anomaly.detector import (
    AnomalyDetector,
    analyze_behavioral_patterns,
    classify_conflict,
    compare_all_sessions,
    compare_sessions,
    detect_anomalies,
    detect_conflict_groups,
    detect_takeover_candidates,
    find_duplicate_sessions,
    severity_for_score,
)
from trustgate.anomaly.schema import (
    AnomalyType,
    BehavioralPattern,
    ConflictGroup,
    ConflictGroupType,
    ConflictType,
    DuplicateGroup,
    ResolutionResult,
    ResolutionStrategy,
    SessionAnomaly,
    SessionComparison,
    TakeoverCandidate,
)

__all__ = [
    "AnomalyDetector",
    "analyze_behavioral_patterns",
    "classify_conflict",
    "compare_all_sessions",
    "compare_sessions",
    "detect_anomalies",
    "detect_conflict_groups",
    "detect_takeover_candidates",
    "find_duplicate_sessions",
    "severity_for_score",
    "AnomalyType",
    "BehavioralPattern",
    "ConflictGroup",
    "ConflictGroupType",
    "ConflictType",
    "DuplicateGroup",
    "ResolutionResult",
    "ResolutionStrategy",
    "SessionAnomaly",
    "SessionComparison",
    "TakeoverCandidate",
]
