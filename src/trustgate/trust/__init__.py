"""Trust evaluator - trust levels and suspicion heuristics."""

from trustgate.trust.evaluator import (
    DEFAULT_SENSITIVE_ACTIONS,
    SuspicionInputs,
    TrustInputs,
    calculate_trust_level,
    has_rapid_location_change,
    is_suspicious_activity,
    normalize_action,
    reevaluate_trust,
    relevant_history,
    requires_step_up,
    suspicion_score,
    trust_inputs_from_history,
)

__all__ = [
    "DEFAULT_SENSITIVE_ACTIONS",
    "SuspicionInputs",
    "TrustInputs",
    "calculate_trust_level",
    "has_rapid_location_change",
    "is_suspicious_activity",
    "normalize_action",
    "reevaluate_trust",
    "relevant_history",
    "requires_step_up",
    "suspicion_score",
    "trust_inputs_from_history",
]
