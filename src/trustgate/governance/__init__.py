"""Governance - session access policies.

Components:
- SessionPolicyEngine: Evaluates per-user session policies
- Schemas: Attempt, violation and validation result types

Design principles:
- Policies are checked BEFORE a session is persisted
- Every unmet predicate is reported, never collapsed
- Policy defaults are versioned in config/session_policy.yaml
"""

from trustgate.governance.policies.engine import SessionPolicyEngine
from trustgate.governance.schemas import (
    NotificationReason,
    PolicyRules,
    PolicyValidationResult,
    PolicyViolation,
    PolicyViolationType,
    SessionAttempt,
)

__all__ = [
    "SessionPolicyEngine",
    "NotificationReason",
    "PolicyRules",
    "PolicyValidationResult",
    "PolicyViolation",
    "PolicyViolationType",
    "SessionAttempt",
]
