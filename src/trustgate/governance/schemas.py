"""Governance schemas - session policy evaluation types."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field

from trustgate.common.clock import UtcDatetime, utc_now
from trustgate.data.schemas import DeviceType, SessionPolicy
from trustgate.trust.evaluator import DEFAULT_SENSITIVE_ACTIONS


class PolicyViolationType(str, Enum):
    """Types of session policy violations."""
    IP_NOT_ALLOWED = "ip_not_allowed"
    COUNTRY_NOT_ALLOWED = "country_not_allowed"
    OUTSIDE_TIME_WINDOW = "outside_time_window"
    DEVICE_TYPE_NOT_ALLOWED = "device_type_not_allowed"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    LOCATION_CHANGED = "location_changed"
    IP_CHANGED = "ip_changed"


VIOLATION_REASONS = {
    PolicyViolationType.IP_NOT_ALLOWED: "IP address not allowed",
    PolicyViolationType.COUNTRY_NOT_ALLOWED: "Country not allowed",
    PolicyViolationType.OUTSIDE_TIME_WINDOW: "Access outside allowed time window",
    PolicyViolationType.DEVICE_TYPE_NOT_ALLOWED: "Device type not allowed",
    PolicyViolationType.FINGERPRINT_MISMATCH: "Device fingerprint does not match",
    PolicyViolationType.LOCATION_CHANGED: "Location changed - auto logout",
    PolicyViolationType.IP_CHANGED: "IP address changed - auto logout",
}

# Logout triggers are reported as reasons but do not deny access
LOGOUT_VIOLATIONS = frozenset({
    PolicyViolationType.LOCATION_CHANGED,
    PolicyViolationType.IP_CHANGED,
})


class NotificationReason(str, Enum):
    NEW_DEVICE = "New device detected"
    NEW_LOCATION = "New location detected"
    SUSPICIOUS = "Suspicious activity detected"


class PolicyViolation(BaseModel):
    """A single policy violation record."""
    violation_id: str = Field(
        default_factory=lambda: f"vio_{uuid4().hex[:12]}",
        description="Unique violation identifier"
    )
    violation_type: PolicyViolationType
    message: str
    actual_value: Optional[str] = Field(default=None, description="Offending value, if any")


class SessionAttempt(BaseModel):
    """Facts about a session attempt or request that policies judge."""
    ip_address: str = Field(..., description="Client IP or 'unknown'")
    country: Optional[str] = None
    device_type: Optional[DeviceType] = None
    is_new_device: bool = False
    is_new_location: bool = False
    ip_changed: bool = False
    location_changed: bool = False
    action: Optional[str] = Field(default=None, description="Requested action, checked for sensitivity")
    is_sensitive_action: bool = False
    is_suspicious: bool = False
    fingerprint: Optional[str] = None
    stored_fingerprint: Optional[str] = None
    at: Optional[datetime] = Field(default=None, description="Evaluation time; defaults to now")


class PolicyValidationResult(BaseModel):
    """Outcome of validating an attempt against a session policy.

    Every unmet predicate contributes a reason; nothing is short-circuited.
    """
    check_id: str = Field(default_factory=lambda: f"chk_{uuid4().hex[:12]}")
    checked_at: UtcDatetime = Field(default_factory=utc_now)
    user_id: str
    allowed: bool = True
    reasons: List[str] = Field(default_factory=list)
    violations: List[PolicyViolation] = Field(default_factory=list)
    requires_step_up: bool = False
    should_logout: bool = False
    should_notify: bool = False
    notification_reason: Optional[str] = None
    policy_version: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "user_abc123",
                "allowed": False,
                "reasons": ["IP address not allowed", "Access outside allowed time window"],
                "requires_step_up": False,
                "should_logout": False,
                "should_notify": True,
                "notification_reason": "New device detected",
            }
        }
    }


class PolicyRules(BaseModel):
    """Parsed contents of session_policy.yaml."""

    class Metadata(BaseModel):
        version: str = "0.0.0"
        last_updated: Optional[str] = None
        description: Optional[str] = None

    metadata: Metadata = Field(default_factory=Metadata)
    default_policy: SessionPolicy = Field(default_factory=SessionPolicy)
    sensitive_actions: List[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_ACTIONS))
