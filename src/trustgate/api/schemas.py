"""API Schemas - Request/Response models for the session decision surface.

Responses never expose session tokens except on creation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from trustgate.anomaly.schema import ResolutionStrategy
from trustgate.context.fingerprint import FingerprintSignals
from trustgate.data.schemas import DeviceType, LockType, RiskLevel, Session
from trustgate.lifecycle.schema import SessionDecision
from trustgate.notifications.events import NotificationType


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CreateSessionBody(BaseModel):
    """Login context. IP and user agent fall back to request headers."""
    user_id: str = Field(..., min_length=1, description="Authenticated user")
    ip_address: Optional[str] = Field(default=None, description="Client IP address")
    user_agent: Optional[str] = Field(default=None, description="Client user-agent string")
    fingerprint: Optional[str] = Field(default=None, description="Client fingerprint hash")
    fingerprint_signals: Optional[FingerprintSignals] = None
    login_method: str = Field(default="password")
    remember_me: bool = Field(default=False)

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "user_abc123",
                "ip_address": "203.0.113.7",
                "user_agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) Chrome/120.0",
                "login_method": "password",
                "remember_me": False,
            }
        }
    }


class ValidateSessionBody(BaseModel):
    ip_address: Optional[str] = Field(default=None, description="Current client IP")
    fingerprint: Optional[str] = Field(default=None, description="Current client fingerprint")


class ActivityBody(BaseModel):
    action: str = Field(..., min_length=1, description="Action name")
    endpoint: Optional[str] = None
    method: Optional[str] = None
    status_code: Optional[int] = Field(default=None, ge=100, le=599)
    duration_ms: Optional[float] = Field(default=None, ge=0)
    is_error: Optional[bool] = Field(default=None, description="Derived from status_code when omitted")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class LockBody(BaseModel):
    lock_type: LockType = Field(default=LockType.IP)
    value: Optional[str] = Field(default=None, description="Defaults to the session's own IP or fingerprint")


class StepUpBody(BaseModel):
    reason: str = Field(default="Sensitive action")


class StepUpCompleteBody(BaseModel):
    challenge_id: Optional[str] = None


class FreezeBody(BaseModel):
    reason: str = Field(default="Suspicious activity")


class UnfreezeBody(BaseModel):
    verified: bool = Field(..., description="Whether the user passed re-verification")


class ResolveConflictsBody(BaseModel):
    strategy: ResolutionStrategy = Field(default=ResolutionStrategy.KEEP_NEWEST)


class PolicyValidateBody(BaseModel):
    """Inputs of validateSessionPolicy."""
    user_id: str = Field(..., min_length=1)
    ip_address: str = Field(..., description="Client IP or 'unknown'")
    country: Optional[str] = None
    device_type: Optional[DeviceType] = None
    is_new_device: bool = False
    is_new_location: bool = False
    ip_changed: bool = False
    location_changed: bool = False
    action: Optional[str] = None
    is_sensitive_action: bool = False
    is_suspicious: bool = False
    fingerprint: Optional[str] = None
    stored_fingerprint: Optional[str] = None
    at: Optional[datetime] = None


class RiskAssessBody(BaseModel):
    """Inputs of calculateSessionRisk."""
    user_id: str = Field(..., min_length=1)
    ip_address: str = Field(..., description="Client IP or 'unknown'")
    country: Optional[str] = None
    city: Optional[str] = None
    device_name: Optional[str] = None
    is_new_device: bool = False
    is_new_location: bool = False
    session_id: Optional[str] = None


class PolicyUpdateBody(BaseModel):
    updates: Dict[str, Any] = Field(..., description="SessionPolicy fields to change")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class SessionSummary(BaseModel):
    session_id: str
    user_id: str
    device_name: str
    device_type: DeviceType
    ip_address: str
    country: Optional[str] = None
    city: Optional[str] = None
    trust_level: int
    is_suspicious: bool
    required_step_up: bool
    is_frozen: bool
    remember_me: bool
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummary":
        return cls(
            session_id=session.session_id,
            user_id=session.user_id,
            device_name=session.device_name,
            device_type=session.device_type,
            ip_address=session.ip_address,
            country=session.country,
            city=session.city,
            trust_level=session.trust_level,
            is_suspicious=session.is_suspicious,
            required_step_up=session.required_step_up,
            is_frozen=session.is_frozen,
            remember_me=session.remember_me,
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
            expires_at=session.expires_at,
        )


class CreateSessionResponse(BaseModel):
    decision: SessionDecision
    session: Optional[SessionSummary] = None
    session_token: Optional[str] = Field(default=None, description="Bearer token of the new session")
    reasons: List[str] = Field(default_factory=list)
    evicted_session_ids: List[str] = Field(default_factory=list)
    risk_score: Optional[float] = None
    risk_level: Optional[RiskLevel] = None
    notifications: List[NotificationType] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "decision": "allow",
                "session": {"session_id": "sess_3f1c2a", "trust_level": 1},
                "reasons": [],
                "evicted_session_ids": [],
                "risk_score": 12.5,
                "risk_level": "low",
                "notifications": ["new_device"],
            }
        }
    }


class ValidateSessionResponse(BaseModel):
    valid: bool
    session_id: str
    reason: Optional[str] = None
    expired: bool = False
    required_step_up: bool = False
    is_suspicious: bool = False
    is_frozen: bool = False


class ActivityResponse(BaseModel):
    logged: bool
    activity_id: Optional[str] = None


class StepUpResponse(BaseModel):
    session_id: str
    challenge_id: str
    reason: str
    expires_at: datetime


class StepUpCompleteResponse(BaseModel):
    session_id: str
    completed: bool


class RevokeResponse(BaseModel):
    revoked_session_ids: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = Field(
        default=None, description="Request ID for debugging"
    )
