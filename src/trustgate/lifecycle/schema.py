"""Session lifecycle request and result schemas."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from trustgate.common.clock import UtcDatetime
from trustgate.context.fingerprint import FingerprintSignals
from trustgate.data.schemas import RiskAssessment, RiskLevel, Session
from trustgate.governance.schemas import PolicyValidationResult
from trustgate.notifications.events import NotificationType


class SessionDecision(str, Enum):
    """Outcome of a session creation attempt."""
    ALLOW = "allow"
    STEP_UP = "step_up"
    DENY = "deny"


class CreateSessionRequest(BaseModel):
    """Raw login context for a new session."""
    user_id: str = Field(..., min_length=1)
    ip_address: Optional[str] = Field(default=None, description="Client IP; 'unknown' if absent")
    user_agent: Optional[str] = None
    fingerprint: Optional[str] = Field(default=None, description="Client fingerprint hash")
    fingerprint_signals: Optional[FingerprintSignals] = None
    login_method: str = "password"
    remember_me: bool = False


class CreateSessionResult(BaseModel):
    decision: SessionDecision
    session: Optional[Session] = None
    reasons: List[str] = Field(default_factory=list)
    evicted_session_ids: List[str] = Field(default_factory=list)
    policy: PolicyValidationResult
    risk: Optional[RiskAssessment] = None
    notifications: List[NotificationType] = Field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.decision != SessionDecision.DENY


class ValidationOutcome(BaseModel):
    """Result of validating an existing session on a request."""
    valid: bool
    session_id: str
    session: Optional[Session] = None
    reason: Optional[str] = None
    expired: bool = False
    required_step_up: bool = False
    is_suspicious: bool = False
    is_frozen: bool = False


class TimeoutStatus(BaseModel):
    session_id: str
    expires_at: UtcDatetime = Field(..., description="Earlier of absolute and idle expiry")
    absolute_expires_at: UtcDatetime
    idle_expires_at: UtcDatetime
    remaining_seconds: float
    expired: bool = False
    warning: bool = Field(default=False, description="Expires within the warning window")


class SessionHealth(BaseModel):
    """Point-in-time health summary of one session."""
    session_id: str
    healthy: bool
    trust_level: int
    risk_score: float
    risk_level: RiskLevel
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    checked_at: UtcDatetime
