"""Anomaly & conflict detector output schemas."""

from enum import Enum
from typing import List, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, Field

from trustgate.data.schemas.risk import Severity


Scalar = Union[str, int, float, bool, None]


class ConflictType(str, Enum):
    """Pairwise comparison classification, in precedence order."""
    DUPLICATE = "duplicate"
    LOCATION_MISMATCH = "location_mismatch"
    TAKEOVER = "takeover"
    SHARED_ACCOUNT = "shared_account"


class AnomalyType(str, Enum):
    MULTIPLE_COUNTRIES = "multiple_countries"
    RAPID_LOGIN = "rapid_login"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


class ConflictGroupType(str, Enum):
    CONCURRENT_LOCATION = "concurrent_location"
    DUPLICATE_DEVICE = "duplicate_device"


class ResolutionStrategy(str, Enum):
    KEEP_NEWEST = "keep_newest"
    KEEP_TRUSTED = "keep_trusted"
    REQUIRE_MANUAL = "require_manual"


class SessionDifference(BaseModel):
    field: str
    value_1: Scalar = None
    value_2: Scalar = None
    significance: Severity


class SessionComparison(BaseModel):
    """Result of comparing two sessions of the same user."""
    session_id_1: str
    session_id_2: str
    similarity: int = Field(..., ge=0, le=100)
    differences: List[SessionDifference] = Field(default_factory=list)
    conflict: bool = False
    conflict_type: Optional[ConflictType] = None
    recommendation: str = "Sessions appear normal"


class SessionAnomaly(BaseModel):
    """Set-level anomaly over a user's active sessions."""
    anomaly_type: AnomalyType
    severity: Severity
    description: str
    session_ids: List[str] = Field(default_factory=list)


class DuplicateGroup(BaseModel):
    """Sessions sharing the same device name and IP address."""
    device_name: str
    ip_address: str
    session_ids: List[str]
    reason: str


class TakeoverCandidate(BaseModel):
    """A session that diverges from the user's most trusted session."""
    session_id: str
    baseline_session_id: str
    indicators: List[str]
    score: int = Field(..., ge=0)
    severity: Severity
    recommendation: str


class ConflictGroup(BaseModel):
    """Sessions in conflict with each other, most recently active first."""
    conflict_id: str = Field(default_factory=lambda: f"cfl_{uuid4().hex[:12]}")
    conflict_type: ConflictGroupType
    severity: Severity
    session_ids: List[str]
    recommendation: str


class BehavioralPattern(BaseModel):
    """Login habits of a user over a trailing window."""
    user_id: str
    total_sessions: int = 0
    login_hours: List[int] = Field(default_factory=list)
    typical_login_hour: int = 0
    devices: List[str] = Field(default_factory=list)
    primary_device: Optional[str] = None
    locations: List[str] = Field(default_factory=list)
    primary_location: Optional[str] = None
    avg_session_duration_minutes: float = 0.0
    avg_activities_per_session: float = 0.0
    anomalies: List[str] = Field(default_factory=list)

    @property
    def has_anomalies(self) -> bool:
        return bool(self.anomalies)


class ResolutionResult(BaseModel):
    """Outcome of automatic conflict resolution."""
    user_id: str
    strategy: ResolutionStrategy
    resolved: int = 0
    deleted_session_ids: List[str] = Field(default_factory=list)
    resolved_conflict_ids: List[str] = Field(default_factory=list)
    reported_conflicts: List[ConflictGroup] = Field(
        default_factory=list,
        description="Conflicts left in place (below high severity or manual strategy)"
    )
    manual_review_requested: bool = False
    message: str = ""
