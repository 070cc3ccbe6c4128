"""Risk assessment schema - per-evaluation, never persisted verbatim.

RiskFactor is a tagged union on ``kind``. Each variant carries typed
evidence; ``other`` keeps forward compatibility with a label and
scalar-only attributes.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, Field

from trustgate.common.clock import UtcDatetime, utc_now
from trustgate.data.schemas.signals import ExternalSignal


Scalar = Union[str, int, float, bool, None]


class Severity(str, Enum):
    """Severity / risk level bands."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Risk levels share the severity bands
RiskLevel = Severity


class FactorKind(str, Enum):
    NEW_DEVICE = "new_device"
    NEW_COUNTRY = "new_country"
    NEW_CITY = "new_city"
    IMPOSSIBLE_TRAVEL = "impossible_travel"
    FAILED_ATTEMPTS = "failed_attempts"
    UNUSUAL_TIME = "unusual_time"
    SUSPICIOUS_HISTORY = "suspicious_history"
    VPN_PROXY = "vpn_proxy"
    RAPID_LOGINS = "rapid_logins"
    OTHER = "other"


class _FactorBase(BaseModel):
    name: str = Field(..., description="Display name of the factor")
    score: float = Field(..., ge=0.0, le=100.0)
    weight: float = Field(..., ge=0.0, le=1.0)
    severity: Severity
    description: str

    @property
    def contribution(self) -> float:
        return self.score * self.weight


class NewDeviceFactor(_FactorBase):
    kind: Literal["new_device"] = "new_device"
    has_prior_devices: bool = False


class NewCountryFactor(_FactorBase):
    kind: Literal["new_country"] = "new_country"
    country: str
    known_countries: List[str] = Field(default_factory=list)


class NewCityFactor(_FactorBase):
    kind: Literal["new_city"] = "new_city"
    city: Optional[str] = None


class ImpossibleTravelFactor(_FactorBase):
    kind: Literal["impossible_travel"] = "impossible_travel"
    previous_country: str
    current_country: str
    hours_between: float


class FailedAttemptsFactor(_FactorBase):
    kind: Literal["failed_attempts"] = "failed_attempts"
    failed_attempts: int


class UnusualTimeFactor(_FactorBase):
    kind: Literal["unusual_time"] = "unusual_time"
    login_hour: int
    typical_hour: float


class SuspiciousHistoryFactor(_FactorBase):
    kind: Literal["suspicious_history"] = "suspicious_history"
    suspicious_sessions: int


class VpnProxyFactor(_FactorBase):
    kind: Literal["vpn_proxy"] = "vpn_proxy"
    source: Optional[str] = None


class RapidLoginsFactor(_FactorBase):
    kind: Literal["rapid_logins"] = "rapid_logins"
    recent_sessions: int


class OtherFactor(_FactorBase):
    kind: Literal["other"] = "other"
    label: str
    attributes: Dict[str, Scalar] = Field(default_factory=dict)


RiskFactor = Annotated[
    Union[
        NewDeviceFactor,
        NewCountryFactor,
        NewCityFactor,
        ImpossibleTravelFactor,
        FailedAttemptsFactor,
        UnusualTimeFactor,
        SuspiciousHistoryFactor,
        VpnProxyFactor,
        RapidLoginsFactor,
        OtherFactor,
    ],
    Field(discriminator="kind"),
]


class RiskAssessment(BaseModel):
    """Weighted risk evaluation of one session attempt.

    Only its side effects (suspicious flag, block, step-up) are stored.
    """
    assessment_id: str = Field(
        default_factory=lambda: f"risk_{uuid4().hex[:12]}",
        description="Unique assessment identifier"
    )
    user_id: str = Field(..., description="Evaluated user")
    session_id: Optional[str] = Field(default=None, description="Evaluated session, if any")
    factors: List[RiskFactor] = Field(default_factory=list, description="Factors in evaluation order")
    total_score: float = Field(..., ge=0.0, le=100.0, description="Weighted total, clamped")
    risk_level: RiskLevel
    should_block: bool = False
    should_require_step_up: bool = False
    should_notify: bool = False
    recommendations: List[str] = Field(default_factory=list)
    unavailable_signals: List[ExternalSignal] = Field(
        default_factory=list,
        description="External signals that could not contribute"
    )
    assessed_at: UtcDatetime = Field(default_factory=utc_now)

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "user_abc123",
                "factors": [
                    {
                        "kind": "new_country",
                        "name": "New Country",
                        "score": 50,
                        "weight": 0.2,
                        "severity": "high",
                        "description": "First login from Japan",
                        "country": "Japan",
                        "known_countries": ["United States"],
                    }
                ],
                "total_score": 10.0,
                "risk_level": "low",
                "should_block": False,
                "should_require_step_up": False,
                "should_notify": False,
                "recommendations": [],
                "unavailable_signals": [],
            }
        }
    }

    @property
    def fired_kinds(self) -> List[str]:
        return [factor.kind for factor in self.factors]

    def has_factor(self, kind: Union[FactorKind, str]) -> bool:
        value = kind.value if isinstance(kind, FactorKind) else kind
        return value in self.fired_kinds


class FactorCount(BaseModel):
    name: str
    count: int


class RiskStatistics(BaseModel):
    """Aggregate view over retroactive assessments of a user's sessions."""
    user_id: str
    total_sessions: int = 0
    risk_levels: Dict[str, int] = Field(
        default_factory=lambda: {level.value: 0 for level in Severity}
    )
    average_score: float = 0.0
    top_factors: List[FactorCount] = Field(default_factory=list)
    recent_high_risk: List[str] = Field(
        default_factory=list,
        description="Session ids assessed high or critical, newest first"
    )
