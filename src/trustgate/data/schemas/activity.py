"""Session activity schema - append-only log entries.

detail is a tagged union on ``kind``; unknown payloads use the
``other`` variant with scalar-only attributes.
"""

from typing import Annotated, Dict, Literal, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, Field

from trustgate.common.clock import UtcDatetime
from trustgate.data.schemas.session import LockType


Scalar = Union[str, int, float, bool, None]


class LoginDetail(BaseModel):
    kind: Literal["login"] = "login"
    login_method: str = "password"
    trust_level: int = Field(default=0, ge=0, le=2)
    risk_score: Optional[float] = None


class LogoutDetail(BaseModel):
    kind: Literal["logout"] = "logout"
    reason: str = "user_logout"


class StepUpDetail(BaseModel):
    kind: Literal["step_up"] = "step_up"
    outcome: Literal["requested", "completed", "expired", "failed"]
    reason: Optional[str] = None


class LockDetail(BaseModel):
    kind: Literal["lock"] = "lock"
    locked: bool = True
    lock_type: Optional[LockType] = None


class OtherDetail(BaseModel):
    kind: Literal["other"] = "other"
    label: str
    attributes: Dict[str, Scalar] = Field(default_factory=dict)


ActivityDetail = Annotated[
    Union[LoginDetail, LogoutDetail, StepUpDetail, LockDetail, OtherDetail],
    Field(discriminator="kind"),
]


class SessionActivity(BaseModel):
    """A single activity log entry owned by one session."""
    activity_id: str = Field(
        default_factory=lambda: f"act_{uuid4().hex[:16]}",
        description="Unique activity identifier"
    )
    session_id: str = Field(..., description="Owning session")
    user_id: str = Field(..., description="Owning user")
    action: str = Field(..., min_length=1, description="Action name, e.g. 'login'")
    endpoint: Optional[str] = Field(default=None)
    method: Optional[str] = Field(default=None)
    status_code: Optional[int] = Field(default=None)
    duration_ms: Optional[float] = Field(default=None, ge=0)
    is_error: bool = Field(default=False)
    is_suspicious: bool = Field(default=False)
    ip_address: Optional[str] = Field(default=None, description="IP snapshot")
    user_agent: Optional[str] = Field(default=None, description="User-agent snapshot")
    timestamp: UtcDatetime = Field(..., description="When the activity happened")
    detail: Optional[ActivityDetail] = Field(default=None)

    model_config = {
        "json_schema_extra": {
            "example": {
                "session_id": "sess_3f1c2a",
                "user_id": "user_abc123",
                "action": "login",
                "is_error": False,
                "ip_address": "203.0.113.7",
                "timestamp": "2026-01-25T14:30:00Z",
                "detail": {"kind": "login", "login_method": "password", "trust_level": 1},
            }
        }
    }
