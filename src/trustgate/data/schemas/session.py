"""Session schema - canonical definition."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, Field, model_validator

from trustgate.common.clock import UtcDatetime, as_utc
from trustgate.common.constants import SessionLimits
from trustgate.data.schemas.device import DeviceInfo, DeviceType
from trustgate.data.schemas.location import LocationInfo


class LockType(str, Enum):
    """What a locked session is bound to."""
    IP = "ip"
    FINGERPRINT = "fingerprint"


class SessionLock(BaseModel):
    """Binding of a session to an IP address or fingerprint."""
    lock_type: LockType = Field(..., description="Kind of binding")
    value: str = Field(..., description="Bound IP address or fingerprint hash")
    locked_at: UtcDatetime = Field(..., description="When the lock was applied")


class StepUpRequirement(BaseModel):
    """Pending step-up challenge with a short validity window."""
    challenge_id: str = Field(
        default_factory=lambda: f"stp_{uuid4().hex[:12]}",
        description="Unique challenge identifier"
    )
    reason: str = Field(..., description="Why re-authentication is required")
    requested_at: UtcDatetime = Field(..., description="When the challenge was issued")
    expires_at: UtcDatetime = Field(..., description="When the challenge stops being completable")

    def is_expired(self, now: datetime) -> bool:
        return as_utc(now) > self.expires_at


class Session(BaseModel):
    """Session entity schema.

    One authenticated browser/device binding. Trust level is 0-2,
    expires_at is never earlier than created_at.
    """
    session_id: str = Field(
        default_factory=lambda: f"sess_{uuid4().hex}",
        description="Opaque session identifier"
    )
    user_id: str = Field(..., min_length=1, description="Owning user identifier")
    session_token: str = Field(
        default_factory=lambda: uuid4().hex + uuid4().hex,
        description="Opaque bearer token"
    )

    # Temporal
    created_at: UtcDatetime = Field(..., description="Session creation time")
    last_activity_at: UtcDatetime = Field(..., description="Last recorded activity")
    expires_at: UtcDatetime = Field(..., description="Absolute expiry")

    # Context
    device: DeviceInfo = Field(default_factory=DeviceInfo, description="Derived device context")
    location: LocationInfo = Field(..., description="Resolved location context")
    fingerprint: Optional[str] = Field(default=None, description="Opaque client fingerprint hash")
    fingerprint_confidence: Optional[int] = Field(default=None, ge=0, le=100)

    # Security state
    trust_level: int = Field(default=0, ge=0, le=2, description="0 new, 1 recognized, 2 highly trusted")
    is_suspicious: bool = Field(default=False)
    required_step_up: bool = Field(default=False)
    is_frozen: bool = Field(default=False)
    login_method: str = Field(default="password", description="How the user authenticated")
    remember_me: bool = Field(default=False)
    lock: Optional[SessionLock] = Field(default=None)
    step_up: Optional[StepUpRequirement] = Field(default=None)

    model_config = {
        "json_schema_extra": {
            "example": {
                "session_id": "sess_3f1c2a",
                "user_id": "user_abc123",
                "created_at": "2026-01-25T14:30:00Z",
                "last_activity_at": "2026-01-25T14:42:00Z",
                "expires_at": "2026-01-26T14:30:00Z",
                "device": {
                    "device_type": "desktop",
                    "device_name": "Mac OS X desktop",
                    "browser": "Chrome",
                    "browser_version": "120.0",
                    "os": "Mac OS X",
                    "os_version": "14.2",
                },
                "location": {
                    "ip_address": "203.0.113.7",
                    "country": "United States",
                    "city": "New York",
                    "status": "available",
                },
                "trust_level": 1,
                "is_suspicious": False,
                "required_step_up": False,
                "login_method": "password",
                "remember_me": False,
            }
        }
    }

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Session":
        if self.expires_at < self.created_at:
            raise ValueError("expires_at must not be earlier than created_at")
        return self

    # Convenience accessors used by the comparison and scoring engines

    @property
    def ip_address(self) -> str:
        return self.location.ip_address

    @property
    def country(self) -> Optional[str]:
        return self.location.country

    @property
    def city(self) -> Optional[str]:
        return self.location.city

    @property
    def device_name(self) -> str:
        return self.device.device_name

    @property
    def device_type(self) -> DeviceType:
        return self.device.device_type

    @property
    def idle_timeout(self) -> timedelta:
        if self.remember_me:
            return SessionLimits.REMEMBER_ME_TIMEOUT
        return SessionLimits.STANDARD_IDLE_TIMEOUT

    def is_hard_expired(self, now: datetime) -> bool:
        return as_utc(now) > self.expires_at

    def is_idle_expired(self, now: datetime) -> bool:
        return as_utc(now) - self.last_activity_at > self.idle_timeout


def absolute_timeout(remember_me: bool) -> timedelta:
    """Absolute lifetime for a new session."""
    if remember_me:
        return SessionLimits.REMEMBER_ME_TIMEOUT
    return SessionLimits.STANDARD_ABSOLUTE_TIMEOUT
