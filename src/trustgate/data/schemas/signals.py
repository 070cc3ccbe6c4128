"""External signal schema - explicit result of every external lookup.

Geolocation and VPN/proxy reputation checks never raise into scoring.
They return an ExternalSignal, and every signal that was not available
is listed on the resulting risk assessment.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class SignalStatus(str, Enum):
    """Outcome of an external lookup."""
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    SKIPPED = "skipped"


class ExternalSignal(BaseModel):
    """Result of a single external lookup."""
    name: str = Field(..., description="Signal name, e.g. 'geolocation' or 'vpn_proxy'")
    status: SignalStatus = Field(..., description="Whether the lookup produced a value")
    value: Optional[Any] = Field(default=None, description="Signal value when available")
    source: Optional[str] = Field(default=None, description="Provider that produced the value")
    reason: Optional[str] = Field(default=None, description="Why the signal is missing or skipped")

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "geolocation",
                "status": "unavailable",
                "value": None,
                "source": "ip-api",
                "reason": "timeout after 2.0s",
            }
        }
    }

    @classmethod
    def available(cls, name: str, value: Any, source: Optional[str] = None) -> "ExternalSignal":
        return cls(name=name, status=SignalStatus.AVAILABLE, value=value, source=source)

    @classmethod
    def unavailable(cls, name: str, reason: str, source: Optional[str] = None) -> "ExternalSignal":
        return cls(name=name, status=SignalStatus.UNAVAILABLE, reason=reason, source=source)

    @classmethod
    def skipped(cls, name: str, reason: str) -> "ExternalSignal":
        return cls(name=name, status=SignalStatus.SKIPPED, reason=reason)

    @property
    def is_available(self) -> bool:
        return self.status == SignalStatus.AVAILABLE
