"""Location schema - canonical definition."""

from typing import Optional
from pydantic import BaseModel, Field

from trustgate.data.schemas.signals import SignalStatus


class LocationInfo(BaseModel):
    """Resolved location for an IP address.

    Unresolved fields stay None; values are never fabricated.
    """
    ip_address: str = Field(..., description="Client IP address or 'unknown'")
    country: Optional[str] = Field(default=None, description="Country name")
    city: Optional[str] = Field(default=None, description="City name")
    region: Optional[str] = Field(default=None, description="Region / state name")
    timezone: Optional[str] = Field(default=None, description="IANA timezone")
    isp: Optional[str] = Field(default=None, description="Internet service provider")
    status: SignalStatus = Field(
        default=SignalStatus.SKIPPED,
        description="Outcome of the geolocation lookup"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "ip_address": "203.0.113.7",
                "country": "United States",
                "city": "New York",
                "region": "New York",
                "timezone": "America/New_York",
                "isp": "Example ISP",
                "status": "available",
            }
        }
    }

    @property
    def is_resolved(self) -> bool:
        return self.country is not None
