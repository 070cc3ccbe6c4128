"""Device schema - canonical definition."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class DeviceType(str, Enum):
    """Device category derived from the user agent."""
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class DeviceInfo(BaseModel):
    """Device context derived from a raw user-agent string.

    device_name is human readable and generated, never client supplied.
    """
    device_type: DeviceType = Field(default=DeviceType.UNKNOWN, description="Device category")
    device_name: str = Field(default="Unknown Device", description="Friendly device name")
    browser: Optional[str] = Field(default=None, description="Browser family")
    browser_version: Optional[str] = Field(default=None, description="Browser version")
    os: Optional[str] = Field(default=None, description="Operating system family")
    os_version: Optional[str] = Field(default=None, description="Operating system version")

    model_config = {
        "json_schema_extra": {
            "example": {
                "device_type": "mobile",
                "device_name": "Apple iPhone",
                "browser": "Mobile Safari",
                "browser_version": "17.0",
                "os": "iOS",
                "os_version": "17.0",
            }
        }
    }
