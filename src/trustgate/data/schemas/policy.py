"""Session policy schema - one per user, defaulted when absent."""

import ipaddress
import re
from datetime import datetime, time, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field, field_validator

from trustgate.common.constants import SessionLimits
from trustgate.data.schemas.device import DeviceType


_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> time:
    match = _HHMM.match(value)
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


class SessionPolicy(BaseModel):
    """Per-user session access policy.

    Empty allow lists mean "no restriction". Block lists always win.
    Weekdays use 0 = Sunday through 6 = Saturday.
    """
    user_id: Optional[str] = Field(default=None, description="Owner; None for the default policy")

    # Network
    allowed_ips: List[str] = Field(default_factory=list, description="IPs or CIDR ranges")
    blocked_ips: List[str] = Field(default_factory=list, description="IPs or CIDR ranges")

    # Geography
    allowed_countries: List[str] = Field(default_factory=list)
    blocked_countries: List[str] = Field(default_factory=list)

    # Time
    allowed_days: List[int] = Field(default_factory=lambda: list(range(7)))
    allowed_time_start: str = Field(default="00:00")
    allowed_time_end: str = Field(default="23:59")
    timezone: str = Field(default="UTC")

    # Devices
    allowed_device_types: List[DeviceType] = Field(default_factory=list)
    blocked_device_types: List[DeviceType] = Field(default_factory=list)
    max_concurrent_sessions: int = Field(
        default=SessionLimits.MAX_CONCURRENT_SESSIONS, ge=1, le=100
    )

    # Security flags
    require_step_up_for_sensitive: bool = False
    auto_logout_on_location_change: bool = False
    auto_logout_on_ip_change: bool = False
    require_fingerprint_match: bool = False

    # Notification flags
    notify_on_new_device: bool = True
    notify_on_new_location: bool = True
    notify_on_suspicious: bool = True

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "user_abc123",
                "allowed_ips": [],
                "blocked_ips": ["198.51.100.0/24"],
                "allowed_countries": [],
                "blocked_countries": ["North Korea"],
                "allowed_days": [1, 2, 3, 4, 5],
                "allowed_time_start": "08:00",
                "allowed_time_end": "18:00",
                "timezone": "Europe/Berlin",
                "max_concurrent_sessions": 3,
            }
        }
    }

    @field_validator("allowed_ips", "blocked_ips")
    @classmethod
    def _validate_networks(cls, values: List[str]) -> List[str]:
        cleaned = []
        for value in values:
            value = value.strip()
            try:
                ipaddress.ip_network(value, strict=False)
            except ValueError:
                raise ValueError(f"Invalid IP address or CIDR range: {value!r}")
            cleaned.append(value)
        return cleaned

    @field_validator("allowed_days")
    @classmethod
    def _validate_days(cls, values: List[int]) -> List[int]:
        for day in values:
            if not 0 <= day <= 6:
                raise ValueError(f"Invalid weekday {day}, expected 0 (Sunday) to 6 (Saturday)")
        return sorted(set(values))

    @field_validator("allowed_time_start", "allowed_time_end")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        parse_hhmm(value)
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @property
    def tzinfo(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    @property
    def window_start(self) -> time:
        return parse_hhmm(self.allowed_time_start)

    @property
    def window_end(self) -> time:
        return parse_hhmm(self.allowed_time_end)

    @property
    def is_full_day(self) -> bool:
        return self.allowed_time_start == "00:00" and self.allowed_time_end == "23:59"

    def local_time(self, moment: datetime) -> datetime:
        return moment.astimezone(self.tzinfo)
