"""Notification events emitted by the session engine.

Delivery (email, push, SMS composition) belongs to the sink; the
engine only describes what happened.
"""

from enum import Enum
from typing import Dict, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, Field

from trustgate.common.clock import UtcDatetime, utc_now


class NotificationType(str, Enum):
    NEW_DEVICE = "new_device"
    NEW_LOCATION = "new_location"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    SECURITY_ALERT = "security_alert"


class NotificationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


DEFAULT_SEVERITY = {
    NotificationType.NEW_DEVICE: NotificationSeverity.INFO,
    NotificationType.NEW_LOCATION: NotificationSeverity.WARNING,
    NotificationType.SUSPICIOUS_ACTIVITY: NotificationSeverity.CRITICAL,
    NotificationType.SECURITY_ALERT: NotificationSeverity.CRITICAL,
}


class NotificationEvent(BaseModel):
    """A structured notification for one user."""
    event_id: str = Field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")
    user_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    notification_type: NotificationType
    severity: NotificationSeverity
    title: str
    message: str
    data: Dict[str, Union[str, int, float, bool, None]] = Field(default_factory=dict)
    created_at: UtcDatetime = Field(default_factory=utc_now)

    @classmethod
    def build(
        cls,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        session_id: Optional[str] = None,
        severity: Optional[NotificationSeverity] = None,
        **data: Union[str, int, float, bool, None],
    ) -> "NotificationEvent":
        return cls(
            user_id=user_id,
            session_id=session_id,
            notification_type=notification_type,
            severity=severity or DEFAULT_SEVERITY[notification_type],
            title=title,
            message=message,
            data=data,
        )
