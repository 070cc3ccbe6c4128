"""Data schemas - canonical Pydantic definitions."""

from trustgate.data.schemas.signals import ExternalSignal, SignalStatus
from trustgate.data.schemas.device import DeviceInfo, DeviceType
from trustgate.data.schemas.location import LocationInfo
from trustgate.data.schemas.session import (
    LockType,
    Session,
    SessionLock,
    StepUpRequirement,
    absolute_timeout,
)
from trustgate.data.schemas.activity import (
    ActivityDetail,
    LockDetail,
    LoginDetail,
    LogoutDetail,
    OtherDetail,
    SessionActivity,
    StepUpDetail,
)
from trustgate.data.schemas.risk import (
    FactorKind,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    RiskStatistics,
    Severity,
)
from trustgate.data.schemas.policy import SessionPolicy

__all__ = [
    "ExternalSignal",
    "SignalStatus",
    "DeviceInfo",
    "DeviceType",
    "LocationInfo",
    "LockType",
    "Session",
    "SessionLock",
    "StepUpRequirement",
    "absolute_timeout",
    "ActivityDetail",
    "LockDetail",
    "LoginDetail",
    "LogoutDetail",
    "OtherDetail",
    "SessionActivity",
    "StepUpDetail",
    "FactorKind",
    "RiskAssessment",
    "RiskFactor",
    "RiskLevel",
    "RiskStatistics",
    "Severity",
    "SessionPolicy",
]
