"""Policies module - per-user session access constraints.

Provides deterministic, side-effect free policy evaluation.
"""

from trustgate.governance.policies.engine import (
    SessionPolicyEngine,
    is_country_allowed,
    is_device_type_allowed,
    is_fingerprint_allowed,
    is_ip_allowed,
    is_time_allowed,
)

__all__ = [
    "SessionPolicyEngine",
    "is_country_allowed",
    "is_device_type_allowed",
    "is_fingerprint_allowed",
    "is_ip_allowed",
    "is_time_allowed",
]
