"""Context deriver - device, location and fingerprint context."""

from trustgate.context.deriver import ContextDeriver, SessionContext
from trustgate.context.fingerprint import (
    FingerprintMatch,
    FingerprintSignals,
    compare_fingerprints,
    fingerprint_confidence,
    verify_fingerprint,
)
from trustgate.context.geolocation import (
    GeoIPCache,
    GeolocationResolver,
    IpApiResolver,
    StaticResolver,
)
from trustgate.context.headers import extract_client_ip, is_private_ip, is_valid_ip, normalize_ip
from trustgate.context.user_agent import parse_user_agent

__all__ = [
    "ContextDeriver",
    "SessionContext",
    "FingerprintMatch",
    "FingerprintSignals",
    "compare_fingerprints",
    "fingerprint_confidence",
    "verify_fingerprint",
    "GeoIPCache",
    "GeolocationResolver",
    "IpApiResolver",
    "StaticResolver",
    "extract_client_ip",
    "is_private_ip",
    "is_valid_ip",
    "normalize_ip",
    "parse_user_agent",
]
