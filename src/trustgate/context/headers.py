"""Client IP extraction from proxy-forwarded request headers."""

import ipaddress
from typing import Mapping, Optional

from trustgate.common.constants import ContextConstants
from trustgate.common.exceptions import ValidationError


# Only these short-circuit to a synthetic local location; documentation
# and other reserved ranges are still resolved.
LOCAL_NETWORKS = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("::1/128"),
)

# Checked in this order; the first non-empty value wins
IP_HEADER_PRECEDENCE = (
    "cf-connecting-ip",
    "x-real-ip",
    "x-forwarded-for",
    "x-client-ip",
)


def extract_client_ip(headers: Mapping[str, str]) -> str:
    """Pick the client IP from proxy headers.

    x-forwarded-for contributes only its first comma-separated entry.
    Returns "unknown" when no header carries a value.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in IP_HEADER_PRECEDENCE:
        value = lowered.get(name)
        if not value:
            continue
        if name == "x-forwarded-for":
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value
    return ContextConstants.UNKNOWN_IP


def normalize_ip(raw_ip: Optional[str]) -> str:
    """Validate an IP string; "unknown" and empty input map to "unknown".

    Raises:
        ValidationError: If the value is not a valid IPv4/IPv6 address
    """
    if raw_ip is None:
        return ContextConstants.UNKNOWN_IP
    value = raw_ip.strip()
    if not value or value.lower() == ContextConstants.UNKNOWN_IP:
        return ContextConstants.UNKNOWN_IP
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise ValidationError(f"Malformed IP address: {raw_ip!r}", details={"ip": raw_ip})


def is_private_ip(ip: str) -> bool:
    """True for the local ranges that are never geolocated."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in LOCAL_NETWORKS)


def is_valid_ip(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True
