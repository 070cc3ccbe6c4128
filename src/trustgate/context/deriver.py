"""Context deriver - raw request metadata into DeviceInfo and LocationInfo."""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from trustgate.common.deadline import Deadline
from trustgate.context.geolocation import GeolocationResolver, IpApiResolver, unknown_location
from trustgate.context.headers import extract_client_ip, normalize_ip
from trustgate.context.user_agent import parse_user_agent
from trustgate.data.schemas import DeviceInfo, ExternalSignal, LocationInfo, SignalStatus


logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Derived context for one request."""
    device: DeviceInfo
    location: LocationInfo
    ip_address: str
    user_agent: Optional[str] = None
    fingerprint: Optional[str] = None
    signals: List[ExternalSignal] = field(default_factory=list)

    @property
    def unavailable_signals(self) -> List[ExternalSignal]:
        return [s for s in self.signals if s.status == SignalStatus.UNAVAILABLE]


class ContextDeriver:
    """Turns IP, user agent and fingerprint into structured context.

    Leaf component: depends only on the geolocation resolver.
    """

    def __init__(self, resolver: Optional[GeolocationResolver] = None):
        self.resolver = resolver or IpApiResolver()

    def derive(
        self,
        ip: Optional[str],
        user_agent: Optional[str] = None,
        fingerprint: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> SessionContext:
        """Derive device and location context.

        Raises:
            ValidationError: If ``ip`` is malformed
        """
        ip_address = normalize_ip(ip)
        device = parse_user_agent(user_agent)

        signal = self.resolver.resolve(ip_address, deadline)
        if isinstance(signal.value, LocationInfo):
            location = signal.value
        else:
            location = unknown_location(ip_address, signal.status)

        logger.debug(
            f"Derived context ip={ip_address} device={device.device_name} "
            f"country={location.country} geolocation={signal.status.value}"
        )
        return SessionContext(
            device=device,
            location=location,
            ip_address=ip_address,
            user_agent=user_agent,
            fingerprint=fingerprint or None,
            signals=[signal],
        )

    def derive_from_headers(
        self,
        headers: Mapping[str, str],
        fingerprint: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> SessionContext:
        lowered = {key.lower(): value for key, value in headers.items()}
        return self.derive(
            extract_client_ip(lowered),
            lowered.get("user-agent"),
            fingerprint=fingerprint,
            deadline=deadline,
        )
