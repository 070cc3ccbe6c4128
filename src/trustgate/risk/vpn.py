"""VPN / proxy signal providers.

Every provider returns an ExternalSignal whose value is a bool when
available. A provider failure is an unavailable signal, never an error.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import requests

from trustgate.common.config import Config, get_config
from trustgate.common.constants import ContextConstants
from trustgate.common.deadline import Deadline
from trustgate.context.headers import is_private_ip
from trustgate.data.schemas import ExternalSignal


logger = logging.getLogger(__name__)

SIGNAL_NAME = "vpn_proxy"


class VpnDetector(ABC):
    """check(ip) -> ExternalSignal with a bool value."""

    @abstractmethod
    def check(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        pass


class PatternVpnDetector(VpnDetector):
    """Address-pattern heuristic; no network access."""

    SOURCE = "pattern"
    PATTERNS = (
        re.compile(r"^10\."),
        re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),
        re.compile(r"^192\.168\."),
    )

    def check(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        if ip == ContextConstants.UNKNOWN_IP:
            return ExternalSignal.skipped(SIGNAL_NAME, "client IP unknown")
        detected = any(pattern.match(ip) for pattern in self.PATTERNS)
        return ExternalSignal.available(SIGNAL_NAME, detected, source=self.SOURCE)


class IpApiProxyDetector(VpnDetector):
    """Proxy / hosting flags from the ip-api.com endpoint."""

    SOURCE = "ip-api"
    FIELDS = "status,proxy,hosting"

    def __init__(
        self,
        config: Optional[Config] = None,
        http: Optional[requests.Session] = None,
    ):
        config = config or get_config()
        self.url_template = config.geolocation_url
        self.timeout_seconds = config.geolocation_timeout_seconds
        self._http = http or requests.Session()

    def check(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        if ip == ContextConstants.UNKNOWN_IP:
            return ExternalSignal.skipped(SIGNAL_NAME, "client IP unknown")
        if is_private_ip(ip):
            return ExternalSignal.skipped(SIGNAL_NAME, "private or loopback address")

        deadline = deadline or Deadline.unbounded()
        if deadline.expired:
            return ExternalSignal.unavailable(SIGNAL_NAME, "request deadline exceeded", source=self.SOURCE)

        try:
            response = self._http.get(
                self.url_template.format(ip=ip),
                params={"fields": self.FIELDS},
                timeout=deadline.bound(self.timeout_seconds),
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Proxy reputation unavailable for {ip}: {e}")
            return ExternalSignal.unavailable(SIGNAL_NAME, str(e), source=self.SOURCE)

        if not isinstance(data, dict) or data.get("status") != "success":
            return ExternalSignal.unavailable(SIGNAL_NAME, "lookup did not succeed", source=self.SOURCE)

        detected = bool(data.get("proxy")) or bool(data.get("hosting"))
        return ExternalSignal.available(SIGNAL_NAME, detected, source=self.SOURCE)
