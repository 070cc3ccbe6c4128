"""IP geolocation with a TTL cache and fail-open semantics.

Private and loopback addresses are never sent to the external resolver.
Transport and parse failures yield an unavailable signal and an all-null
location; they never raise to the caller.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import requests

from trustgate.common.config import Config, get_config
from trustgate.common.constants import ContextConstants
from trustgate.common.deadline import Deadline
from trustgate.common.exceptions import ConfigurationError, DependencyUnavailableError
from trustgate.context.headers import is_private_ip
from trustgate.data.schemas import ExternalSignal, LocationInfo, SignalStatus


logger = logging.getLogger(__name__)

SIGNAL_NAME = "geolocation"


class GeoIPCache:
    """In-memory TTL cache for resolved locations."""

    def __init__(
        self,
        ttl_seconds: float = ContextConstants.GEOLOCATION_MIN_CACHE_TTL_SECONDS,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds < ContextConstants.GEOLOCATION_MIN_CACHE_TTL_SECONDS:
            raise ConfigurationError(
                "Geolocation cache TTL must be at least one hour",
                details={"ttl_seconds": ttl_seconds},
            )
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[LocationInfo, float]] = {}  # ip -> (location, stored_at)

    def get(self, ip: str) -> Optional[LocationInfo]:
        with self._lock:
            entry = self._cache.get(ip)
            if entry is None:
                return None
            location, stored_at = entry
            if self._clock() - stored_at < self.ttl_seconds:
                return location.model_copy()
            del self._cache[ip]
            return None

    def put(self, ip: str, location: LocationInfo) -> None:
        with self._lock:
            # Evict oldest entry if at capacity
            if ip not in self._cache and len(self._cache) >= self.max_size:
                oldest = min(self._cache, key=lambda key: self._cache[key][1])
                del self._cache[oldest]
            self._cache[ip] = (location.model_copy(), self._clock())

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


def unknown_location(ip: str, status: SignalStatus = SignalStatus.UNAVAILABLE) -> LocationInfo:
    return LocationInfo(ip_address=ip, status=status)


def local_location(ip: str) -> LocationInfo:
    return LocationInfo(
        ip_address=ip,
        country=ContextConstants.LOCAL_COUNTRY,
        city=ContextConstants.LOCAL_CITY,
        status=SignalStatus.SKIPPED,
    )


class GeolocationResolver(ABC):
    """resolve(ip) -> location signal; never raises for lookup failures."""

    @abstractmethod
    def resolve(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        pass

    def locate(self, ip: str, deadline: Optional[Deadline] = None) -> LocationInfo:
        """Resolve and always return a LocationInfo (all-null when unknown)."""
        signal = self.resolve(ip, deadline)
        if isinstance(signal.value, LocationInfo):
            return signal.value
        return unknown_location(ip, signal.status)


class IpApiResolver(GeolocationResolver):
    """Resolver backed by the ip-api.com JSON endpoint via requests."""

    SOURCE = "ip-api"

    def __init__(
        self,
        config: Optional[Config] = None,
        cache: Optional[GeoIPCache] = None,
        http: Optional[requests.Session] = None,
    ):
        config = config or get_config()
        self.url_template = config.geolocation_url
        self.timeout_seconds = config.geolocation_timeout_seconds
        self.cache = cache or GeoIPCache(ttl_seconds=config.geolocation_cache_ttl_seconds)
        self._http = http or requests.Session()

    def resolve(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        if ip == ContextConstants.UNKNOWN_IP:
            return ExternalSignal.skipped(SIGNAL_NAME, "client IP unknown")

        if is_private_ip(ip):
            return ExternalSignal(
                name=SIGNAL_NAME,
                status=SignalStatus.SKIPPED,
                value=local_location(ip),
                reason="private or loopback address",
            )

        cached = self.cache.get(ip)
        if cached is not None:
            return ExternalSignal.available(SIGNAL_NAME, cached, source=f"{self.SOURCE}:cache")

        deadline = deadline or Deadline.unbounded()
        try:
            location = self._fetch(ip, deadline)
        except DependencyUnavailableError as e:
            logger.warning(f"Geolocation unavailable for {ip}: {e.message}")
            return ExternalSignal.unavailable(SIGNAL_NAME, e.message, source=self.SOURCE)

        self.cache.put(ip, location)
        return ExternalSignal.available(SIGNAL_NAME, location, source=self.SOURCE)

    def _fetch(self, ip: str, deadline: Deadline) -> LocationInfo:
        if deadline.expired:
            raise DependencyUnavailableError("request deadline exceeded", dependency=SIGNAL_NAME)

        timeout = deadline.bound(self.timeout_seconds)
        try:
            response = self._http.get(
                self.url_template.format(ip=ip),
                params={"fields": ContextConstants.GEOLOCATION_FIELDS},
                timeout=timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise DependencyUnavailableError(f"lookup failed: {e}", dependency=SIGNAL_NAME)
        except ValueError as e:
            raise DependencyUnavailableError(f"invalid response: {e}", dependency=SIGNAL_NAME)

        if not isinstance(data, dict) or data.get("status") != "success":
            raise DependencyUnavailableError(
                "lookup did not succeed",
                dependency=SIGNAL_NAME,
                details={"response_status": data.get("status") if isinstance(data, dict) else None},
            )

        return LocationInfo(
            ip_address=ip,
            country=data.get("country") or None,
            city=data.get("city") or None,
            region=data.get("regionName") or None,
            timezone=data.get("timezone") or None,
            isp=data.get("isp") or None,
            status=SignalStatus.AVAILABLE,
        )


class StaticResolver(GeolocationResolver):
    """Resolver over a fixed table; unknown IPs resolve to unavailable."""

    SOURCE = "static"

    def __init__(self, table: Optional[Dict[str, LocationInfo]] = None):
        self.table = dict(table or {})

    def resolve(self, ip: str, deadline: Optional[Deadline] = None) -> ExternalSignal:
        if ip == ContextConstants.UNKNOWN_IP:
            return ExternalSignal.skipped(SIGNAL_NAME, "client IP unknown")
        if is_private_ip(ip):
            return ExternalSignal(
                name=SIGNAL_NAME,
                status=SignalStatus.SKIPPED,
                value=local_location(ip),
                reason="private or loopback address",
            )
        location = self.table.get(ip)
        if location is None:
            return ExternalSignal.unavailable(SIGNAL_NAME, "no entry", source=self.SOURCE)
        return ExternalSignal.available(
            SIGNAL_NAME,
            location.model_copy(update={"ip_address": ip, "status": SignalStatus.AVAILABLE}),
            source=self.SOURCE,
        )
