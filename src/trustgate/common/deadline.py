"""Request-scoped deadline propagated to blocking network calls."""

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class Deadline:
    """Absolute point in monotonic time after which work must stop.

    A deadline of ``None`` expiry never expires.
    """

    expires_at: Optional[float] = None
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_timeout(
        cls,
        timeout_seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ) -> "Deadline":
        if timeout_seconds is None:
            return cls(None, clock)
        return cls(clock() + timeout_seconds, clock)

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, never negative. ``None`` when unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def bound(self, timeout_seconds: float) -> float:
        """Clamp a per-call timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout_seconds
        return min(timeout_seconds, remaining)
