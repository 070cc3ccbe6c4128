"""Periodic sweep of stale sessions and expired activity records.

The sweep only deletes rows whose timestamps are already stale, so it
can run alongside live request handling.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from trustgate.common.clock import as_utc, utc_now
from trustgate.common.constants import SessionLimits
from trustgate.store.base import SessionStore


logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    swept_at: datetime
    expired_session_ids: List[str] = field(default_factory=list)
    purged_activities: int = 0


class SessionSweeper:
    """Runs run_once() on a fixed interval in a daemon thread."""

    def __init__(
        self,
        store: SessionStore,
        interval_seconds: float = 300.0,
        activity_retention: timedelta = SessionLimits.ACTIVITY_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.activity_retention = activity_retention
        self.clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_result: Optional[SweepResult] = None

    def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        now = as_utc(now or self.clock())
        expired = self.store.purge_stale_sessions(now)
        purged = self.store.purge_activities_before(now - self.activity_retention)

        result = SweepResult(swept_at=now, expired_session_ids=expired, purged_activities=purged)
        self.last_result = result
        if expired or purged:
            logger.info(f"Sweep removed {len(expired)} session(s) and {purged} activity record(s)")
        return result

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="SessionSweeper", daemon=True)
        self._thread.start()
        logger.info(f"Session sweeper started (interval {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
