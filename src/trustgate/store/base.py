"""Store interfaces consumed by the engine.

The engine never dictates a storage engine. Mutations are expressed as
conditional, idempotent operations (upsert-by-key, delete-by-id) so that
concurrent requests for the same user cannot bypass the session cap.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from trustgate.common.constants import SessionLimits
from trustgate.data.schemas import SessionActivity, SessionPolicy, Session


class SessionStore(ABC):
    """Abstract base class for session and activity storage.

    Implementations must make insert_session_with_cap atomic with respect
    to other writers for the same user.
    """

    # ---- sessions ----

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session by id, or None."""
        pass

    @abstractmethod
    def get_session_by_token(self, session_token: str) -> Optional[Session]:
        """Get a session by bearer token, or None."""
        pass

    @abstractmethod
    def list_sessions_for_user(
        self,
        user_id: str,
        active_at: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Session]:
        """List a user's sessions, newest first.

        Args:
            user_id: Owning user
            active_at: When given, only sessions not hard-expired at this time
            limit: Maximum number of sessions to return
        """
        pass

    @abstractmethod
    def list_sessions_created_since(self, user_id: str, since: datetime) -> List[Session]:
        """List a user's sessions created at or after ``since``, newest first."""
        pass

    @abstractmethod
    def insert_session_with_cap(self, session: Session, max_sessions: int) -> List[str]:
        """Atomically evict least-recently-active sessions and insert.

        After the call the user holds at most ``max_sessions`` sessions,
        including the new one.

        Returns:
            Ids of evicted sessions
        """
        pass

    @abstractmethod
    def update_session(self, session_id: str, changes: Dict[str, Any]) -> Optional[Session]:
        """Apply field changes to an existing session.

        No-op returning None when the session does not exist.
        """
        pass

    @abstractmethod
    def touch_session(self, session_id: str, at: datetime) -> Optional[Session]:
        """Move last_activity_at forward to ``at``; never moves it backward."""
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Delete a session and its activities. Idempotent."""
        pass

    def delete_sessions(self, session_ids: List[str]) -> List[str]:
        """Delete several sessions; returns ids that existed."""
        return [sid for sid in session_ids if self.delete_session(sid)]

    @abstractmethod
    def delete_user_sessions(
        self,
        user_id: str,
        except_session_id: Optional[str] = None,
    ) -> List[str]:
        """Delete all of a user's sessions, optionally keeping one."""
        pass

    # ---- activities ----

    @abstractmethod
    def add_activity(self, activity: SessionActivity) -> None:
        """Append an activity to its owning session's log."""
        pass

    @abstractmethod
    def list_activities(self, session_id: str, limit: Optional[int] = None) -> List[SessionActivity]:
        """List a session's activities in timestamp order."""
        pass

    @abstractmethod
    def list_user_activities(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> List[SessionActivity]:
        """List all activities across a user's sessions in timestamp order."""
        pass

    def count_failed_logins(self, user_id: str, since: datetime) -> int:
        """Count failed login activities for a user since ``since``."""
        return sum(
            1
            for activity in self.list_user_activities(user_id, since)
            if activity.is_error and activity.action == "login"
        )

    # ---- maintenance ----

    @abstractmethod
    def purge_stale_sessions(
        self,
        now: datetime,
        standard_idle: timedelta = SessionLimits.STANDARD_IDLE_TIMEOUT,
        remember_me_idle: timedelta = SessionLimits.REMEMBER_ME_TIMEOUT,
    ) -> List[str]:
        """Delete hard-expired and idle-expired sessions; returns their ids."""
        pass

    @abstractmethod
    def purge_activities_before(self, cutoff: datetime) -> int:
        """Delete activities older than ``cutoff``; returns the count."""
        pass


class PolicyStore(ABC):
    """Per-user session policy storage."""

    @abstractmethod
    def get_policy(self, user_id: str) -> Optional[SessionPolicy]:
        pass

    @abstractmethod
    def save_policy(self, policy: SessionPolicy) -> SessionPolicy:
        pass

    @abstractmethod
    def delete_policy(self, user_id: str) -> bool:
        pass
