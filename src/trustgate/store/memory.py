"""Thread-safe in-memory store adapters.

Used by tests and single-process deployments. Every read returns a copy
so callers can never mutate stored state without going through the store.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from trustgate.common.clock import as_utc
from trustgate.common.constants import SessionLimits
from trustgate.common.exceptions import StoreError, ValidationError
from trustgate.data.schemas import Session, SessionActivity, SessionPolicy
from trustgate.store.base import PolicyStore, SessionStore


logger = logging.getLogger(__name__)


class InMemorySessionStore(SessionStore):
    """In-memory session store guarded by a re-entrant lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}
        self._by_user: Dict[str, set] = defaultdict(set)
        self._by_token: Dict[str, str] = {}
        self._activities: Dict[str, List[SessionActivity]] = defaultdict(list)

    # ---- sessions ----

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def get_session_by_token(self, session_token: str) -> Optional[Session]:
        with self._lock:
            session_id = self._by_token.get(session_token)
            return self.get_session(session_id) if session_id else None

    def list_sessions_for_user(
        self,
        user_id: str,
        active_at: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Session]:
        with self._lock:
            sessions = [self._sessions[sid] for sid in self._by_user.get(user_id, ())]
            if active_at is not None:
                sessions = [s for s in sessions if not s.is_hard_expired(active_at)]
            sessions.sort(key=lambda s: s.created_at, reverse=True)
            if limit is not None:
                sessions = sessions[:limit]
            return [s.model_copy(deep=True) for s in sessions]

    def list_sessions_created_since(self, user_id: str, since: datetime) -> List[Session]:
        since = as_utc(since)
        return [
            s for s in self.list_sessions_for_user(user_id)
            if s.created_at >= since
        ]

    def insert_session_with_cap(self, session: Session, max_sessions: int) -> List[str]:
        if max_sessions < 1:
            raise ValidationError("max_sessions must be at least 1")

        with self._lock:
            if session.session_id in self._sessions:
                raise StoreError(
                    f"Session {session.session_id} already exists",
                    details={"session_id": session.session_id},
                )

            existing = sorted(
                (self._sessions[sid] for sid in self._by_user.get(session.user_id, ())),
                key=lambda s: s.last_activity_at,
            )
            overflow = len(existing) - max_sessions + 1
            evicted = [s.session_id for s in existing[:max(overflow, 0)]]
            for session_id in evicted:
                self._remove(session_id)

            stored = session.model_copy(deep=True)
            self._sessions[stored.session_id] = stored
            self._by_user[stored.user_id].add(stored.session_id)
            self._by_token[stored.session_token] = stored.session_id

        if evicted:
            logger.info(
                f"Evicted {len(evicted)} session(s) for user {session.user_id} "
                f"to honour cap of {max_sessions}"
            )
        return evicted

    def update_session(self, session_id: str, changes: Dict[str, Any]) -> Optional[Session]:
        if "session_id" in changes or "user_id" in changes:
            raise ValidationError("session_id and user_id are immutable")

        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            data = current.model_dump()
            data.update(changes)
            updated = Session.model_validate(data)
            if updated.session_token != current.session_token:
                self._by_token.pop(current.session_token, None)
                self._by_token[updated.session_token] = session_id
            self._sessions[session_id] = updated
            return updated.model_copy(deep=True)

    def touch_session(self, session_id: str, at: datetime) -> Optional[Session]:
        at = as_utc(at)
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            if at > current.last_activity_at:
                current = current.model_copy(update={"last_activity_at": at})
                self._sessions[session_id] = current
            return current.model_copy(deep=True)

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._remove(session_id)

    def delete_user_sessions(
        self,
        user_id: str,
        except_session_id: Optional[str] = None,
    ) -> List[str]:
        with self._lock:
            targets = [
                sid for sid in self._by_user.get(user_id, ())
                if sid != except_session_id
            ]
            for session_id in targets:
                self._remove(session_id)
            return targets

    def _remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._by_user[session.user_id].discard(session_id)
        if not self._by_user[session.user_id]:
            del self._by_user[session.user_id]
        self._by_token.pop(session.session_token, None)
        self._activities.pop(session_id, None)
        return True

    # ---- activities ----

    def add_activity(self, activity: SessionActivity) -> None:
        with self._lock:
            if activity.session_id not in self._sessions:
                raise StoreError(
                    f"Cannot log activity for unknown session {activity.session_id}",
                    details={"session_id": activity.session_id},
                )
            self._activities[activity.session_id].append(activity.model_copy(deep=True))

    def list_activities(self, session_id: str, limit: Optional[int] = None) -> List[SessionActivity]:
        with self._lock:
            activities = sorted(
                self._activities.get(session_id, ()),
                key=lambda a: a.timestamp,
            )
            if limit is not None:
                activities = activities[-limit:]
            return [a.model_copy(deep=True) for a in activities]

    def list_user_activities(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> List[SessionActivity]:
        since = as_utc(since) if since is not None else None
        with self._lock:
            activities = [
                a
                for sid in self._by_user.get(user_id, ())
                for a in self._activities.get(sid, ())
                if since is None or a.timestamp >= since
            ]
            activities.sort(key=lambda a: a.timestamp)
            return [a.model_copy(deep=True) for a in activities]

    # ---- maintenance ----

    def purge_stale_sessions(
        self,
        now: datetime,
        standard_idle: timedelta = SessionLimits.STANDARD_IDLE_TIMEOUT,
        remember_me_idle: timedelta = SessionLimits.REMEMBER_ME_TIMEOUT,
    ) -> List[str]:
        now = as_utc(now)
        with self._lock:
            stale = []
            for session in self._sessions.values():
                idle_limit = remember_me_idle if session.remember_me else standard_idle
                if session.is_hard_expired(now) or now - session.last_activity_at > idle_limit:
                    stale.append(session.session_id)
            for session_id in stale:
                self._remove(session_id)
            return stale

    def purge_activities_before(self, cutoff: datetime) -> int:
        cutoff = as_utc(cutoff)
        removed = 0
        with self._lock:
            for session_id, activities in self._activities.items():
                kept = [a for a in activities if a.timestamp >= cutoff]
                removed += len(activities) - len(kept)
                self._activities[session_id] = kept
        return removed


class InMemoryPolicyStore(PolicyStore):
    """In-memory per-user policy store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._policies: Dict[str, SessionPolicy] = {}

    def get_policy(self, user_id: str) -> Optional[SessionPolicy]:
        with self._lock:
            policy = self._policies.get(user_id)
            return policy.model_copy(deep=True) if policy else None

    def save_policy(self, policy: SessionPolicy) -> SessionPolicy:
        if not policy.user_id:
            raise ValidationError("Cannot save a policy without a user_id")
        with self._lock:
            self._policies[policy.user_id] = policy.model_copy(deep=True)
        return policy

    def delete_policy(self, user_id: str) -> bool:
        with self._lock:
            return self._policies.pop(user_id, None) is not None
