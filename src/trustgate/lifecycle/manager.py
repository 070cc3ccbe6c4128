"""Session Lifecycle Manager - the only component that mutates session state.

Lifecycle:
1. Derive context (device, location) under the request deadline
2. Validate the per-user policy
3. Score risk and compute trust and suspicion
4. Persist under the concurrent-session cap
5. Log the login activity and emit notifications

States: active, idle-expired, hard-expired, revoked, frozen. Only active
and frozen sessions exist in the store; frozen returns to active only
through unfreeze after re-verification.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from trustgate.anomaly.detector import AnomalyDetector, detect_anomalies
from trustgate.anomaly.schema import (
    ConflictGroup,
    ResolutionResult,
    ResolutionStrategy,
)
from trustgate.common.clock import as_utc, utc_now
from trustgate.common.config import Config, get_config
from trustgate.common.constants import RiskConstants, SessionLimits
from trustgate.common.deadline import Deadline
from trustgate.common.exceptions import ValidationError
from trustgate.context.deriver import ContextDeriver, SessionContext
from trustgate.context.fingerprint import fingerprint_confidence
from trustgate.context.headers import normalize_ip
from trustgate.data.schemas import (
    LockType,
    RiskAssessment,
    Session,
    SessionActivity,
    SessionLock,
    Severity,
    StepUpRequirement,
)
from trustgate.data.schemas.activity import (
    ActivityDetail,
    LockDetail,
    LoginDetail,
    StepUpDetail,
)
from trustgate.data.schemas.session import absolute_timeout
from trustgate.governance.policies.engine import SessionPolicyEngine
from trustgate.governance.schemas import NotificationReason, SessionAttempt
from trustgate.lifecycle.export import export_sessions
from trustgate.lifecycle.schema import (
    CreateSessionRequest,
    CreateSessionResult,
    SessionDecision,
    SessionHealth,
    TimeoutStatus,
    ValidationOutcome,
)
from trustgate.lifecycle.writer import BackgroundActivityWriter
from trustgate.notifications.bus import EventBus
from trustgate.notifications.events import NotificationEvent, NotificationType
from trustgate.risk.scorer import RiskRequest, RiskScorer
from trustgate.store.base import SessionStore
from trustgate.trust.evaluator import (
    SuspicionInputs,
    has_rapid_location_change,
    is_suspicious_activity,
    reevaluate_trust as step_trust,
    calculate_trust_level,
    trust_inputs_from_history,
)


logger = logging.getLogger(__name__)


NOTIFICATION_FOR_REASON = {
    NotificationReason.NEW_DEVICE.value: (NotificationType.NEW_DEVICE, "New device sign-in"),
    NotificationReason.NEW_LOCATION.value: (NotificationType.NEW_LOCATION, "Sign-in from a new location"),
    NotificationReason.SUSPICIOUS.value: (NotificationType.SUSPICIOUS_ACTIVITY, "Suspicious sign-in"),
}

RISK_STEP_UP_REASON = "Elevated risk requires step-up authentication"
RISK_BLOCK_REASON = "Risk score too high"


class SessionLifecycleManager:
    """Creates, validates and transitions sessions.

    Every mutation goes through a conditional, idempotent store operation
    (insert-with-cap, update-by-id, delete-by-id).
    """

    def __init__(
        self,
        store: SessionStore,
        policy_engine: Optional[SessionPolicyEngine] = None,
        context_deriver: Optional[ContextDeriver] = None,
        risk_scorer: Optional[RiskScorer] = None,
        event_bus: Optional[EventBus] = None,
        activity_writer: Optional[BackgroundActivityWriter] = None,
        config: Optional[Config] = None,
    ):
        """Initialize the lifecycle manager.

        Args:
            store: Session store shared by every component.
            policy_engine: Policy engine. Uses bundled defaults if not provided.
            context_deriver: Context deriver. Uses ip-api geolocation if not provided.
            risk_scorer: Risk scorer over the same store.
            event_bus: Notification channel. Logs only if not provided.
            activity_writer: Background writer for fire-and-forget activity logging.
                Activities are written inline if not provided.
            config: Runtime configuration. Uses get_config() if not provided.
        """
        self.config = config or get_config()
        self.store = store
        self.policy_engine = policy_engine or SessionPolicyEngine(
            policy_file=str(self.config.policy_file) if self.config.policy_file else None
        )
        self.context_deriver = context_deriver or ContextDeriver()
        self.risk_scorer = risk_scorer or RiskScorer(store)
        self.anomaly_detector = AnomalyDetector(store)
        self.event_bus = event_bus or EventBus()
        self.activity_writer = activity_writer

    # ===== CREATE =====

    def create_session(
        self,
        request: CreateSessionRequest,
        now: Optional[datetime] = None,
        deadline: Optional[Deadline] = None,
    ) -> CreateSessionResult:
        """Evaluate a login and persist the session when allowed.

        A denied attempt is never persisted.

        Raises:
            ValidationError: If the request carries a malformed IP address
        """
        now = as_utc(now or utc_now())
        deadline = deadline or Deadline.from_timeout(self.config.request_timeout_seconds)

        ctx = self.context_deriver.derive(
            request.ip_address, request.user_agent, request.fingerprint, deadline
        )
        history = self.store.list_sessions_for_user(
            request.user_id, limit=SessionLimits.HISTORY_LIMIT
        )
        is_new_device = not any(s.device_name == ctx.device.device_name for s in history)
        is_new_location = not any(
            s.country == ctx.location.country and s.city == ctx.location.city for s in history
        )

        risk = self.risk_scorer.calculate_session_risk(
            RiskRequest(
                user_id=request.user_id,
                ip_address=ctx.ip_address,
                country=ctx.location.country,
                city=ctx.location.city,
                device_name=ctx.device.device_name,
                is_new_device=is_new_device,
                is_new_location=is_new_location,
                signals=ctx.signals,
            ),
            now=now,
            deadline=deadline,
        )
        failed_attempts = self.store.count_failed_logins(
            request.user_id, now - RiskConstants.FAILED_ATTEMPTS_WINDOW
        )
        suspicious = is_suspicious_activity(SuspicionInputs(
            rapid_location_change=has_rapid_location_change(history, ctx.location.country, now),
            new_device=is_new_device,
            new_location=is_new_location,
            failed_attempts_recent=failed_attempts,
            vpn_detected=risk.has_factor("vpn_proxy"),
        ))

        policy = self.policy_engine.get_policy(request.user_id)
        # A user's first session is not a "new" device or location
        policy_result = self.policy_engine.validate(
            request.user_id,
            SessionAttempt(
                ip_address=ctx.ip_address,
                country=ctx.location.country,
                device_type=ctx.device.device_type,
                is_new_device=is_new_device and bool(history),
                is_new_location=is_new_location and bool(history),
                is_suspicious=suspicious,
                fingerprint=ctx.fingerprint,
                at=now,
            ),
            policy,
        )

        reasons = list(policy_result.reasons)
        if not policy_result.allowed or risk.should_block:
            if risk.should_block:
                reasons.append(RISK_BLOCK_REASON)
            logger.info(
                f"Denied session for user {request.user_id}: {reasons}",
                extra={"user_id": request.user_id, "ip_address": ctx.ip_address},
            )
            return CreateSessionResult(
                decision=SessionDecision.DENY,
                reasons=reasons,
                policy=policy_result,
                risk=risk,
            )

        trust_level = calculate_trust_level(trust_inputs_from_history(
            history, ctx.ip_address, ctx.device.device_name,
            ctx.location.country, ctx.location.city, now,
        ))
        needs_step_up = risk.should_require_step_up
        if needs_step_up:
            reasons.append(RISK_STEP_UP_REASON)

        session = Session(
            user_id=request.user_id,
            created_at=now,
            last_activity_at=now,
            expires_at=now + absolute_timeout(request.remember_me),
            device=ctx.device,
            location=ctx.location,
            fingerprint=ctx.fingerprint,
            fingerprint_confidence=(
                fingerprint_confidence(request.fingerprint_signals)
                if request.fingerprint_signals else None
            ),
            trust_level=trust_level,
            is_suspicious=suspicious,
            required_step_up=needs_step_up,
            login_method=request.login_method,
            remember_me=request.remember_me,
            step_up=self._step_up(RISK_STEP_UP_REASON, now) if needs_step_up else None,
        )
        evicted = self.store.insert_session_with_cap(session, policy.max_concurrent_sessions)

        self.log_activity(
            session.session_id,
            "login",
            now=now,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            is_suspicious=suspicious,
            detail=LoginDetail(
                login_method=request.login_method,
                trust_level=trust_level,
                risk_score=risk.total_score,
            ),
        )

        sent = self._notify_login(session, policy_result.notification_reason, ctx)
        sent.extend(self._alert_on_anomalies(session.user_id, now))

        logger.info(
            f"Created session {session.session_id} for user {request.user_id} "
            f"(trust={trust_level}, risk={risk.total_score}, suspicious={suspicious})",
            extra={"user_id": request.user_id, "session_id": session.session_id},
        )
        return CreateSessionResult(
            decision=SessionDecision.STEP_UP if needs_step_up else SessionDecision.ALLOW,
            session=session,
            reasons=reasons,
            evicted_session_ids=evicted,
            policy=policy_result,
            risk=risk,
            notifications=sent,
        )

    def _notify_login(
        self,
        session: Session,
        reason: Optional[str],
        ctx: SessionContext,
    ) -> List[NotificationType]:
        if reason is None:
            return []
        notification_type, title = NOTIFICATION_FOR_REASON[reason]
        where = ", ".join(part for part in (ctx.location.city, ctx.location.country) if part) or "an unknown location"
        self.event_bus.publish(NotificationEvent.build(
            session.user_id,
            notification_type,
            title,
            f"{reason}: {session.device_name} from {where}",
            session_id=session.session_id,
            ip_address=ctx.ip_address,
            device_name=session.device_name,
            country=ctx.location.country,
        ))
        return [notification_type]

    def _alert_on_anomalies(self, user_id: str, now: datetime) -> List[NotificationType]:
        sessions = self.store.list_sessions_for_user(user_id, active_at=now)
        high = [
            a for a in detect_anomalies(sessions, now)
            if a.severity in (Severity.HIGH, Severity.CRITICAL)
        ]
        if not high:
            return []
        self.event_bus.publish(NotificationEvent.build(
            user_id,
            NotificationType.SECURITY_ALERT,
            "Unusual session activity",
            "; ".join(a.description for a in high),
            anomalies=",".join(a.anomaly_type.value for a in high),
        ))
        return [NotificationType.SECURITY_ALERT]

    # ===== VALIDATE =====

    def validate_session(
        self,
        session_id: str,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ) -> ValidationOutcome:
        """Check a session on an incoming request and refresh its activity.

        Expired sessions are deleted as a side effect. A missing session
        is reported as invalid, not raised. A request from a new IP is
        checked against the user's policy: a denied IP or country makes
        it invalid, and an IP or location change triggers the configured
        auto-logout.
        """
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            return ValidationOutcome(valid=False, session_id=session_id, reason="Session not found")

        if session.is_hard_expired(now):
            return self._expire(session, "Session expired")
        if session.is_idle_expired(now):
            return self._expire(session, "Session idle timeout")

        if session.is_frozen:
            return self._outcome(session, valid=False, reason="Session frozen pending re-verification")

        if session.lock and not self.verify_session_lock(session, ip_address, fingerprint):
            logger.warning(
                f"Session {session_id} lock mismatch ({session.lock.lock_type.value})",
                extra={"session_id": session_id, "user_id": session.user_id},
            )
            return self._outcome(session, valid=False, reason="Session lock mismatch")

        if ip_address is not None:
            current_ip = normalize_ip(ip_address)
            if current_ip != session.ip_address:
                location = self.context_deriver.resolver.locate(
                    current_ip, Deadline.from_timeout(self.config.request_timeout_seconds)
                )
                # An unresolved location is not a change
                location_changed = location.country is not None and (
                    (location.country, location.city) != (session.country, session.city)
                )
                result = self.policy_engine.validate(
                    session.user_id,
                    SessionAttempt(
                        ip_address=current_ip,
                        country=location.country or session.country,
                        device_type=session.device_type,
                        ip_changed=True,
                        location_changed=location_changed,
                        at=now,
                    ),
                )
                if result.should_logout:
                    reason = "location_change" if location_changed else "ip_change"
                    self.revoke_session(session_id, reason=reason)
                    return ValidationOutcome(
                        valid=False,
                        session_id=session_id,
                        reason="; ".join(result.reasons),
                    )
                if not result.allowed:
                    logger.warning(
                        f"Session {session_id} rejected from {current_ip}: {result.reasons}",
                        extra={"session_id": session_id, "user_id": session.user_id},
                    )
                    return self._outcome(session, valid=False, reason="; ".join(result.reasons))

        touched = self.store.touch_session(session_id, now) or session
        return self._outcome(touched, valid=True)

    def _expire(self, session: Session, reason: str) -> ValidationOutcome:
        self.store.delete_session(session.session_id)
        logger.info(
            f"{reason}: deleted session {session.session_id}",
            extra={"session_id": session.session_id, "user_id": session.user_id},
        )
        return ValidationOutcome(
            valid=False, session_id=session.session_id, reason=reason, expired=True
        )

    @staticmethod
    def _outcome(session: Session, valid: bool, reason: Optional[str] = None) -> ValidationOutcome:
        return ValidationOutcome(
            valid=valid,
            session_id=session.session_id,
            session=session,
            reason=reason,
            required_step_up=session.required_step_up,
            is_suspicious=session.is_suspicious,
            is_frozen=session.is_frozen,
        )

    # ===== ACTIVITY =====

    def log_activity(
        self,
        session_id: str,
        action: str,
        now: Optional[datetime] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        duration_ms: Optional[float] = None,
        is_error: Optional[bool] = None,
        is_suspicious: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        detail: Optional[ActivityDetail] = None,
    ) -> Optional[SessionActivity]:
        """Refresh last-activity-at and append an activity.

        Fire-and-forget: failures are logged and never raised. The refresh
        happens even when the activity itself cannot be stored.
        """
        now = as_utc(now or utc_now())
        try:
            session = self.store.get_session(session_id)
            if session is None:
                logger.warning(f"Activity {action} for unknown session {session_id} ignored")
                return None

            if is_error is None:
                is_error = status_code is not None and status_code >= 400
            activity = SessionActivity(
                session_id=session_id,
                user_id=session.user_id,
                action=action,
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                duration_ms=duration_ms,
                is_error=is_error,
                is_suspicious=is_suspicious,
                ip_address=ip_address or session.ip_address,
                user_agent=user_agent,
                timestamp=max(now, session.created_at),
                detail=detail,
            )
            # last-activity-at moves even when the insert fails
            self.store.touch_session(session_id, activity.timestamp)
            if self.activity_writer is not None:
                self.activity_writer.submit(activity)
            else:
                self.store.add_activity(activity)
            return activity
        except Exception as e:
            logger.error(
                f"Failed to log activity {action} for session {session_id}: {e}",
                exc_info=True,
            )
            return None

    def get_session_activities(self, session_id: str, limit: Optional[int] = None) -> List[SessionActivity]:
        return self.store.list_activities(session_id, limit)

    # ===== QUERIES =====

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.store.get_session(session_id)

    def get_user_sessions(self, user_id: str, now: Optional[datetime] = None) -> List[Session]:
        """Active (not hard-expired) sessions, newest first."""
        return self.store.list_sessions_for_user(user_id, active_at=as_utc(now or utc_now()))

    def export_sessions(self, user_id: str, fmt: str = "json", now: Optional[datetime] = None) -> str:
        return export_sessions(self.get_user_sessions(user_id, now), fmt)

    # ===== REVOCATION =====

    def revoke_session(self, session_id: str, reason: str = "user_logout") -> bool:
        revoked = self.store.delete_session(session_id)
        if revoked:
            logger.info(f"Revoked session {session_id} ({reason})", extra={"session_id": session_id})
        return revoked

    def revoke_all_sessions(self, user_id: str) -> List[str]:
        revoked = self.store.delete_user_sessions(user_id)
        logger.info(f"Revoked all {len(revoked)} session(s) for user {user_id}")
        return revoked

    def force_logout_other_sessions(self, user_id: str, current_session_id: str) -> List[str]:
        revoked = self.store.delete_user_sessions(user_id, except_session_id=current_session_id)
        logger.info(
            f"Logged out {len(revoked)} other session(s) for user {user_id}",
            extra={"user_id": user_id, "session_id": current_session_id},
        )
        return revoked

    def rename_session(self, session_id: str, device_name: str) -> Optional[Session]:
        name = device_name.strip()
        if not name:
            raise ValidationError("Device name must not be empty")
        session = self.store.get_session(session_id)
        if session is None:
            return None
        return self.store.update_session(
            session_id, {"device": session.device.model_copy(update={"device_name": name})}
        )

    # ===== LOCK =====

    def lock_session(
        self,
        session_id: str,
        lock_type: LockType = LockType.IP,
        value: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Session]:
        """Bind a session to its IP address or fingerprint.

        Raises:
            ValidationError: If a fingerprint lock is requested without a fingerprint
        """
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            return None

        lock_type = LockType(lock_type)
        if lock_type == LockType.IP:
            value = normalize_ip(value or session.ip_address)
        else:
            value = value or session.fingerprint
            if not value:
                raise ValidationError(
                    "Fingerprint lock requires a fingerprint",
                    details={"session_id": session_id},
                )

        updated = self.store.update_session(
            session_id, {"lock": SessionLock(lock_type=lock_type, value=value, locked_at=now)}
        )
        self.log_activity(session_id, "session_lock", now=now, detail=LockDetail(locked=True, lock_type=lock_type))
        logger.info(f"Locked session {session_id} to {lock_type.value}", extra={"session_id": session_id})
        return updated

    def unlock_session(self, session_id: str, now: Optional[datetime] = None) -> Optional[Session]:
        updated = self.store.update_session(session_id, {"lock": None})
        if updated is not None:
            self.log_activity(session_id, "session_unlock", now=now, detail=LockDetail(locked=False))
        return updated

    @staticmethod
    def verify_session_lock(
        session: Session,
        ip_address: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ) -> bool:
        """True when the session is unlocked or the request matches its lock exactly."""
        if session.lock is None:
            return True
        if session.lock.lock_type == LockType.IP:
            return ip_address is not None and normalize_ip(ip_address) == session.lock.value
        return fingerprint is not None and fingerprint == session.lock.value

    # ===== STEP-UP =====

    @staticmethod
    def _step_up(reason: str, now: datetime) -> StepUpRequirement:
        return StepUpRequirement(
            reason=reason,
            requested_at=now,
            expires_at=now + SessionLimits.STEP_UP_WINDOW,
        )

    def require_step_up(
        self,
        session_id: str,
        reason: str = "Sensitive action",
        now: Optional[datetime] = None,
    ) -> Optional[StepUpRequirement]:
        """Mark a session as needing step-up; the challenge is valid for five minutes."""
        now = as_utc(now or utc_now())
        requirement = self._step_up(reason, now)
        updated = self.store.update_session(
            session_id, {"required_step_up": True, "step_up": requirement}
        )
        if updated is None:
            return None
        self.log_activity(
            session_id, "step_up", now=now,
            detail=StepUpDetail(outcome="requested", reason=reason),
        )
        return requirement

    def require_reauth(self, session_id: str, now: Optional[datetime] = None) -> Optional[StepUpRequirement]:
        return self.require_step_up(session_id, reason="Re-authentication required", now=now)

    def complete_step_up(
        self,
        session_id: str,
        challenge_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Clear the step-up flag if the challenge is still valid."""
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None or not session.required_step_up:
            return False

        requirement = session.step_up
        if requirement is not None:
            if challenge_id is not None and challenge_id != requirement.challenge_id:
                self.log_activity(session_id, "step_up", now=now, detail=StepUpDetail(outcome="failed"))
                return False
            if requirement.is_expired(now):
                self.log_activity(session_id, "step_up", now=now, detail=StepUpDetail(outcome="expired"))
                return False

        self.store.update_session(session_id, {"required_step_up": False, "step_up": None})
        self.log_activity(session_id, "step_up", now=now, detail=StepUpDetail(outcome="completed"))
        return True

    def verify_step_up(self, session_id: str) -> bool:
        """True when the session exists and no step-up is outstanding."""
        session = self.store.get_session(session_id)
        return session is not None and not session.required_step_up

    # ===== FREEZE =====

    def freeze_session(
        self,
        session_id: str,
        reason: str = "Suspicious activity",
        now: Optional[datetime] = None,
    ) -> Optional[Session]:
        now = as_utc(now or utc_now())
        updated = self.store.update_session(session_id, {
            "is_frozen": True,
            "is_suspicious": True,
            "required_step_up": True,
            "step_up": self._step_up(reason, now),
        })
        if updated is None:
            return None

        logger.warning(
            f"Froze session {session_id}: {reason}",
            extra={"session_id": session_id, "user_id": updated.user_id},
        )
        self.event_bus.publish(NotificationEvent.build(
            updated.user_id,
            NotificationType.SECURITY_ALERT,
            "Session frozen",
            f"Session on {updated.device_name} was frozen: {reason}",
            session_id=session_id,
        ))
        return updated

    def unfreeze_session(self, session_id: str, verified: bool) -> Optional[Session]:
        """Return a frozen session to active after successful re-verification.

        Raises:
            ValidationError: If re-verification did not succeed
        """
        if not verified:
            raise ValidationError(
                "Session can only be unfrozen after re-verification",
                details={"session_id": session_id},
            )
        updated = self.store.update_session(session_id, {
            "is_frozen": False,
            "is_suspicious": False,
            "required_step_up": False,
            "step_up": None,
        })
        if updated is not None:
            logger.info(f"Unfroze session {session_id}", extra={"session_id": session_id})
        return updated

    # ===== CONFLICTS =====

    def auto_resolve_conflicts(
        self,
        user_id: str,
        strategy: ResolutionStrategy = ResolutionStrategy.KEEP_NEWEST,
        now: Optional[datetime] = None,
    ) -> ResolutionResult:
        """Resolve high-severity conflict groups; lower severities are reported only."""
        now = as_utc(now or utc_now())
        strategy = ResolutionStrategy(strategy)
        groups = self.anomaly_detector.detect_conflicts(user_id, now)
        result = ResolutionResult(user_id=user_id, strategy=strategy)

        actionable: List[ConflictGroup] = []
        for group in groups:
            if group.severity in (Severity.HIGH, Severity.CRITICAL):
                actionable.append(group)
            else:
                result.reported_conflicts.append(group)

        if strategy == ResolutionStrategy.REQUIRE_MANUAL:
            result.reported_conflicts = list(groups)
            if actionable:
                result.manual_review_requested = True
                self.event_bus.publish(NotificationEvent.build(
                    user_id,
                    NotificationType.SECURITY_ALERT,
                    "Session conflicts need review",
                    f"{len(actionable)} conflicting session group(s) require manual review",
                    conflicts=",".join(g.conflict_id for g in actionable),
                ))
            result.message = f"{len(actionable)} conflict(s) flagged for manual review"
            return result

        for group in actionable:
            keep = self._session_to_keep(group, strategy)
            if keep is None:
                continue
            doomed = [sid for sid in group.session_ids if sid != keep]
            deleted = self.store.delete_sessions(doomed)
            result.deleted_session_ids.extend(deleted)
            result.resolved_conflict_ids.append(group.conflict_id)
            result.resolved += 1

        if result.deleted_session_ids:
            logger.info(
                f"Auto-resolved {result.resolved} conflict(s) for user {user_id} "
                f"with {strategy.value}: deleted {result.deleted_session_ids}",
                extra={"user_id": user_id},
            )
        result.message = (
            f"Resolved {result.resolved} conflict(s), "
            f"{len(result.reported_conflicts)} reported without action"
        )
        return result

    def _session_to_keep(self, group: ConflictGroup, strategy: ResolutionStrategy) -> Optional[str]:
        sessions = [s for s in (self.store.get_session(sid) for sid in group.session_ids) if s is not None]
        if not sessions:
            return None
        if strategy == ResolutionStrategy.KEEP_TRUSTED:
            best = max(sessions, key=lambda s: (s.trust_level, s.last_activity_at))
        else:
            best = max(sessions, key=lambda s: s.last_activity_at)
        return best.session_id

    # ===== TIMEOUTS =====

    def check_session_timeout(
        self,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TimeoutStatus]:
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            return None

        idle_expires_at = session.last_activity_at + session.idle_timeout
        expires_at = min(session.expires_at, idle_expires_at)
        remaining = (expires_at - now).total_seconds()
        return TimeoutStatus(
            session_id=session_id,
            expires_at=expires_at,
            absolute_expires_at=session.expires_at,
            idle_expires_at=idle_expires_at,
            remaining_seconds=max(0.0, remaining),
            expired=remaining <= 0,
            warning=0 < remaining <= SessionLimits.EXPIRY_WARNING.total_seconds(),
        )

    def extend_session_timeout(
        self,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[Session]:
        """Restart the absolute lifetime of a live session."""
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None or session.is_hard_expired(now) or session.is_idle_expired(now):
            return None
        updated = self.store.update_session(session_id, {
            "expires_at": now + absolute_timeout(session.remember_me),
        })
        self.store.touch_session(session_id, now)
        return updated

    # ===== TRUST & HEALTH =====

    def reevaluate_trust(self, session_id: str, now: Optional[datetime] = None) -> Optional[int]:
        """Step the session's trust level by at most one; mismatches reset to 0."""
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            return None

        history = self.store.list_sessions_for_user(session.user_id, limit=SessionLimits.HISTORY_LIMIT)
        inputs = trust_inputs_from_history(
            history, session.ip_address, session.device_name,
            session.country, session.city, now,
            exclude_session_id=session_id,
        )
        level = step_trust(session.trust_level, inputs)
        if level != session.trust_level:
            self.store.update_session(session_id, {"trust_level": level})
            logger.info(f"Trust for session {session_id}: {session.trust_level} -> {level}")
        return level

    def check_session_health(
        self,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[SessionHealth]:
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            return None

        risk: RiskAssessment = self.risk_scorer.assess_existing(session, now)
        timeout = self.check_session_timeout(session_id, now)

        issues: List[str] = []
        if session.is_frozen:
            issues.append("Session is frozen")
        if session.is_suspicious:
            issues.append("Session is flagged as suspicious")
        if session.required_step_up:
            issues.append("Step-up authentication pending")
        if session.trust_level == 0:
            issues.append("Session is untrusted")
        if timeout is not None and timeout.warning:
            issues.append("Session expires soon")
        if timeout is not None and timeout.expired:
            issues.append("Session has expired")
        if risk.should_notify:
            issues.append(f"Risk level is {risk.risk_level.value}")

        return SessionHealth(
            session_id=session_id,
            healthy=not issues,
            trust_level=session.trust_level,
            risk_score=risk.total_score,
            risk_level=risk.risk_level,
            issues=issues,
            recommendations=risk.recommendations,
            checked_at=now,
        )

    def auto_block_high_risk_sessions(self, user_id: str, now: Optional[datetime] = None) -> List[str]:
        """Delete suspicious active sessions whose retroactive assessment says block."""
        now = as_utc(now or utc_now())
        blocked: List[str] = []
        for session in self.get_user_sessions(user_id, now):
            if not session.is_suspicious:
                continue
            if self.risk_scorer.assess_existing(session, now).should_block:
                if self.store.delete_session(session.session_id):
                    blocked.append(session.session_id)

        if blocked:
            logger.warning(f"Auto-blocked {len(blocked)} high-risk session(s) for user {user_id}")
            self.event_bus.publish(NotificationEvent.build(
                user_id,
                NotificationType.SECURITY_ALERT,
                "High-risk sessions ended",
                f"{len(blocked)} high-risk session(s) were signed out",
                sessions=",".join(blocked),
            ))
        return blocked

    def update_policy(self, user_id: str, updates: Dict[str, Any]):
        return self.policy_engine.update_policy(user_id, updates)
