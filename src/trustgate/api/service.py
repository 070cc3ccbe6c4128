"""Session Trust Service - wiring and request translation for the API layer.

This service owns one instance of every engine component over a shared
store, translating API schemas into lifecycle calls and lifecycle
results into sanitized responses.

Design principles:
- Clean separation between API and domain logic
- Not-found and expiry become exceptions only at this boundary
- Policy validation and risk assessment stay side-effect free
"""

import logging
from datetime import datetime, timedelta
from typing import List, Mapping, Optional, Sequence

from trustgate.anomaly.detector import AnomalyDetector
from trustgate.anomaly.schema import ConflictGroup, ResolutionResult, SessionAnomaly
from trustgate.api.schemas import (
    ActivityBody,
    ActivityResponse,
    CreateSessionBody,
    CreateSessionResponse,
    PolicyValidateBody,
    RiskAssessBody,
    SessionSummary,
    StepUpResponse,
    ValidateSessionResponse,
)
from trustgate.common.clock import as_utc, utc_now
from trustgate.common.config import Config, get_config
from trustgate.common.constants import ContextConstants
from trustgate.common.exceptions import SessionExpiredError, SessionNotFoundError
from trustgate.context.deriver import ContextDeriver
from trustgate.context.geolocation import GeolocationResolver, IpApiResolver
from trustgate.context.headers import extract_client_ip, is_valid_ip
from trustgate.data.schemas import LockType, RiskAssessment, Session, SessionPolicy
from trustgate.governance.policies.engine import SessionPolicyEngine
from trustgate.governance.schemas import PolicyValidationResult, SessionAttempt
from trustgate.lifecycle.manager import SessionLifecycleManager
from trustgate.lifecycle.schema import CreateSessionRequest
from trustgate.lifecycle.sweeper import SessionSweeper
from trustgate.lifecycle.writer import BackgroundActivityWriter
from trustgate.notifications.bus import EventBus
from trustgate.notifications.sink import NotificationSink
from trustgate.risk.scorer import RiskRequest, RiskScorer
from trustgate.risk.vpn import VpnDetector
from trustgate.store.base import PolicyStore, SessionStore
from trustgate.store.memory import InMemoryPolicyStore, InMemorySessionStore


logger = logging.getLogger(__name__)


class SessionTrustService:
    """Facade over the session engine used by the HTTP gateway."""

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[SessionStore] = None,
        policy_store: Optional[PolicyStore] = None,
        resolver: Optional[GeolocationResolver] = None,
        vpn_detector: Optional[VpnDetector] = None,
        sinks: Optional[Sequence[NotificationSink]] = None,
        start_sweeper: bool = False,
    ):
        """Initialize the service.

        Args:
            config: Runtime configuration. Uses get_config() if not provided.
            store: Session store. In-memory if not provided.
            policy_store: Policy store. In-memory if not provided.
            resolver: Geolocation resolver. ip-api if not provided.
            vpn_detector: VPN/proxy signal provider. Address patterns if not provided.
            sinks: Notification sinks. Logging sink if not provided.
            start_sweeper: Whether to start the periodic session sweeper thread.
        """
        self.config = config or get_config()
        self.store = store or InMemorySessionStore()

        self.policy_engine = SessionPolicyEngine(
            policy_store=policy_store or InMemoryPolicyStore(),
            policy_file=str(self.config.policy_file) if self.config.policy_file else None,
        )
        self.risk_scorer = RiskScorer(self.store, vpn_detector=vpn_detector)
        self.anomaly_detector = AnomalyDetector(self.store)
        self.event_bus = EventBus(sinks=sinks)
        self.activity_writer = (
            BackgroundActivityWriter(self.store)
            if self.config.background_activity_logging else None
        )
        self.manager = SessionLifecycleManager(
            self.store,
            policy_engine=self.policy_engine,
            context_deriver=ContextDeriver(resolver or IpApiResolver(self.config)),
            risk_scorer=self.risk_scorer,
            event_bus=self.event_bus,
            activity_writer=self.activity_writer,
            config=self.config,
        )
        self.sweeper = SessionSweeper(
            self.store,
            interval_seconds=self.config.sweep_interval_seconds,
            activity_retention=timedelta(days=self.config.activity_retention_days),
        )
        if start_sweeper:
            self.sweeper.start()

    def shutdown(self) -> None:
        """Stop background threads and flush pending activity writes."""
        self.sweeper.stop(timeout=1.0)
        if self.activity_writer is not None:
            self.activity_writer.shutdown()
        logger.info("SessionTrustService shutdown complete")

    # ---- helpers ----

    def _require_session(self, session_id: str, now: Optional[datetime] = None) -> Session:
        """Fetch a live session.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionExpiredError: If it expired (it is deleted first)
        """
        now = as_utc(now or utc_now())
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.is_hard_expired(now) or session.is_idle_expired(now):
            self.store.delete_session(session_id)
            raise SessionExpiredError(session_id, "Session expired")
        return session

    @staticmethod
    def _found(session_id: str, value):
        if value is None:
            raise SessionNotFoundError(session_id)
        return value

    # ---- sessions ----

    def create_session(
        self,
        body: CreateSessionBody,
        headers: Optional[Mapping[str, str]] = None,
        client_host: Optional[str] = None,
    ) -> CreateSessionResponse:
        headers = headers or {}
        lowered = {k.lower(): v for k, v in headers.items()}
        ip_address = body.ip_address
        if ip_address is None:
            ip_address = extract_client_ip(lowered)
            if ip_address == ContextConstants.UNKNOWN_IP and is_valid_ip(client_host):
                ip_address = client_host

        result = self.manager.create_session(CreateSessionRequest(
            user_id=body.user_id,
            ip_address=ip_address,
            user_agent=body.user_agent or lowered.get("user-agent"),
            fingerprint=body.fingerprint,
            fingerprint_signals=body.fingerprint_signals,
            login_method=body.login_method,
            remember_me=body.remember_me,
        ))
        return CreateSessionResponse(
            decision=result.decision,
            session=SessionSummary.from_session(result.session) if result.session else None,
            session_token=result.session.session_token if result.session else None,
            reasons=result.reasons,
            evicted_session_ids=result.evicted_session_ids,
            risk_score=result.risk.total_score if result.risk else None,
            risk_level=result.risk.risk_level if result.risk else None,
            notifications=result.notifications,
        )

    def validate_session(
        self,
        session_id: str,
        ip_address: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ) -> ValidateSessionResponse:
        outcome = self.manager.validate_session(session_id, ip_address=ip_address, fingerprint=fingerprint)
        return ValidateSessionResponse(**outcome.model_dump(exclude={"session"}))

    def get_session(self, session_id: str) -> SessionSummary:
        return SessionSummary.from_session(self._require_session(session_id))

    def list_user_sessions(self, user_id: str) -> List[SessionSummary]:
        return [SessionSummary.from_session(s) for s in self.manager.get_user_sessions(user_id)]

    def revoke_session(self, session_id: str) -> List[str]:
        if not self.manager.revoke_session(session_id):
            raise SessionNotFoundError(session_id)
        return [session_id]

    def revoke_other_sessions(self, user_id: str, session_id: str) -> List[str]:
        session = self._require_session(session_id)
        if session.user_id != user_id:
            raise SessionNotFoundError(session_id, details={"user_id": user_id})
        return self.manager.force_logout_other_sessions(user_id, session_id)

    def log_activity(self, session_id: str, body: ActivityBody) -> ActivityResponse:
        self._require_session(session_id)
        activity = self.manager.log_activity(
            session_id,
            body.action,
            endpoint=body.endpoint,
            method=body.method,
            status_code=body.status_code,
            duration_ms=body.duration_ms,
            is_error=body.is_error,
            ip_address=body.ip_address,
            user_agent=body.user_agent,
        )
        return ActivityResponse(
            logged=activity is not None,
            activity_id=activity.activity_id if activity else None,
        )

    def lock_session(self, session_id: str, lock_type: LockType, value: Optional[str]) -> SessionSummary:
        self._require_session(session_id)
        session = self._found(session_id, self.manager.lock_session(session_id, lock_type, value))
        return SessionSummary.from_session(session)

    def require_step_up(self, session_id: str, reason: str) -> StepUpResponse:
        self._require_session(session_id)
        requirement = self._found(session_id, self.manager.require_step_up(session_id, reason))
        return StepUpResponse(
            session_id=session_id,
            challenge_id=requirement.challenge_id,
            reason=requirement.reason,
            expires_at=requirement.expires_at,
        )

    def complete_step_up(self, session_id: str, challenge_id: Optional[str]) -> bool:
        self._require_session(session_id)
        return self.manager.complete_step_up(session_id, challenge_id)

    def freeze_session(self, session_id: str, reason: str) -> SessionSummary:
        session = self._found(session_id, self.manager.freeze_session(session_id, reason))
        return SessionSummary.from_session(session)

    def unfreeze_session(self, session_id: str, verified: bool) -> SessionSummary:
        session = self._found(session_id, self.manager.unfreeze_session(session_id, verified))
        return SessionSummary.from_session(session)

    def export_sessions(self, user_id: str, fmt: str) -> str:
        return self.manager.export_sessions(user_id, fmt)

    # ---- user-level analysis ----

    def detect_conflicts(self, user_id: str) -> List[ConflictGroup]:
        return self.anomaly_detector.detect_conflicts(user_id)

    def resolve_conflicts(self, user_id: str, strategy) -> ResolutionResult:
        return self.manager.auto_resolve_conflicts(user_id, strategy)

    def detect_anomalies(self, user_id: str) -> List[SessionAnomaly]:
        return self.anomaly_detector.detect_anomalies(user_id)

    # ---- side-effect free decisions ----

    def validate_policy(self, body: PolicyValidateBody) -> PolicyValidationResult:
        attempt = SessionAttempt(**body.model_dump(exclude={"user_id"}))
        return self.policy_engine.validate(body.user_id, attempt)

    def assess_risk(self, body: RiskAssessBody) -> RiskAssessment:
        return self.risk_scorer.calculate_session_risk(RiskRequest(**body.model_dump()))

    def get_policy(self, user_id: str) -> SessionPolicy:
        return self.policy_engine.get_policy(user_id)

    def update_policy(self, user_id: str, updates: dict) -> SessionPolicy:
        return self.policy_engine.update_policy(user_id, updates)
