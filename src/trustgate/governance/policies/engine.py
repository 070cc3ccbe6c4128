"""Policy Engine - per-user session access policies.

Predicates are pure functions of (value, policy). The engine loads
defaults from YAML, resolves per-user overrides from a PolicyStore and
aggregates every predicate into one PolicyValidationResult.
"""

import ipaddress
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from trustgate.common.clock import as_utc, utc_now
from trustgate.common.exceptions import PolicyViolationError, ValidationError
from trustgate.context.fingerprint import verify_fingerprint
from trustgate.context.headers import normalize_ip
from trustgate.data.schemas import DeviceType, SessionPolicy
from trustgate.governance.schemas import (
    LOGOUT_VIOLATIONS,
    VIOLATION_REASONS,
    NotificationReason,
    PolicyRules,
    PolicyValidationResult,
    PolicyViolation,
    PolicyViolationType,
    SessionAttempt,
)
from trustgate.store.base import PolicyStore
from trustgate.store.memory import InMemoryPolicyStore
from trustgate.trust.evaluator import normalize_action


logger = logging.getLogger(__name__)


# ===== PREDICATES =====

def _ip_in(ip: str, entries: List[str]) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in ipaddress.ip_network(entry, strict=False) for entry in entries)


def is_ip_allowed(ip: str, policy: SessionPolicy) -> bool:
    """Block list first; a non-empty allow list must contain the IP."""
    if not policy.allowed_ips and not policy.blocked_ips:
        return True
    if _ip_in(ip, policy.blocked_ips):
        return False
    if policy.allowed_ips:
        # "unknown" never matches an allow list
        return _ip_in(ip, policy.allowed_ips)
    return True


def is_country_allowed(country: Optional[str], policy: SessionPolicy) -> bool:
    """Unknown country is always allowed."""
    if not country:
        return True
    key = country.casefold()
    if key in {c.casefold() for c in policy.blocked_countries}:
        return False
    if policy.allowed_countries:
        return key in {c.casefold() for c in policy.allowed_countries}
    return True


def is_time_allowed(policy: SessionPolicy, at: datetime) -> bool:
    """Weekday and HH:MM in the policy timezone; overnight windows wrap."""
    local = policy.local_time(as_utc(at))
    weekday = local.isoweekday() % 7  # Sunday = 0
    if weekday not in policy.allowed_days:
        return False
    if policy.is_full_day:
        return True

    current = local.hour * 60 + local.minute
    start = policy.window_start.hour * 60 + policy.window_start.minute
    end = policy.window_end.hour * 60 + policy.window_end.minute

    if end < start:
        return current >= start or current <= end
    return start <= current <= end


def is_device_type_allowed(device_type: Optional[DeviceType], policy: SessionPolicy) -> bool:
    """Block list first; unknown device types skip the allow list."""
    if device_type is not None and device_type in policy.blocked_device_types:
        return False
    if device_type is None or device_type == DeviceType.UNKNOWN:
        return True
    if policy.allowed_device_types:
        return device_type in policy.allowed_device_types
    return True


def is_fingerprint_allowed(
    current: Optional[str],
    stored: Optional[str],
    policy: SessionPolicy,
) -> bool:
    if not policy.require_fingerprint_match or not stored:
        return True
    return verify_fingerprint(current, stored).match


# ===== ENGINE =====

class SessionPolicyEngine:
    """Evaluates session attempts against per-user policies."""

    # Default policy file path
    DEFAULT_POLICY_FILE = Path(__file__).resolve().parents[4] / "config" / "session_policy.yaml"

    def __init__(
        self,
        policy_store: Optional[PolicyStore] = None,
        policy_file: Optional[str] = None,
    ):
        """Initialize policy engine with defaults from YAML.

        Args:
            policy_store: Per-user policy overrides. In-memory if not provided.
            policy_file: Path to session_policy.yaml. Uses bundled default if not provided.

        Raises:
            FileNotFoundError: If an explicit policy_file does not exist
        """
        self.policy_store = policy_store or InMemoryPolicyStore()
        self._explicit_file = policy_file is not None
        self.policy_file = Path(policy_file) if policy_file else self.DEFAULT_POLICY_FILE
        self.rules: PolicyRules = self._load_policies()

    def _load_policies(self) -> PolicyRules:
        """Load and validate policy defaults from YAML file."""
        if not self.policy_file.exists():
            if self._explicit_file:
                raise FileNotFoundError(f"Policy file not found: {self.policy_file}")
            logger.warning(
                f"Bundled policy file {self.policy_file} missing, using built-in defaults"
            )
            return PolicyRules()

        with open(self.policy_file, "r") as f:
            raw_config = yaml.safe_load(f) or {}

        try:
            return PolicyRules.model_validate(raw_config)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid policy file {self.policy_file}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )

    def reload_policies(self) -> None:
        self.rules = self._load_policies()

    @property
    def policy_version(self) -> str:
        return self.rules.metadata.version

    @property
    def sensitive_actions(self) -> List[str]:
        return list(self.rules.sensitive_actions)

    def is_sensitive_action(self, action: Optional[str]) -> bool:
        if not action:
            return False
        return normalize_action(action) in set(self.rules.sensitive_actions)

    # ---- policy resolution ----

    def default_policy(self, user_id: Optional[str] = None) -> SessionPolicy:
        return self.rules.default_policy.model_copy(deep=True, update={"user_id": user_id})

    def get_policy(self, user_id: str) -> SessionPolicy:
        """The user's stored policy, or the documented default."""
        return self.policy_store.get_policy(user_id) or self.default_policy(user_id)

    def update_policy(self, user_id: str, updates: Dict[str, Any]) -> SessionPolicy:
        """Merge updates into the user's policy and store it.

        Raises:
            ValidationError: If the merged policy is invalid
        """
        current = self.get_policy(user_id).model_dump()
        current.update({k: v for k, v in updates.items() if k != "user_id"})
        current["user_id"] = user_id
        try:
            policy = SessionPolicy.model_validate(current)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid session policy",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
        self.policy_store.save_policy(policy)
        logger.info(f"Updated session policy for user {user_id}: {sorted(updates)}")
        return policy

    def reset_policy(self, user_id: str) -> bool:
        return self.policy_store.delete_policy(user_id)

    # ---- evaluation ----

    def validate(
        self,
        user_id: str,
        attempt: SessionAttempt,
        policy: Optional[SessionPolicy] = None,
    ) -> PolicyValidationResult:
        """Evaluate every predicate and collect all unmet reasons.

        Side-effect free; safe to call speculatively.

        Raises:
            ValidationError: If the attempt carries a malformed IP address
        """
        policy = policy or self.get_policy(user_id)
        ip_address = normalize_ip(attempt.ip_address)
        at = as_utc(attempt.at or utc_now())

        violations: List[PolicyViolation] = []
        violations.extend(self._check_ip(ip_address, policy))
        violations.extend(self._check_country(attempt.country, policy))
        violations.extend(self._check_time(policy, at))
        violations.extend(self._check_device_type(attempt.device_type, policy))
        violations.extend(self._check_fingerprint(attempt, policy))

        denying = [v for v in violations if v.violation_type not in LOGOUT_VIOLATIONS]

        logout = self._check_logout(attempt, policy)
        violations.extend(logout)

        sensitive = attempt.is_sensitive_action or self.is_sensitive_action(attempt.action)
        notify_reason = self._notification_reason(attempt, policy)

        result = PolicyValidationResult(
            user_id=user_id,
            allowed=not denying,
            reasons=[v.message for v in violations],
            violations=violations,
            requires_step_up=sensitive and policy.require_step_up_for_sensitive,
            should_logout=bool(logout),
            should_notify=notify_reason is not None,
            notification_reason=notify_reason.value if notify_reason else None,
            policy_version=self.policy_version,
            checked_at=at,
        )

        if not result.allowed:
            logger.info(f"Policy denied attempt for user {user_id}: {result.reasons}")
        return result

    def enforce(
        self,
        user_id: str,
        attempt: SessionAttempt,
        policy: Optional[SessionPolicy] = None,
    ) -> PolicyValidationResult:
        """Validate and raise if the attempt is denied.

        Raises:
            PolicyViolationError: With every violated reason
        """
        result = self.validate(user_id, attempt, policy)
        if not result.allowed:
            raise PolicyViolationError(result.reasons, policy_id=user_id)
        return result

    def _violation(self, violation_type: PolicyViolationType, value: Optional[str] = None) -> PolicyViolation:
        return PolicyViolation(
            violation_type=violation_type,
            message=VIOLATION_REASONS[violation_type],
            actual_value=value,
        )

    def _check_ip(self, ip: str, policy: SessionPolicy) -> List[PolicyViolation]:
        if is_ip_allowed(ip, policy):
            return []
        return [self._violation(PolicyViolationType.IP_NOT_ALLOWED, ip)]

    def _check_country(self, country: Optional[str], policy: SessionPolicy) -> List[PolicyViolation]:
        if is_country_allowed(country, policy):
            return []
        return [self._violation(PolicyViolationType.COUNTRY_NOT_ALLOWED, country)]

    def _check_time(self, policy: SessionPolicy, at: datetime) -> List[PolicyViolation]:
        if is_time_allowed(policy, at):
            return []
        local = policy.local_time(at).strftime("%a %H:%M")
        return [self._violation(PolicyViolationType.OUTSIDE_TIME_WINDOW, f"{local} {policy.timezone}")]

    def _check_device_type(
        self,
        device_type: Optional[DeviceType],
        policy: SessionPolicy,
    ) -> List[PolicyViolation]:
        if is_device_type_allowed(device_type, policy):
            return []
        return [self._violation(PolicyViolationType.DEVICE_TYPE_NOT_ALLOWED, device_type.value)]

    def _check_fingerprint(self, attempt: SessionAttempt, policy: SessionPolicy) -> List[PolicyViolation]:
        if is_fingerprint_allowed(attempt.fingerprint, attempt.stored_fingerprint, policy):
            return []
        return [self._violation(PolicyViolationType.FINGERPRINT_MISMATCH)]

    def _check_logout(self, attempt: SessionAttempt, policy: SessionPolicy) -> List[PolicyViolation]:
        violations = []
        if policy.auto_logout_on_location_change and attempt.location_changed:
            violations.append(self._violation(PolicyViolationType.LOCATION_CHANGED, attempt.country))
        if policy.auto_logout_on_ip_change and attempt.ip_changed:
            violations.append(self._violation(PolicyViolationType.IP_CHANGED, attempt.ip_address))
        return violations

    def _notification_reason(
        self,
        attempt: SessionAttempt,
        policy: SessionPolicy,
    ) -> Optional[NotificationReason]:
        # New device takes precedence over new location
        if policy.notify_on_new_device and attempt.is_new_device:
            return NotificationReason.NEW_DEVICE
        if policy.notify_on_new_location and attempt.is_new_location:
            return NotificationReason.NEW_LOCATION
        if policy.notify_on_suspicious and attempt.is_suspicious:
            return NotificationReason.SUSPICIOUS
        return None
