"""Custom exceptions for TrustGate.

Provides a hierarchy of exceptions for different error types.
All TrustGate exceptions inherit from TrustGateException.
"""

from typing import Any, Dict, List, Optional


class TrustGateException(Exception):
    """Base exception for all TrustGate errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "TRUSTGATE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(TrustGateException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(TrustGateException):
    """Raised when input validation fails (malformed IP, CIDR, timezone, policy values)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class SessionNotFoundError(TrustGateException):
    """Raised at the HTTP boundary when a referenced session does not exist."""

    def __init__(self, session_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["session_id"] = session_id
        super().__init__(
            f"Session {session_id} not found",
            code="SESSION_NOT_FOUND",
            details=details,
        )


class SessionExpiredError(TrustGateException):
    """Raised when a session is past its absolute or idle deadline."""

    def __init__(
        self,
        session_id: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["session_id"] = session_id
        details["reason"] = reason
        super().__init__(reason, code="SESSION_EXPIRED", details=details)


class PolicyViolationError(TrustGateException):
    """Raised when one or more session policy predicates are unmet.

    Every violated reason is kept; the list is never collapsed.
    """

    def __init__(
        self,
        reasons: List[str],
        policy_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.reasons = list(reasons)
        details = details or {}
        details["reasons"] = self.reasons
        if policy_id:
            details["policy_id"] = policy_id
        message = "; ".join(self.reasons) or "Policy violation"
        super().__init__(message, code="POLICY_VIOLATION", details=details)


class DependencyUnavailableError(TrustGateException):
    """Raised when an external dependency (geolocation, reputation) fails.

    Callers convert this into an unavailable ExternalSignal; it never
    reaches risk scoring as an exception.
    """

    def __init__(
        self,
        message: str,
        dependency: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["dependency"] = dependency
        super().__init__(message, code="DEPENDENCY_UNAVAILABLE", details=details)


class StoreError(TrustGateException):
    """Raised when the session or policy store fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="STORE_ERROR", details=details)
