"""TrustGate - Session Trust & Risk Engine."""

__version__ = "1.0.0"
__author__ = "TrustGate Team"

# Core exports
from trustgate.data.schemas import RiskAssessment, Session, SessionPolicy

__all__ = [
    "RiskAssessment",
    "Session",
    "SessionPolicy",
]
