"""API - session decision surface.

Endpoints:
    POST /sessions                    create a session
    POST /sessions/{id}/validate      validate on each request
    POST /policy/validate             side-effect free policy check
    POST /risk/assess                 side-effect free risk assessment

Session tokens are returned only when a session is created.
"""

from trustgate.api.gateway import app
from trustgate.api.schemas import (
    CreateSessionBody,
    CreateSessionResponse,
    ErrorResponse,
)
from trustgate.api.service import SessionTrustService

__all__ = [
    "app",
    "CreateSessionBody",
    "CreateSessionResponse",
    "ErrorResponse",
    "SessionTrustService",
]
