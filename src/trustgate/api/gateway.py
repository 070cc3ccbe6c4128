"""API Gateway - FastAPI application exposing the session decision surface."""

import logging, threading
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from trustgate.anomaly.schema import ConflictGroup, ResolutionResult, SessionAnomaly
from trustgate.api.schemas import (
    ActivityBody,
    ActivityResponse,
    CreateSessionBody,
    CreateSessionResponse,
    ErrorResponse,
    FreezeBody,
    LockBody,
    PolicyUpdateBody,
    PolicyValidateBody,
    ResolveConflictsBody,
    RevokeResponse,
    RiskAssessBody,
    SessionSummary,
    StepUpBody,
    StepUpCompleteBody,
    StepUpCompleteResponse,
    StepUpResponse,
    UnfreezeBody,
    ValidateSessionBody,
    ValidateSessionResponse,
)
from trustgate.api.service import SessionTrustService
from trustgate.common.config import get_config
from trustgate.common.exceptions import (
    ConfigurationError,
    DependencyUnavailableError,
    PolicyViolationError,
    SessionExpiredError,
    SessionNotFoundError,
    StoreError,
    TrustGateException,
    ValidationError,
)
from trustgate.common.logging import LOG_FORMAT
from trustgate.data.schemas import RiskAssessment, SessionPolicy
from trustgate.governance.schemas import PolicyValidationResult

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger("trustgate_api")


class ServiceManager:
    """Thread-safe service singleton manager."""

    _instance: Optional[SessionTrustService] = None
    _lock = threading.Lock()
    _initialized = False

    @classmethod
    def get_service(cls) -> SessionTrustService:
        """Get or create the service instance (thread-safe)."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = SessionTrustService(start_sweeper=True)
                    cls._initialized = True
                    logger.info("SessionTrustService initialized")
        return cls._instance

    @classmethod
    def set_service(cls, service: SessionTrustService) -> None:
        """Install a pre-built service (tests, embedding)."""
        with cls._lock:
            cls._instance = service
            cls._initialized = True

    @classmethod
    def shutdown(cls) -> None:
        """Shutdown the service and release resources."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.shutdown()
                cls._instance = None
                cls._initialized = False
                logger.info("SessionTrustService shutdown complete")


def get_service() -> SessionTrustService:
    return ServiceManager.get_service()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("TrustGate API starting up...")
    get_service()
    logger.info("TrustGate API ready")

    yield

    logger.info("TrustGate API shutting down...")
    ServiceManager.shutdown()


config = get_config()

app = FastAPI(
    title="TrustGate Session API",
    description="Session trust, risk and policy decisions for authenticated sessions.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if config.is_production else "/docs",
    redoc_url=None if config.is_production else "/redoc",
)

if config.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

STATUS_FOR_ERROR = {
    ValidationError: 400,
    PolicyViolationError: 403,
    SessionNotFoundError: 404,
    SessionExpiredError: 410,
    DependencyUnavailableError: 503,
    StoreError: 500,
    ConfigurationError: 500,
}


def _error_response(request: Request, status_code: int, error: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details or {},
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(),
    )


@app.exception_handler(TrustGateException)
async def trustgate_error_handler(request: Request, exc: TrustGateException) -> JSONResponse:
    """Map the exception hierarchy onto HTTP status codes."""
    status_code = next(
        (code for cls, code in STATUS_FOR_ERROR.items() if isinstance(exc, cls)), 500
    )
    request_id = getattr(request.state, "request_id", None)
    if status_code >= 500:
        logger.error(
            f"{exc.code}: {exc.message}",
            extra={"request_id": request_id, "error_type": type(exc).__name__},
            exc_info=True,
        )
        return _error_response(request, status_code, exc.code, "An error occurred while processing the request")

    logger.warning(exc.message, extra={"request_id": request_id, "error": exc.code})
    return _error_response(request, status_code, exc.code, exc.message, exc.details)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors with a sanitized message."""
    logger.exception(
        "Unexpected error",
        extra={"request_id": getattr(request.state, "request_id", None), "error_type": type(exc).__name__},
    )
    return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")


# =============================================================================
# MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Propagate or assign a request ID for tracing."""
    request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex[:12]}"
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


ERROR_RESPONSES = {
    400: {"description": "Invalid request", "model": ErrorResponse},
    404: {"description": "Session not found", "model": ErrorResponse},
    410: {"description": "Session expired", "model": ErrorResponse},
}


# =============================================================================
# SESSION ENDPOINTS
# =============================================================================

@app.post("/sessions", response_model=CreateSessionResponse, responses=ERROR_RESPONSES,
          summary="Create a session for an authenticated login")
def create_session(body: CreateSessionBody, request: Request) -> CreateSessionResponse:
    """Evaluate policy, risk and trust for a login and persist the session when allowed.

    The client IP is taken from the body, then proxy headers, then the
    connection. A denied login returns decision "deny" with every reason.
    """
    logger.info("Creating session", extra={"user_id": body.user_id, "request_id": request.state.request_id})
    response = get_service().create_session(
        body,
        headers=dict(request.headers),
        client_host=request.client.host if request.client else None,
    )
    logger.info(
        "Session decision",
        extra={"user_id": body.user_id, "decision": response.decision.value, "request_id": request.state.request_id},
    )
    return response


@app.get("/sessions/{session_id}", response_model=SessionSummary, responses=ERROR_RESPONSES)
def get_session(session_id: str) -> SessionSummary:
    return get_service().get_session(session_id)


@app.post("/sessions/{session_id}/validate", response_model=ValidateSessionResponse)
def validate_session(session_id: str, body: Optional[ValidateSessionBody] = None) -> ValidateSessionResponse:
    body = body or ValidateSessionBody()
    return get_service().validate_session(session_id, body.ip_address, body.fingerprint)


@app.delete("/sessions/{session_id}", response_model=RevokeResponse, responses=ERROR_RESPONSES)
def revoke_session(session_id: str) -> RevokeResponse:
    return RevokeResponse(revoked_session_ids=get_service().revoke_session(session_id))


@app.post("/sessions/{session_id}/activity", response_model=ActivityResponse, responses=ERROR_RESPONSES)
def log_activity(session_id: str, body: ActivityBody) -> ActivityResponse:
    return get_service().log_activity(session_id, body)


@app.post("/sessions/{session_id}/lock", response_model=SessionSummary, responses=ERROR_RESPONSES)
def lock_session(session_id: str, body: LockBody) -> SessionSummary:
    return get_service().lock_session(session_id, body.lock_type, body.value)


@app.post("/sessions/{session_id}/step-up", response_model=StepUpResponse, responses=ERROR_RESPONSES)
def require_step_up(session_id: str, body: Optional[StepUpBody] = None) -> StepUpResponse:
    body = body or StepUpBody()
    return get_service().require_step_up(session_id, body.reason)


@app.post("/sessions/{session_id}/step-up/complete", response_model=StepUpCompleteResponse,
          responses=ERROR_RESPONSES)
def complete_step_up(session_id: str, body: Optional[StepUpCompleteBody] = None) -> StepUpCompleteResponse:
    body = body or StepUpCompleteBody()
    completed = get_service().complete_step_up(session_id, body.challenge_id)
    return StepUpCompleteResponse(session_id=session_id, completed=completed)


@app.post("/sessions/{session_id}/freeze", response_model=SessionSummary, responses=ERROR_RESPONSES)
def freeze_session(session_id: str, body: Optional[FreezeBody] = None) -> SessionSummary:
    body = body or FreezeBody()
    return get_service().freeze_session(session_id, body.reason)


@app.post("/sessions/{session_id}/unfreeze", response_model=SessionSummary, responses=ERROR_RESPONSES)
def unfreeze_session(session_id: str, body: UnfreezeBody) -> SessionSummary:
    return get_service().unfreeze_session(session_id, body.verified)


# =============================================================================
# USER ENDPOINTS
# =============================================================================

@app.get("/users/{user_id}/sessions", response_model=List[SessionSummary])
def list_user_sessions(user_id: str) -> List[SessionSummary]:
    return get_service().list_user_sessions(user_id)


@app.post("/users/{user_id}/sessions/{session_id}/logout-others", response_model=RevokeResponse,
          responses=ERROR_RESPONSES)
def logout_other_sessions(user_id: str, session_id: str) -> RevokeResponse:
    return RevokeResponse(revoked_session_ids=get_service().revoke_other_sessions(user_id, session_id))


@app.get("/users/{user_id}/sessions/export", response_class=PlainTextResponse)
def export_sessions(user_id: str, format: str = Query(default="json", pattern="^(csv|json)$")) -> PlainTextResponse:
    media_type = "text/csv" if format == "csv" else "application/json"
    return PlainTextResponse(get_service().export_sessions(user_id, format), media_type=media_type)


@app.get("/users/{user_id}/conflicts", response_model=List[ConflictGroup])
def detect_conflicts(user_id: str) -> List[ConflictGroup]:
    return get_service().detect_conflicts(user_id)


@app.post("/users/{user_id}/conflicts/resolve", response_model=ResolutionResult)
def resolve_conflicts(user_id: str, body: Optional[ResolveConflictsBody] = None) -> ResolutionResult:
    body = body or ResolveConflictsBody()
    return get_service().resolve_conflicts(user_id, body.strategy)


@app.get("/users/{user_id}/anomalies", response_model=List[SessionAnomaly])
def detect_anomalies(user_id: str) -> List[SessionAnomaly]:
    return get_service().detect_anomalies(user_id)


@app.get("/users/{user_id}/policy", response_model=SessionPolicy)
def get_policy(user_id: str) -> SessionPolicy:
    return get_service().get_policy(user_id)


@app.put("/users/{user_id}/policy", response_model=SessionPolicy, responses=ERROR_RESPONSES)
def update_policy(user_id: str, body: PolicyUpdateBody) -> SessionPolicy:
    return get_service().update_policy(user_id, body.updates)


# =============================================================================
# SIDE-EFFECT FREE DECISIONS
# =============================================================================

@app.post("/policy/validate", response_model=PolicyValidationResult, responses=ERROR_RESPONSES,
          summary="Validate a session attempt against the user's policy")
def validate_policy(body: PolicyValidateBody) -> PolicyValidationResult:
    return get_service().validate_policy(body)


@app.post("/risk/assess", response_model=RiskAssessment, summary="Assess session risk")
def assess_risk(body: RiskAssessBody) -> RiskAssessment:
    return get_service().assess_risk(body)


@app.get("/health")
async def health_check() -> dict:
    return {"status": "healthy", "service": "trustgate"}


@app.get("/ready")
async def readiness_check() -> dict:
    """Returns 503 until the service singleton is initialized."""
    if not ServiceManager._initialized:
        raise HTTPException(status_code=503, detail="not_ready")
    return {"status": "ready", "service": "trustgate"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "trustgate.api.gateway:app",
        host=config.api_host,
        port=config.api_port,
        reload=config.debug,
        log_level=config.log_level.value.lower(),
    )
