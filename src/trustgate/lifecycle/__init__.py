"""Session lifecycle - creation, validation, state transitions and maintenance."""

from trustgate.lifecycle.export import ExportFormat, export_sessions
from trustgate.lifecycle.manager import SessionLifecycleManager
from trustgate.lifecycle.schema import (
    CreateSessionRequest,
    CreateSessionResult,
    SessionDecision,
    SessionHealth,
    TimeoutStatus,
    ValidationOutcome,
)
from trustgate.lifecycle.sweeper import SessionSweeper, SweepResult
from trustgate.lifecycle.writer import BackgroundActivityWriter

__all__ = [
    "SessionLifecycleManager",
    "CreateSessionRequest",
    "CreateSessionResult",
    "SessionDecision",
    "SessionHealth",
    "TimeoutStatus",
    "ValidationOutcome",
    "SessionSweeper",
    "SweepResult",
    "BackgroundActivityWriter",
    "ExportFormat",
    "export_sessions",
]
