"""Common utilities - logging, config, exceptions."""

from trustgate.common.logging.logger import get_logger
from trustgate.common.config import Config, get_config, reset_config
from trustgate.common.deadline import Deadline
from trustgate.common.exceptions import (
    TrustGateException,
    ConfigurationError,
    ValidationError,
    SessionNotFoundError,
    SessionExpiredError,
    PolicyViolationError,
    DependencyUnavailableError,
    StoreError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Request scope
    "Deadline",
    # Exceptions
    "TrustGateException",
    "ConfigurationError",
    "ValidationError",
    "SessionNotFoundError",
    "SessionExpiredError",
    "PolicyViolationError",
    "DependencyUnavailableError",
    "StoreError",
]
