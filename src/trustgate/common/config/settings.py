"""Configuration management - Centralized configuration for TrustGate.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from trustgate.common.constants import ContextConstants
from trustgate.common.exceptions import ConfigurationError


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> trustgate -> src -> project_root
    return Path(__file__).resolve().parents[4]


def _env(name: str, default: str) -> str:
    return os.getenv(f"TRUSTGATE_{name}", default)


def _env_bool(name: str, default: str = "false") -> bool:
    return _env(name, default).strip().lower() in ("1", "true", "yes")


def _env_enum(enum_cls, name: str, default: str):
    raw = _env(name, default)
    try:
        return enum_cls(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for TRUSTGATE_{name}: {raw!r}",
            details={"allowed": [member.value for member in enum_cls]},
        )


def _env_number(name: str, default: str, cast):
    raw = _env(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(
            f"TRUSTGATE_{name} must be numeric, got {raw!r}"
        )


@dataclass
class Config:
    """Central configuration object for TrustGate.

    All settings can be overridden via environment variables prefixed with TRUSTGATE_.

    Example:
        TRUSTGATE_ENVIRONMENT=production
        TRUSTGATE_LOG_LEVEL=INFO
        TRUSTGATE_GEOLOCATION_TIMEOUT=1.5
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: _env_enum(Environment, "ENVIRONMENT", "development")
    )
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG"))
    log_level: LogLevel = field(
        default_factory=lambda: _env_enum(LogLevel, "LOG_LEVEL", "INFO")
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)
    policy_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["TRUSTGATE_POLICY_FILE"])
            if os.getenv("TRUSTGATE_POLICY_FILE") else None
        )
    )

    # API settings
    api_host: str = field(default_factory=lambda: _env("API_HOST", "0.0.0.0"))
    api_port: int = field(default_factory=lambda: _env_number("API_PORT", "8000", int))
    cors_origins: List[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in _env("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]
    )

    # Geolocation settings
    geolocation_url: str = field(
        default_factory=lambda: _env("GEOLOCATION_URL", "http://ip-api.com/json/{ip}")
    )
    geolocation_timeout_seconds: float = field(
        default_factory=lambda: _env_number("GEOLOCATION_TIMEOUT", "2.0", float)
    )
    geolocation_cache_ttl_seconds: int = field(
        default_factory=lambda: _env_number("GEOLOCATION_CACHE_TTL", "3600", int)
    )

    # Request / worker settings
    request_timeout_seconds: float = field(
        default_factory=lambda: _env_number("REQUEST_TIMEOUT", "5.0", float)
    )
    sweep_interval_seconds: float = field(
        default_factory=lambda: _env_number("SWEEP_INTERVAL", "300", float)
    )
    activity_retention_days: int = field(
        default_factory=lambda: _env_number("ACTIVITY_RETENTION_DAYS", "90", int)
    )
    background_activity_logging: bool = field(
        default_factory=lambda: _env_bool("BACKGROUND_ACTIVITY")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.geolocation_cache_ttl_seconds < ContextConstants.GEOLOCATION_MIN_CACHE_TTL_SECONDS:
            raise ConfigurationError(
                "Geolocation cache TTL must be at least one hour",
                details={"value": self.geolocation_cache_ttl_seconds},
            )
        if self.geolocation_timeout_seconds <= 0 or self.request_timeout_seconds <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ConfigurationError("Sweep interval must be positive")
        if self.activity_retention_days < 1:
            raise ConfigurationError("Activity retention must be at least one day")
        if not 0 < self.api_port < 65536:
            raise ConfigurationError(f"Invalid API port: {self.api_port}")

        # Warn about debug in production
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def default_policy_file(self) -> Path:
        """Bundled session policy defaults."""
        return self.config_dir / "session_policy.yaml"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
