"""
Pydantic-based configuration models for the realtime hub.

Every setting comes from the environment (or a .env file) and is validated on
load, so a misconfigured timeout fails at startup rather than mid-sweep.
"""

import json
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def _default_role_rooms() -> dict[str, str]:
    """Roles that are auto-joined to a room on registration."""
    return {"admin": "admins", "manager": "managers"}


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore"}


class RealtimeConfig(BaseSettings):
    """Connection registry, liveness and delivery configuration."""

    max_connections: int = Field(default=1000, description="Maximum concurrent registered connections")
    heartbeat_interval: float = Field(default=30.0, description="Expected client heartbeat period (seconds)")
    connection_timeout: float = Field(default=60.0, description="Inactivity before a connection is stale (seconds)")
    sweep_interval: float | None = Field(
        default=None, description="Liveness sweep period (seconds); defaults to heartbeat_interval"
    )
    send_timeout: float = Field(default=5.0, description="Upper bound for a single transport send (seconds)")
    event_cache_ttl: int = Field(default=300, description="Diagnostic event cache time-to-live (seconds)")
    event_cache_max_size: int = Field(default=1000, description="Diagnostic event cache capacity")
    role_rooms: dict[str, str] = Field(
        default_factory=_default_role_rooms, description="Role -> room auto-membership on register"
    )

    @field_validator("max_connections", "event_cache_ttl", "event_cache_max_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate counts are positive."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("heartbeat_interval", "connection_timeout", "send_timeout")
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: float | None) -> float | None:
        """Validate an explicit sweep interval is positive."""
        if v is not None and v <= 0:
            raise ValueError("Sweep interval must be positive")
        return v

    @field_validator("role_rooms", mode="before")
    @classmethod
    def parse_role_rooms(cls, v: Any) -> Any:
        """Accept role_rooms as a JSON object string from the environment."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError as e:
                raise ValueError("role_rooms must be a JSON object") from e
        return v

    @model_validator(mode="after")
    def validate_timeout_covers_heartbeat(self) -> "RealtimeConfig":
        """A connection must be allowed at least one heartbeat before it goes stale."""
        if self.connection_timeout < self.heartbeat_interval:
            logger.error(
                "Invalid liveness configuration",
                connection_timeout=self.connection_timeout,
                heartbeat_interval=self.heartbeat_interval,
            )
            raise ValueError("connection_timeout must be greater than or equal to heartbeat_interval")
        return self

    @property
    def effective_sweep_interval(self) -> float:
        """Sweep period, falling back to the heartbeat interval."""
        return self.sweep_interval if self.sweep_interval is not None else self.heartbeat_interval

    model_config = {"env_prefix": "REALTIME_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="console", description="Log format")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dict shape expected by setup_logging()."""
        return {"environment": self.environment, "level": self.level, "format": self.format}


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Access via the get_config() function.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_logging_dict(self) -> dict[str, Any]:
        """Configuration dict for setup_logging()."""
        return {"logging": self.logging.to_dict()}
