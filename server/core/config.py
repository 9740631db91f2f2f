"""Environment-driven configuration with Pydantic v2."""

from typing import Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import SHUTDOWN_TIMEOUT_MS


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Instance
    instance_id: str = Field(default="local", env="INSTANCE_ID")
    version_cli: str = Field(default="1.0.0", env="VERSION_CLI")
    deployment_type: str = Field(default="default", env="DEPLOYMENT_TYPE")

    # Analytics (diagnostics)
    diagnostics_enabled: bool = Field(default=False, env="DIAGNOSTICS_ENABLED")
    telemetry_endpoint: Optional[str] = Field(default=None, env="TELEMETRY_ENDPOINT")
    telemetry_batch_size: int = Field(default=50, env="TELEMETRY_BATCH_SIZE", ge=1, le=1000)
    telemetry_flush_interval: int = Field(default=6 * 60 * 60, env="TELEMETRY_FLUSH_INTERVAL", ge=1)
    telemetry_timeout: float = Field(default=10.0, env="TELEMETRY_TIMEOUT", ge=0.1, le=120.0)

    # Audit log
    audit_enabled: bool = Field(default=True, env="AUDIT_ENABLED")
    audit_logger_name: str = Field(default="audit", env="AUDIT_LOGGER_NAME")

    # Shutdown
    shutdown_timeout_ms: int = Field(default=SHUTDOWN_TIMEOUT_MS, env="SHUTDOWN_TIMEOUT_MS", ge=0)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and reject unknown level names."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_file")
    @classmethod
    def validate_log_file(cls, v):
        """Ensure the log directory exists."""
        if v:
            Path(v).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def analytics_enabled(self) -> bool:
        """Analytics needs both the switch and somewhere to send events."""
        return self.diagnostics_enabled and bool(self.telemetry_endpoint)

    @property
    def shutdown_timeout(self) -> float:
        """Shutdown flush bound in seconds."""
        return self.shutdown_timeout_ms / 1000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
