"""
Centralized configuration for graphstream.

Uses Pydantic Settings for validation and environment variable loading.
Loads from .env file if present, falls back to environment variables, then defaults.
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NeptuneSettings(BaseSettings):
    """Neptune stream endpoint configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NEPTUNE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    host: str = Field(default="localhost", description="Neptune cluster endpoint host")
    port: int = Field(default=8182, description="Neptune port")
    use_tls: bool = Field(default=True, description="Use HTTPS for the stream endpoint")
    stream_type: str = Field(default="propertygraph", description="Stream flavour: propertygraph or sparql")

    request_timeout: int = Field(default=30, description="HTTP request timeout in seconds")
    fetch_limit: int = Field(default=1000, description="Max records requested per stream page")

    # Pipeline phases
    export: bool = Field(default=False, description="Bulk export runs before streaming")
    stream: bool = Field(default=True, description="Consume the change stream")

    @field_validator("stream_type")
    @classmethod
    def validate_stream_type(cls, v: str) -> str:
        """Validate stream type value."""
        allowed = {"propertygraph", "sparql"}
        if v.lower() not in allowed:
            raise ValueError(f"stream_type must be one of: {allowed}")
        return v.lower()

    @field_validator("fetch_limit")
    @classmethod
    def validate_fetch_limit(cls, v: int) -> int:
        """Neptune caps a stream page at 100000 records."""
        if not 1 <= v <= 100000:
            raise ValueError("fetch_limit must be between 1 and 100000")
        return v

    @property
    def endpoint(self) -> str:
        """Get the base URL of the Neptune endpoint."""
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.host}:{self.port}"


class StreamSettings(BaseSettings):
    """Stream worker and scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STREAM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    # Checkpoint policy
    checkpoint_record_interval: int = Field(default=1000, description="Checkpoint after this many records")
    checkpoint_interval_seconds: int = Field(default=60, description="Checkpoint after this many seconds")
    idle_wait_seconds: float = Field(default=1.0, description="Sleep when the stream has no new records")
    export_poll_interval_seconds: float = Field(
        default=30.0,
        description="Interval between checks for export completion"
    )

    # Acknowledgments
    acknowledgments: bool = Field(default=False, description="Wait for downstream acknowledgment before checkpoint")
    partition_acknowledgment_timeout_seconds: int = Field(
        default=7200,
        description="Lease extension while waiting for acknowledgment (seconds)"
    )

    # Scheduler
    acquire_wait_seconds: float = Field(default=15.0, description="Sleep when no partition is available")
    failure_backoff_seconds: float = Field(default=30.0, description="Sleep after a failed worker attempt")


class AggregationSettings(BaseSettings):
    """Aggregation (grouping stage) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGGREGATION_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    group_duration_seconds: float = Field(default=10.0, description="Length of an aggregation window")


class Settings(BaseSettings):
    """Main application settings combining all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    environment: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Root log level")

    neptune: NeptuneSettings = Field(default_factory=NeptuneSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
