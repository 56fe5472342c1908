"""
Configuration management using pydantic-settings.
Loads environment variables and provides typed settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Grok API
    grok_api_key: str | None = None
    grok_model: str = Field(
        default="grok-4-0709",
        description="Model name/ID"
    )
    grok_base_url: str = Field(
        default="https://api.x.ai/v1",
        description="Base URL of the chat-completion API"
    )
    grok_timeout_seconds: float = Field(
        default=20.0,
        gt=0.0,
        description="Per-request timeout"
    )
    grok_max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first attempt"
    )

    # Circuit breaker
    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before the breaker opens"
    )
    circuit_breaker_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds the breaker stays open after the last failure"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/crm.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8080, description="API port")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Allowed CORS origins for the dashboard"
    )

    # Evaluation
    eval_pass_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum overall score for an eval run to pass"
    )

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_file: str = Field(
        default="./data/logs/crm.log",
        description="Log file path"
    )

    # Job Scheduler
    enable_background_jobs: bool = Field(
        default=True,
        description="Enable background job scheduler"
    )
    auto_advance_interval_minutes: int = Field(
        default=30,
        ge=1,
        description="Interval for the pipeline auto-advancement sweep"
    )

    def validate_api_keys(self) -> None:
        """Validate that the Grok API key is present."""
        if not self.grok_api_key:
            raise ValueError("GROK_API_KEY environment variable is required")


# Global settings instance
settings = Settings()
