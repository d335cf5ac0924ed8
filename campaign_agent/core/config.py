"""
Core configuration module for the Campaign Agent.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the CAMPAIGN_AGENT_ prefix.

Pattern: Pydantic BaseSettings with grouped, validated fields
Pattern: Memoised accessor (get_settings) instead of a module-level instance
"""

from enum import Enum
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid environment values."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class RateLimitPolicy(str, Enum):
    """
    What a tool does when its rate-limit window is full.

    WAIT sleeps until the window admits another call. REJECT raises
    RateLimitError immediately and is never retried.
    """

    WAIT = "wait"
    REJECT = "reject"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields use the CAMPAIGN_AGENT_ prefix for environment variables.
    Example: CAMPAIGN_AGENT_PORT=8080
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="campaign-agent",
        description="Name of the service for logging and identification",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the service listens on",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    tracing_console_export: bool = Field(
        default=False,
        description="Export OpenTelemetry spans to stdout",
    )

    # =========================================================================
    # Redis Configuration
    # =========================================================================
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for chat history and analysis cache",
    )

    # =========================================================================
    # LLM Configuration
    # Pattern: SecretStr for sensitive values, use .get_secret_value() to access
    # =========================================================================
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_organization: Optional[str] = Field(
        default=None,
        description="Optional OpenAI organization id",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Optional custom endpoint (Azure OpenAI or proxy)",
    )
    llm_model: str = Field(
        default="gpt-5-mini",
        description="Model used for both tool selection and synthesis",
    )
    llm_max_tokens: int = Field(
        default=4000,
        ge=1,
        description="max_completion_tokens sent with each LLM call",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600.0,
        description="Per-call LLM timeout; expiry cancels the request",
    )

    # =========================================================================
    # Agent Engine Configuration
    # =========================================================================
    agent_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Whole-turn attempts made by process_with_retry",
    )
    agent_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay, multiplied by the attempt number",
    )
    session_timeout_seconds: int = Field(
        default=3600,
        ge=1,
        description="Idle time after which an in-process session is swept",
    )
    session_cleanup_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval of the background session sweep",
    )
    max_sessions: int = Field(
        default=1000,
        ge=1,
        description="Active-session capacity used by health thresholds",
    )
    history_window: int = Field(
        default=12,
        ge=0,
        description="Number of stored messages replayed into each LLM call",
    )
    session_context_max_chars: int = Field(
        default=1500,
        ge=0,
        description="Truncation length for serialized session context",
    )

    # =========================================================================
    # Chat History Configuration
    # =========================================================================
    memory_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum stored messages per session",
    )
    history_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="Expiry applied to stored chat history",
    )

    # =========================================================================
    # Tool Configuration
    # =========================================================================
    tool_rate_limit_policy: RateLimitPolicy = Field(
        default=RateLimitPolicy.WAIT,
        description="Behaviour when a tool's rate-limit window is full",
    )
    tool_cache_max_entries: int = Field(
        default=256,
        ge=1,
        description="LRU bound of each tool's in-process result cache",
    )

    # =========================================================================
    # External Services
    # =========================================================================
    google_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Google Books API key",
    )
    google_books_url: str = Field(
        default="https://www.googleapis.com/books/v1/volumes",
        description="Google Books volumes endpoint",
    )
    campaign_data_url: str = Field(
        default="http://localhost:8090",
        description="Base URL of the campaign data service",
    )
    campaign_data_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout for campaign data service calls",
    )

    # =========================================================================
    # Environment Prefix Configuration
    # =========================================================================
    model_config = {
        "env_prefix": "CAMPAIGN_AGENT_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    # =========================================================================
    # Field Validators
    # =========================================================================
    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("Redis URL must start with redis:// or rediss://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# Settings Accessor
# =============================================================================


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings.

    Uses functools.lru_cache so the environment is parsed once per process.
    Components receive the Settings instance explicitly; this accessor is only
    used by the application factory.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
