"""
Core module for the Campaign Agent.

This module contains configuration and the exception hierarchy.
"""

from campaign_agent.core.config import RateLimitPolicy, Settings, get_settings
from campaign_agent.core.exceptions import (
    AgentException,
    AgentValidationError,
    DependencyUnavailableError,
    ErrorCode,
    LLMTimeoutError,
    ProviderError,
    RateLimitError,
    SessionError,
    ToolExecutionError,
    ToolNotFoundError,
)

__all__ = [
    # Config
    "RateLimitPolicy",
    "Settings",
    "get_settings",
    # Exceptions
    "AgentException",
    "AgentValidationError",
    "DependencyUnavailableError",
    "ErrorCode",
    "LLMTimeoutError",
    "ProviderError",
    "RateLimitError",
    "SessionError",
    "ToolExecutionError",
    "ToolNotFoundError",
]
