"""
Custom exceptions for the Campaign Agent.

This module provides a hierarchy of custom exceptions for the agent backend.
All exceptions inherit from AgentException and include error codes for
consistent error handling and API responses.

Pattern: Specific exceptions, always chained with 'raise ... from e'
"""

from enum import Enum
from typing import Any


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for Campaign Agent exceptions.

    These codes provide a consistent way to identify error types
    across the API and in logging.
    """

    AGENT_ERROR = "AGENT_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    SESSION_ERROR = "SESSION_ERROR"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Base Exception
# =============================================================================


class AgentException(Exception):
    """
    Base exception for all Campaign Agent errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.AGENT_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# ProviderError
# =============================================================================


class ProviderError(AgentException):
    """
    Exception for LLM provider issues.

    Raised when communication with the LLM fails, including API errors,
    network failures and authentication issues.

    Attributes:
        provider: Name of the provider (e.g., "openai").
        status_code: HTTP status code from the provider API (if applicable).
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        error_code: str = ErrorCode.PROVIDER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.provider = provider
        self.status_code = status_code


class LLMTimeoutError(ProviderError):
    """Raised when an LLM call exceeds its timeout and is cancelled."""

    def __init__(
        self,
        message: str,
        provider: str,
        timeout_seconds: float,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, provider=provider, **kwargs)
        self.timeout_seconds = timeout_seconds


# =============================================================================
# SessionError
# =============================================================================


class SessionError(AgentException):
    """
    Exception for session management issues.

    Raised when session operations fail, including session not found
    or history store failures.

    Attributes:
        session_id: ID of the affected session (if known).
    """

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        error_code: str = ErrorCode.SESSION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.session_id = session_id


# =============================================================================
# Tool Errors
# =============================================================================


class ToolExecutionError(AgentException):
    """
    Exception for tool execution failures.

    Raised from inside a tool's execute() for transient failures that
    the retry wrapper should retry (timeouts, upstream 5xx).

    Attributes:
        tool_name: Name of the tool that failed.
    """

    def __init__(
        self,
        message: str,
        tool_name: str,
        error_code: str = ErrorCode.TOOL_EXECUTION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.tool_name = tool_name


class ToolNotFoundError(AgentException):
    """Raised when a tool name is not in the closed set of registered tools."""

    def __init__(self, tool_name: str, **kwargs: Any) -> None:
        super().__init__(
            f"Tool '{tool_name}' not found",
            ErrorCode.TOOL_NOT_FOUND,
            **kwargs,
        )
        self.tool_name = tool_name


# =============================================================================
# RateLimitError
# =============================================================================


class RateLimitError(AgentException):
    """
    Exception for rate limiting.

    Raised by tools configured with the REJECT policy and by the LLM
    provider when the upstream API throttles us.

    Attributes:
        retry_after: Seconds until the rate limit resets.
        limit: The rate limit that was exceeded.
    """

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        limit: int | None = None,
        error_code: str = ErrorCode.RATE_LIMIT_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.retry_after = retry_after
        self.limit = limit


# =============================================================================
# Validation and Dependency Errors
# =============================================================================


class AgentValidationError(AgentException):
    """
    Exception for request validation errors.

    Named AgentValidationError to avoid collision with pydantic.ValidationError.

    Attributes:
        field: Name of the field that failed validation (if applicable).
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        error_code: str = ErrorCode.VALIDATION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.field = field


class DependencyUnavailableError(AgentException):
    """
    Raised when a backing dependency (data service, store) is unreachable.

    Attributes:
        dependency: Name of the unavailable dependency.
    """

    def __init__(
        self,
        message: str,
        dependency: str,
        error_code: str = ErrorCode.DEPENDENCY_UNAVAILABLE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.dependency = dependency
