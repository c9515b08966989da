# ruff: noqa: D107
"""Model provider exceptions."""

from typing import Any

import anthropic

from .base import BaseAppException


class ProviderError(BaseAppException):
    """Base exception for model provider errors."""

    def __init__(
        self,
        message: str = "Model provider error occurred",
        error_code: str = "PROVIDER_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 500, error_code, details)


class ProviderConfigurationError(ProviderError):
    """Exception raised when the provider client is not properly configured."""

    def __init__(
        self,
        message: str = "Model provider is not properly configured",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PROVIDER_CONFIGURATION_ERROR", details)


class ProviderAuthenticationError(ProviderError):
    """Exception raised when the provider rejects the API key."""

    def __init__(
        self,
        message: str = "Model provider rejected the API key",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PROVIDER_AUTHENTICATION_ERROR", details)


class ProviderRateLimitError(ProviderError):
    """Exception raised when the provider rate limit is hit."""

    def __init__(
        self,
        message: str = "Model provider rate limit exceeded",
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        if details is None:
            details = {}
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(message, "PROVIDER_RATE_LIMITED", details)


class ProviderInvalidRequestError(ProviderError):
    """Exception raised for requests the provider considers invalid."""

    def __init__(
        self,
        message: str = "Invalid request to model provider",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PROVIDER_INVALID_REQUEST", details)


class ProviderUnavailableError(ProviderError):
    """Exception raised when the provider cannot be reached or is overloaded."""

    def __init__(
        self,
        message: str = "Model provider is temporarily unavailable",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PROVIDER_UNAVAILABLE", details)


class ProviderTimeoutError(ProviderError):
    """Exception raised when a provider request times out."""

    def __init__(
        self,
        message: str = "Model provider request timed out",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PROVIDER_TIMEOUT", details)


def _retry_after(exc: anthropic.APIStatusError) -> int | None:
    value = exc.response.headers.get("retry-after") if exc.response is not None else None
    try:
        return int(value) if value else None
    except ValueError:
        return None


def map_provider_exception(exc: Exception) -> ProviderError:
    """Map an Anthropic SDK exception to the matching provider error."""
    if isinstance(exc, ProviderError):
        return exc

    message = str(exc) or exc.__class__.__name__
    # Timeout is a subclass of connection error, check it first
    if isinstance(exc, anthropic.APITimeoutError):
        return ProviderTimeoutError(f"Provider request timed out: {message}")
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderUnavailableError(f"Could not reach provider: {message}")
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ProviderAuthenticationError(f"Provider authentication failed: {message}")
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderRateLimitError(f"Provider rate limit exceeded: {message}", _retry_after(exc))
    if isinstance(exc, (anthropic.BadRequestError, anthropic.NotFoundError, anthropic.UnprocessableEntityError)):
        return ProviderInvalidRequestError(f"Provider rejected the request: {message}")
    if isinstance(exc, anthropic.InternalServerError):
        return ProviderUnavailableError(f"Provider unavailable: {message}")
    if isinstance(exc, anthropic.APIStatusError):
        return ProviderError(f"Provider error ({exc.status_code}): {message}")
    return ProviderError(f"Provider error: {message}")
