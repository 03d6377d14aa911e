"""
Custom Exceptions - Application-specific error classes.

This module defines a hierarchy of exceptions for clean error handling:
- Each exception has a status code and error code
- Used by the API layer for consistent error responses
- No stack traces leaked to callers
"""
from typing import Optional


class RouterException(Exception):
    """
    Base exception for all router errors.

    Subclass this for specific error types.
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class Unauthenticated(RouterException):
    """Raised when the bearer credential is missing, malformed or rejected."""
    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str = "Invalid sign-in token."):
        super().__init__(message)


class Forbidden(RouterException):
    """Raised when a verified caller lacks the privilege for an action."""
    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "You do not have access to this resource."):
        super().__init__(message)


class ValidationError(RouterException):
    """Raised when input validation fails."""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class NotFound(RouterException):
    """Raised when a requested record does not exist."""
    status_code = 404
    error_code = "not_found"


class RequestTooLarge(RouterException):
    """Raised when a request body exceeds the configured byte cap."""
    status_code = 413
    error_code = "request_too_large"

    def __init__(self, limit_bytes: int):
        super().__init__(
            message="Request too large.",
            details=f"limit={limit_bytes}"
        )
        self.limit_bytes = limit_bytes


class RateLimitExceeded(RouterException):
    """Raised when the admission controller denies a request."""
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60, reason: str = "rate_limited", message: Optional[str] = None):
        super().__init__(
            message=message or f"Rate limit exceeded. Please wait {retry_after} seconds.",
            details=f"retry_after={retry_after}"
        )
        self.retry_after = max(1, int(retry_after))
        self.reason = reason

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["reason"] = self.reason
        body["retry_after_seconds"] = self.retry_after
        return body


class ConfigurationError(RouterException):
    """Raised when the deployment is missing a required credential or binding."""
    status_code = 500
    error_code = "configuration_error"


class ServiceDisabled(RouterException):
    """Raised when the AI kill switch is engaged."""
    status_code = 503
    error_code = "service_disabled"

    def __init__(self, message: str = "AI is temporarily paused. Please try again later."):
        super().__init__(message)


class StoreUnavailable(RouterException):
    """Raised by the key-value store when the backend cannot be reached."""
    status_code = 503
    error_code = "store_unavailable"

    def __init__(self, message: str = "Key-value store unavailable"):
        super().__init__(message)


class ProviderError(RouterException):
    """
    Raised when an upstream LLM call fails.

    Attributes:
        provider: Provider selector that failed (e.g. "claude")
        http_status: Upstream HTTP status, if the provider answered
        retryable: True for timeouts, connection errors and 429/5xx upstream
    """
    status_code = 502
    error_code = "provider_error"

    def __init__(
        self,
        provider: str,
        message: str,
        http_status: Optional[int] = None,
        detail: Optional[str] = None,
        retryable: bool = False,
    ):
        super().__init__(message, details=detail)
        self.provider = provider
        self.http_status = http_status
        self.retryable = retryable

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["provider"] = self.provider
        body["upstream_status"] = self.http_status
        body["retryable"] = self.retryable
        return body


class EmptyResponse(ProviderError):
    """Raised when a provider answered but produced no text (e.g. safety filtered)."""
    error_code = "empty_response"

    def __init__(self, provider: str, detail: Optional[str] = None):
        super().__init__(
            provider=provider,
            message=f"No valid response text from {provider}.",
            detail=detail,
        )


class UpstreamError(RouterException):
    """Raised when the video catalog API fails."""
    status_code = 502
    error_code = "upstream_error"
