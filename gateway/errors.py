"""Gateway exception hierarchy and error categorisation.

Every failure that reaches a client is mapped onto one ``ErrorCategory``,
which fixes the HTTP status and the generic user-facing message. Internal
details are attached to the response body only outside production.
"""

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
    DATABASE = "DATABASE_ERROR"
    INTERNAL = "INTERNAL_ERROR"


STATUS_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.SERVICE_UNAVAILABLE: 503,
    ErrorCategory.EXTERNAL_SERVICE: 502,
    ErrorCategory.DATABASE: 500,
    ErrorCategory.INTERNAL: 500,
}

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.VALIDATION: "Please check your input and try again.",
    ErrorCategory.AUTHENTICATION: "Authentication required.",
    ErrorCategory.AUTHORIZATION: "You do not have permission to perform this action.",
    ErrorCategory.NOT_FOUND: "The requested resource was not found.",
    ErrorCategory.CONFLICT: "This operation conflicts with existing data.",
    ErrorCategory.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorCategory.SERVICE_UNAVAILABLE: "Service temporarily unavailable. Please try again.",
    ErrorCategory.EXTERNAL_SERVICE: "External service is not responding. Please try again later.",
    ErrorCategory.DATABASE: "Database operation failed. Please try again.",
    ErrorCategory.INTERNAL: "An unexpected error occurred. Please try again.",
}


class GatewayError(Exception):
    """Base exception for all gateway failures."""


class AppError(GatewayError):
    """An error with a known category, raised by handlers and middleware."""

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        retry_after: int | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        if category is not None:
            self.category = category
        self.status_code = status_code or STATUS_CODES[self.category]
        self.details = details or {}
        self.retry_after = retry_after
        self.user_message = user_message


class ValidationError(AppError):
    category = ErrorCategory.VALIDATION


class PayloadTooLargeError(ValidationError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Request body of {size} bytes exceeds limit of {limit}",
            status_code=413,
            details={"limit": limit},
            user_message=f"Request body exceeds {limit} bytes.",
        )


class AuthenticationError(AppError):
    category = ErrorCategory.AUTHENTICATION


class AuthorizationError(AppError):
    category = ErrorCategory.AUTHORIZATION


class NotFoundError(AppError):
    category = ErrorCategory.NOT_FOUND


class ConflictError(AppError):
    category = ErrorCategory.CONFLICT


class RateLimitError(AppError):
    category = ErrorCategory.RATE_LIMITED

    def __init__(self, retry_after: int = 60, **kwargs: Any) -> None:
        super().__init__("Rate limit exceeded", retry_after=retry_after, **kwargs)


class ServiceUnavailableError(AppError):
    category = ErrorCategory.SERVICE_UNAVAILABLE


class UpstreamErrorKind(str, Enum):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    NETWORK = "network"
    CIRCUIT_OPEN = "circuit_open"
    NOT_CONFIGURED = "not_configured"


class UpstreamError(GatewayError):
    """A failed call to a third-party API.

    Returned (not raised) by the upstream client; route handlers raise it
    when the failure should become the response.
    """

    def __init__(
        self,
        kind: UpstreamErrorKind,
        upstream: str,
        message: str,
        *,
        status: int | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.upstream = upstream
        self.message = message
        self.status = status
        self.body = body
        self.headers = headers or {}

    @property
    def counts_as_failure(self) -> bool:
        """Whether the circuit breaker should record this as a failure."""
        if self.kind in (UpstreamErrorKind.TIMEOUT, UpstreamErrorKind.NETWORK):
            return True
        return self.kind == UpstreamErrorKind.HTTP_STATUS and (self.status or 0) >= 500

    def __repr__(self) -> str:
        return f"UpstreamError(kind={self.kind.value}, upstream={self.upstream!r}, status={self.status})"


@dataclass
class ErrorInfo:
    category: ErrorCategory
    status_code: int
    user_message: str
    details: dict[str, Any] = field(default_factory=dict)
    retry_after: int | None = None


def _retry_after_header(headers: dict[str, str]) -> int:
    value = {k.lower(): v for k, v in headers.items()}.get("retry-after", "")
    try:
        return int(value)
    except (TypeError, ValueError):
        return 60


def _categorize_upstream(exc: UpstreamError) -> ErrorInfo:
    details: dict[str, Any] = {"service": exc.upstream, "kind": exc.kind.value}
    if exc.kind == UpstreamErrorKind.HTTP_STATUS:
        status = exc.status or 502
        details["status"] = status
        details["responseData"] = exc.body
        if status == 404:
            category = ErrorCategory.NOT_FOUND
        elif status == 429:
            return ErrorInfo(
                ErrorCategory.RATE_LIMITED,
                429,
                USER_MESSAGES[ErrorCategory.RATE_LIMITED],
                details,
                retry_after=_retry_after_header(exc.headers),
            )
        elif status == 401:
            category = ErrorCategory.AUTHENTICATION
        elif status == 403:
            category = ErrorCategory.AUTHORIZATION
        elif status in (400, 422):
            category = ErrorCategory.VALIDATION
        else:
            category = ErrorCategory.EXTERNAL_SERVICE
        return ErrorInfo(category, STATUS_CODES[category], USER_MESSAGES[category], details)

    if exc.kind == UpstreamErrorKind.NOT_CONFIGURED:
        details["reason"] = exc.message
        return ErrorInfo(
            ErrorCategory.SERVICE_UNAVAILABLE,
            503,
            f"{exc.upstream} integration is not configured.",
            details,
        )

    # Timeouts, connection failures and open circuits: the upstream is unreachable.
    details["reason"] = exc.message
    return ErrorInfo(
        ErrorCategory.SERVICE_UNAVAILABLE,
        503,
        USER_MESSAGES[ErrorCategory.EXTERNAL_SERVICE],
        details,
        retry_after=30 if exc.kind == UpstreamErrorKind.CIRCUIT_OPEN else None,
    )


def categorize_exception(exc: BaseException) -> ErrorInfo:
    """Map any exception onto a category, status and user message."""
    if isinstance(exc, AppError):
        return ErrorInfo(
            exc.category,
            exc.status_code,
            exc.user_message or USER_MESSAGES[exc.category],
            dict(exc.details),
            exc.retry_after,
        )
    if isinstance(exc, UpstreamError):
        return _categorize_upstream(exc)
    return ErrorInfo(ErrorCategory.INTERNAL, 500, USER_MESSAGES[ErrorCategory.INTERNAL])


def build_error_payload(
    exc: BaseException,
    info: ErrorInfo,
    *,
    include_details: bool,
    error_id: str | None = None,
) -> dict[str, Any]:
    """Build the JSON body for an error response."""
    error: dict[str, Any] = {
        "id": error_id or str(uuid.uuid4()),
        "type": info.category.value,
        "message": info.user_message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if info.retry_after is not None:
        error["retryAfter"] = info.retry_after
    if info.category == ErrorCategory.VALIDATION and "fields" in info.details:
        # Field-level problems are the caller's own input, safe in every mode.
        error["fields"] = info.details["fields"]
    if include_details:
        error["details"] = {"message": str(exc), **info.details}
        if info.status_code >= 500:
            error["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {"success": False, "error": error}
