"""
errors.py — error codes and exceptions surfaced in the API response envelope.

Upstream provider failures are NOT represented here: the gateway reports them
as FailureKind values and the market data service absorbs them.  Only request
validation, rate limiting and unexpected faults reach the client.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_SYMBOLS = "MISSING_SYMBOLS"
    EXTERNAL_API_FAILURE = "EXTERNAL_API_FAILURE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """Base class for errors rendered as ``{success: false, error: {...}}``."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(ApiError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(
            f"Validation failed for {field}: {message}",
            details={"field": field, "message": message},
        )


class ExternalApiFailure(ApiError):
    status_code = 503
    code = ErrorCode.EXTERNAL_API_FAILURE


class RateLimitExceeded(ApiError):
    status_code = 429
    code = ErrorCode.RATE_LIMIT_EXCEEDED


class NotFoundError(ApiError):
    status_code = 404
    code = ErrorCode.NOT_FOUND
