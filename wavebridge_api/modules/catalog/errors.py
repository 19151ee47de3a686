"""Typed failure taxonomy for upstream catalog calls.

Every failure raised by the request executor is an :class:`ApiError` whose
``retryable`` flag is computed once, at classification time, from the HTTP
status or the transport exception alone.
"""

from enum import Enum
from http import HTTPStatus

from wavebridge_api.modules.catalog.constants import (
    ERROR_CODES,
    ERROR_MESSAGES,
    TIMEOUT_ERRORS,
    TRANSPORT_ERRORS,
)
from wavebridge_api.modules.catalog.schemas import ErrorResponse

RETRYABLE_CLIENT_STATUSES = frozenset({HTTPStatus.TOO_MANY_REQUESTS, HTTPStatus.REQUEST_TIMEOUT})


class ApiErrorKind(str, Enum):
    """Categories of upstream failures."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    PARSE = "parse"
    UNKNOWN = "unknown"


class ApiError(Exception):
    """Classified failure of an upstream catalog request."""

    def __init__(
        self,
        kind: ApiErrorKind,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retryable = retryable

    def __repr__(self) -> str:
        return (
            f"ApiError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status_code={self.status_code!r}, retryable={self.retryable!r})"
        )


def classify_status(status_code: int) -> ApiError | None:
    """Map an HTTP status to an error, or None for a 2xx success.

    Args:
        status_code: HTTP status returned by the upstream

    Returns:
        ApiError describing the failure, None when the status is successful
    """
    if 200 <= status_code < 300:
        return None
    if 400 <= status_code < 500:
        return ApiError(
            ApiErrorKind.SERVER,
            f"HTTP {status_code}",
            status_code=status_code,
            retryable=status_code in RETRYABLE_CLIENT_STATUSES,
        )
    if status_code >= 500:
        return ApiError(ApiErrorKind.SERVER, f"HTTP {status_code}", status_code=status_code, retryable=True)
    return ApiError(ApiErrorKind.UNKNOWN, f"Unexpected HTTP status {status_code}", status_code=status_code)


def classify_exception(exc: BaseException) -> ApiError:
    """Map a raised transport exception to an error.

    Args:
        exc: Exception raised while issuing the request

    Returns:
        ApiError of kind timeout, network or unknown
    """
    if isinstance(exc, ApiError):
        return exc
    # Timeouts subclass both OSError and httpx.TransportError, so check them first
    if isinstance(exc, TIMEOUT_ERRORS):
        return ApiError(ApiErrorKind.TIMEOUT, "Request timed out", retryable=True)
    if isinstance(exc, TRANSPORT_ERRORS):
        return ApiError(ApiErrorKind.NETWORK, f"Network error: {type(exc).__name__}", retryable=True)
    return ApiError(ApiErrorKind.UNKNOWN, f"Unexpected error: {type(exc).__name__}")


def get_error_code(error: ApiError) -> str:
    """Return the machine-readable error code for an error."""
    if error.kind is ApiErrorKind.NETWORK:
        return ERROR_CODES["NETWORK_ERROR"]
    if error.kind is ApiErrorKind.TIMEOUT:
        return ERROR_CODES["TIMEOUT"]
    if error.kind is ApiErrorKind.PARSE:
        return ERROR_CODES["PARSE_ERROR"]
    if error.kind is ApiErrorKind.SERVER:
        if error.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            return ERROR_CODES["RATE_LIMIT_EXCEEDED"]
        if error.status_code == HTTPStatus.NOT_FOUND:
            return ERROR_CODES["NOT_FOUND"]
        return ERROR_CODES["SERVER_ERROR"]
    return ERROR_CODES["UNKNOWN_ERROR"]


def get_user_friendly_message(error: ApiError) -> str:
    """Return a short localized message suitable for end users."""
    if error.kind is ApiErrorKind.NETWORK:
        return ERROR_MESSAGES["NETWORK"]
    if error.kind is ApiErrorKind.TIMEOUT:
        return ERROR_MESSAGES["TIMEOUT"]
    if error.kind is ApiErrorKind.PARSE:
        return ERROR_MESSAGES["PARSE"]
    if error.kind is ApiErrorKind.SERVER and error.status_code is not None:
        if error.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            return ERROR_MESSAGES["RATE_LIMIT"]
        if error.status_code >= 500:
            return ERROR_MESSAGES["SERVER_5XX"]
        return ERROR_MESSAGES["SERVER_4XX"]
    if error.kind is ApiErrorKind.SERVER:
        return ERROR_MESSAGES["SERVER_5XX"]
    return ERROR_MESSAGES["UNKNOWN"]


def should_show_retry(error: ApiError) -> bool:
    """Whether a UI should offer the user a retry action."""
    return error.retryable


def to_error_response(error: ApiError) -> ErrorResponse:
    """Build the public error payload for an error."""
    return ErrorResponse(
        error_code=get_error_code(error),
        message=get_user_friendly_message(error),
        retryable=should_show_retry(error),
    )
