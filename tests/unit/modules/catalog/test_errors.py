"""Tests for the catalog error taxonomy."""

import asyncio

import httpx
import pytest

from wavebridge_api.modules.catalog.constants import ERROR_MESSAGES
from wavebridge_api.modules.catalog.errors import (
    ApiError,
    ApiErrorKind,
    classify_exception,
    classify_status,
    get_error_code,
    get_user_friendly_message,
    should_show_retry,
    to_error_response,
)


class TestClassifyStatus:
    """Tests for HTTP status classification."""

    @pytest.mark.parametrize("status_code", [200, 201, 204, 299])
    def test_success_statuses(self, status_code):
        """Test that 2xx statuses are not errors."""
        assert classify_status(status_code) is None

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 410, 499])
    def test_client_errors_are_not_retryable(self, status_code):
        """Test that 4xx other than 429 and 408 are never retried."""
        error = classify_status(status_code)
        assert error is not None
        assert error.kind is ApiErrorKind.SERVER
        assert error.status_code == status_code
        assert error.retryable is False

    @pytest.mark.parametrize("status_code", [408, 429])
    def test_throttling_and_request_timeout_are_retryable(self, status_code):
        """Test that 429 and 408 are retried."""
        error = classify_status(status_code)
        assert error is not None
        assert error.kind is ApiErrorKind.SERVER
        assert error.retryable is True

    @pytest.mark.parametrize("status_code", [500, 502, 503, 504, 599])
    def test_server_errors_are_retryable(self, status_code):
        """Test that 5xx is always retried."""
        error = classify_status(status_code)
        assert error is not None
        assert error.kind is ApiErrorKind.SERVER
        assert error.retryable is True

    @pytest.mark.parametrize("status_code", [100, 301, 304, 399])
    def test_other_statuses_are_unknown(self, status_code):
        """Test that informational and redirect statuses are unknown failures."""
        error = classify_status(status_code)
        assert error is not None
        assert error.kind is ApiErrorKind.UNKNOWN
        assert error.retryable is False


class TestClassifyException:
    """Tests for transport exception classification."""

    @pytest.mark.parametrize(
        "exc",
        [
            TimeoutError(),
            asyncio.TimeoutError(),
            httpx.ReadTimeout("read timed out"),
            httpx.ConnectTimeout("connect timed out"),
        ],
    )
    def test_timeouts(self, exc):
        """Test that every flavor of timeout is a retryable timeout error."""
        error = classify_exception(exc)
        assert error.kind is ApiErrorKind.TIMEOUT
        assert error.retryable is True

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("connection refused"),
            httpx.RemoteProtocolError("peer closed connection"),
            ConnectionResetError(),
        ],
    )
    def test_network_errors(self, exc):
        """Test that transport failures are retryable network errors."""
        error = classify_exception(exc)
        assert error.kind is ApiErrorKind.NETWORK
        assert error.retryable is True

    def test_unexpected_exception(self):
        """Test that anything else is a non-retryable unknown error."""
        error = classify_exception(KeyError("url"))
        assert error.kind is ApiErrorKind.UNKNOWN
        assert error.retryable is False

    def test_api_error_passes_through(self):
        """Test that an already classified error is returned unchanged."""
        original = ApiError(ApiErrorKind.PARSE, "bad json")
        assert classify_exception(original) is original


class TestUserFacingErrors:
    """Tests for error codes and localized messages."""

    def test_rate_limit(self):
        """Test the message and code for throttled requests."""
        error = classify_status(429)
        assert get_error_code(error) == "rate_limit_exceeded"
        assert get_user_friendly_message(error) == ERROR_MESSAGES["RATE_LIMIT"]
        assert should_show_retry(error) is True

    def test_not_found(self):
        """Test the message and code for missing resources."""
        error = classify_status(404)
        assert get_error_code(error) == "not_found"
        assert get_user_friendly_message(error) == ERROR_MESSAGES["SERVER_4XX"]
        assert should_show_retry(error) is False

    def test_message_never_contains_raw_exception_text(self):
        """Test that transport details stay out of the user message."""
        error = classify_exception(httpx.ConnectError("[Errno 111] Connection refused to 10.0.0.3"))
        response = to_error_response(error)
        assert response.error_code == "network_error"
        assert response.message == ERROR_MESSAGES["NETWORK"]
        assert "10.0.0.3" not in response.message
        assert response.retryable is True

    def test_repr(self):
        """Test the debugging representation."""
        error = ApiError(ApiErrorKind.SERVER, "HTTP 503", status_code=503, retryable=True)
        assert repr(error) == "ApiError(kind='server', message='HTTP 503', status_code=503, retryable=True)"
        assert str(error) == "HTTP 503"
