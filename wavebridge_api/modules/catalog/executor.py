"""HTTP execution with per-attempt timeouts, retries and error classification."""

import asyncio
import json
from typing import Any, ClassVar

import httpx

from wavebridge_api.common.utils import BaseHttpxClient
from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.constants import TIMEOUT_ERRORS, TRANSPORT_ERRORS
from wavebridge_api.modules.catalog.errors import ApiError, ApiErrorKind, classify_exception, classify_status

# Initialize module logger
logger = get_logger("modules.catalog.executor")


class RetryingExecutor(BaseHttpxClient):
    """Issues upstream requests and retries retryable failures with backoff.

    Each attempt is bounded by ``timeout`` seconds via cancellation. Retryable
    failures sleep ``min(1000 * 2**attempt, 4000)`` milliseconds before the next
    attempt; non-retryable failures and the last failure are raised as
    :class:`ApiError`.
    """

    DEFAULT_TIMEOUT: ClassVar[float] = 15.0
    DEFAULT_PROBE_TIMEOUT: ClassVar[float] = 3.0
    DEFAULT_MAX_RETRIES: ClassVar[int] = 2
    BASE_DELAY_MS: ClassVar[int] = 1000
    MAX_DELAY_MS: ClassVar[int] = 4000

    def __init__(
        self,
        timeout: float | None = None,
        probe_timeout: float | None = None,
        max_retries: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            timeout: Per-attempt timeout in seconds
            probe_timeout: Timeout for single-shot probes in seconds
            max_retries: Default number of retries after the first attempt
            headers: Default headers for all requests
        """
        super().__init__(timeout=timeout or self.DEFAULT_TIMEOUT, headers=headers)
        self.probe_timeout = probe_timeout or self.DEFAULT_PROBE_TIMEOUT
        self.max_retries = self.DEFAULT_MAX_RETRIES if max_retries is None else max_retries

    @classmethod
    def calculate_retry_delay(cls, attempt: int) -> float:
        """Return the backoff before the retry following ``attempt``, in seconds.

        Args:
            attempt: Zero-based index of the attempt that just failed

        Returns:
            Delay in seconds, capped at four seconds
        """
        return min(cls.BASE_DELAY_MS * 2**attempt, cls.MAX_DELAY_MS) / 1000

    async def execute(
        self,
        url: str,
        options: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> httpx.Response:
        """Perform a request, retrying retryable failures.

        Args:
            url: Absolute request URL
            options: Keyword arguments for ``httpx.AsyncClient.request``;
                ``method`` defaults to GET
            max_retries: Retries after the first attempt, defaults to the
                executor setting

        Returns:
            The first 2xx response

        Raises:
            ApiError: The non-retryable failure, or the last failure once
                retries are exhausted
        """
        request_options = dict(options or {})
        method = request_options.pop("method", "GET")
        retries = self.max_retries if max_retries is None else max_retries
        client = await self._get_client()

        attempt = 0
        while True:
            try:
                async with asyncio.timeout(self.timeout):
                    response = await client.request(method, url, **request_options)
            except (*TIMEOUT_ERRORS, *TRANSPORT_ERRORS) as e:
                error = classify_exception(e)
            else:
                status_error = classify_status(response.status_code)
                if status_error is None:
                    if attempt > 0:
                        logger.info("Request to %s succeeded after %d retries", url, attempt)
                    return response
                error = status_error

            if not error.retryable or attempt >= retries:
                logger.warning(
                    "Request to %s failed (%s, status=%s, attempt %d/%d): %s",
                    url,
                    error.kind.value,
                    error.status_code,
                    attempt + 1,
                    retries + 1,
                    error.message,
                )
                raise error

            delay = self.calculate_retry_delay(attempt)
            logger.warning(
                "Retrying request to %s in %.1fs after %s (attempt %d/%d)",
                url,
                delay,
                error.message,
                attempt + 1,
                retries + 1,
            )
            await asyncio.sleep(delay)
            attempt += 1

    async def probe(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> int | None:
        """Issue a single GET without retries and report its status.

        The body is never read, so probing a media URL does not download it.

        Args:
            url: Absolute URL to probe
            params: Optional query parameters
            headers: Optional extra headers such as ``Range``
            timeout: Timeout in seconds, defaults to the probe timeout

        Returns:
            HTTP status code, or None when the request failed or timed out
        """
        client = await self._get_client()
        request = client.build_request("GET", url, params=params, headers=headers)
        try:
            async with asyncio.timeout(timeout or self.probe_timeout):
                response = await client.send(request, stream=True)
                await response.aclose()
        except (*TIMEOUT_ERRORS, *TRANSPORT_ERRORS) as e:
            logger.debug("Probe of %s failed: %s", url, type(e).__name__)
            return None
        return response.status_code


def parse_json_response(response: httpx.Response) -> Any:
    """Decode a backend JSON body.

    Args:
        response: Successful upstream response

    Returns:
        Decoded JSON value

    Raises:
        ApiError: ``parse`` kind when the body is not JSON, ``server`` kind
            when the backend reports an error inside a successful response
    """
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
        msg = f"Invalid JSON from backend: {e}"
        raise ApiError(ApiErrorKind.PARSE, msg) from e

    if isinstance(data, dict) and data.get("error"):
        raise ApiError(ApiErrorKind.SERVER, str(data["error"]))
    return data
