import time
import uuid
from collections.abc import Awaitable
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from typing_extensions import override

from wavebridge_api.core.logger.logger import get_logger

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"


def client_address(request: Request) -> str:
    """First hop of X-Forwarded-For, or the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per catalog request and tags the response with an id and latency.

    Upstream failures surface as 502 responses, which are logged as warnings
    so failover storms stand out in the log.
    """

    @override
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed_ms:.2f}ms"

        path = request.url.path
        # Search keywords help when tracing empty-result complaints
        if request.url.query and path.startswith("/catalog/search"):
            path = f"{path}?{request.url.query}"

        level_method = logger.warning if response.status_code >= 500 else logger.info
        level_method(
            "[%s] %s %s [%d] %.2fms - IP: %s - Origin: %s",
            request_id,
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            client_address(request),
            request.headers.get("origin", "no-origin"),
        )
        return response
