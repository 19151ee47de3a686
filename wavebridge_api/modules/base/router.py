import time
from typing import Any

from fastapi import APIRouter, Request, Response, status

from wavebridge_api.core.logger import get_logger

# Initialize module logger
logger = get_logger("modules.base.router")

router = APIRouter(tags=["base"])

STARTED_AT = time.monotonic()


@router.get("/")
def root(request: Request) -> dict[str, str]:
    """Service banner with the running version."""
    return {"service": request.app.title, "version": request.app.version}


@router.get("/health")
def health_check(request: Request, response: Response) -> dict[str, Any]:
    """Report liveness and the active catalog source.

    Answers 503 until the lifespan has built the catalog context, so load
    balancers hold traffic during startup.
    """
    uptime = round(time.monotonic() - STARTED_AT, 1)
    context = getattr(request.app.state, "catalog", None)
    if context is None:
        logger.debug("Health check before catalog context is ready")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "starting", "uptime": uptime, "source": None}
    return {
        "status": "ok",
        "uptime": uptime,
        "source": context.registry.current_status().model_dump(),
    }
