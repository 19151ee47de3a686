import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging import Logger

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wavebridge_api.common.utils import get_project_metadata
from wavebridge_api.core.logger import RequestLoggingMiddleware, get_logger, setup_logging
from wavebridge_api.core.settings import settings
from wavebridge_api.modules.base.router import router as base_router
from wavebridge_api.modules.catalog.context import create_context
from wavebridge_api.modules.catalog.router import router as catalog_router

# Initialize module logger
logger: Logger = get_logger("init")

# Configure logging
setup_logging(settings.logging)

# Get project metadata
name, version, description = get_project_metadata()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the catalog context for the lifetime of the application."""
    async with create_context(settings) as context:
        app.state.catalog = context
        await context.start()

        warmup_task: asyncio.Task[bool] | None = None
        if settings.cache_warmup:
            # Best effort, requests are served while the cache fills
            warmup_task = asyncio.create_task(context.service.warmup())

        yield

        if warmup_task is not None and not warmup_task.done():
            warmup_task.cancel()
    logger.info("Catalog context shut down")


# Create FastAPI instance with metadata
app: FastAPI = FastAPI(
    title=name,
    version=version,
    description=description,
    lifespan=lifespan,
)

# Add middlewares
app.add_middleware(RequestLoggingMiddleware)

# Add CORS middleware with default values if not configured
app.add_middleware(
    middleware_class=CORSMiddleware,
    allow_origins=settings.cors.get("allow_origins", ["*"]),
    allow_methods=settings.cors.get("allow_methods", ["GET", "POST"]),
    allow_headers=settings.cors.get("allow_headers", ["*"]),
    allow_credentials=True,
)

# Include routers
app.include_router(base_router)
app.include_router(catalog_router)
