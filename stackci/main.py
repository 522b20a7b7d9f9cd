"""FastAPI application for the webhook listener, with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stackci.config import settings
from stackci.logging_config import configure_logging
from stackci.routers import health, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging and, when running against AWS, real collaborators."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)

    if settings.aws_region:
        from stackci.dependencies import init_production_deps

        init_production_deps(
            aws_region=settings.aws_region,
            event_table=settings.event_table,
            artifact_store=settings.artifact_store,
        )

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(webhooks.router)
