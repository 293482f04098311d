"""FastAPI application for Herald."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from herald._version import __version__
from herald.config import Settings
from herald.exceptions import (
    EndpointNotConfiguredError,
    HeraldError,
    NotFoundError,
    UnsupportedEventError,
    ValidationError,
)
from herald.logging import configure_logging, get_logger
from herald.scheduler import DeliveryScheduler
from herald.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Initializes the WebhookService and, unless disabled, the delivery
    scheduler on startup, and cleans both up on shutdown.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info("Starting Herald API", log_level=settings.log_level, env=settings.env)

    service = WebhookService.create(settings)
    await service.initialize()
    set_service(service)

    scheduler: DeliveryScheduler | None = None
    if app.state.run_scheduler:
        scheduler = DeliveryScheduler(service)
        await scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await service.close()
    set_service(None)


def create_app(settings: Settings | None = None, run_scheduler: bool = True) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        run_scheduler: Start the dispatch, sweep, and purge loops in-process.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from herald.api import create_app

        app = create_app()
        # Run with: uvicorn herald.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Herald",
        description="Outbound webhook delivery with signed payloads and bounded retries.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.run_scheduler = run_scheduler

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            max_age=settings.cors_max_age,
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(UnsupportedEventError)
    async def unsupported_event_handler(
        request: Request, exc: UnsupportedEventError
    ) -> JSONResponse:
        """Handle unknown event kinds with 400 status."""
        logger.warning("Unsupported event", event_kind=exc.event_kind, path=str(request.url))
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(EndpointNotConfiguredError)
    async def endpoint_not_configured_handler(
        request: Request, exc: EndpointNotConfiguredError
    ) -> JSONResponse:
        """Handle unusable endpoints with 422 status."""
        logger.warning(
            "Endpoint not configured",
            domain=exc.domain,
            reason=exc.reason,
            path=str(request.url),
        )
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(HeraldError)
    async def herald_error_handler(request: Request, exc: HeraldError) -> JSONResponse:
        """Handle all other Herald errors with 500 status."""
        logger.error("Herald error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
