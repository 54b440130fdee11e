"""Tour booking API entrypoint: wiring of settings, middleware and routers."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    configure_logging,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_tracing,
)
from .routers import booking, health, metrics, schedule, tour
from .services.notification_service import notification_dispatcher

configure_logging()

logger = logging.getLogger(__name__)

NOTIFICATION_DRAIN_TIMEOUT = 10.0

API_ROUTERS = (health.router, tour.router, schedule.router, booking.router, metrics.router)


async def _on_startup() -> None:
    setup_tracing()
    setup_metrics()
    instrument_sqlalchemy(engine)

    # Alembic owns the schema everywhere except local development
    if settings.debug:
        await init_db()
        logger.info("Tables created from model metadata")


async def _on_shutdown() -> None:
    # Confirmation emails still in flight get a bounded grace period
    await notification_dispatcher.drain(timeout=NOTIFICATION_DRAIN_TIMEOUT)
    await close_db()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run startup work before serving and release resources afterwards."""
    logger.info("Starting %s in %s", SERVICE_NAME, settings.environment)
    try:
        await _on_startup()
    except Exception:
        logger.exception("Startup failed")
        raise

    yield

    logger.info("Stopping %s", SERVICE_NAME)
    try:
        await _on_shutdown()
    except Exception:
        logger.exception("Cleanup failed")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as application/problem+json."""
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


def create_app() -> FastAPI:
    """
    Build the ASGI application.

    Interactive docs are only mounted in debug mode.
    """
    app = FastAPI(
        title="Tour Booking API",
        description="RPC-over-HTTP API for tour operators: catalog, departures and capacity-safe bookings",
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)
    register_exception_handlers(app)

    for router in API_ROUTERS:
        app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tourops.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
