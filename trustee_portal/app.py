"""
Trustee Portal - Application Factory
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from trustee_portal.core.config import settings
from trustee_portal.core.logging import get_logger, setup_logging
from trustee_portal.core.tasks import drain_background_tasks
from trustee_portal.api.routes import auth, health, invitations, organizations
from trustee_portal.api.middleware.csrf import csrf_middleware
from trustee_portal.api.middleware.error_handler import (
    error_handler_middleware,
    validation_exception_handler,
)
from trustee_portal.api.middleware.logging import logging_middleware
from trustee_portal.api.middleware.rate_limit import (
    get_counter_store,
    rate_limit_middleware,
    run_sweep,
    set_counter_store,
)
from trustee_portal.storage import (
    init_database,
    close_database,
    init_cache,
    close_cache,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    setup_logging()
    logger.info("Starting Trustee Portal", env=settings.APP_ENV)

    # Initialize connections
    try:
        await init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))

    if settings.RATE_LIMIT_BACKEND == "redis":
        try:
            await init_cache()
            logger.info("Cache initialized")
        except Exception as e:
            logger.error("Failed to initialize cache", error=str(e))

    sweeper = asyncio.create_task(
        run_sweep(get_counter_store(), settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS),
        name="rate-limit-sweep",
    )

    logger.info("All services initialized")

    yield

    # Shutdown
    logger.info("Shutting down Trustee Portal")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await drain_background_tasks()
    set_counter_store(None)
    await close_cache()
    await close_database()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Trustee Portal",
        description="Multi-tenant authentication and organization membership API",
        version="0.1.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-CSRF-Token",
            "X-Client-Type",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    # Add custom middleware (order matters: last added runs first)
    # Execution order: logging -> rate_limit -> csrf -> error_handler
    app.middleware("http")(error_handler_middleware)
    app.middleware("http")(csrf_middleware)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(logging_middleware)

    # FastAPI answers body validation failures itself, before any middleware sees them
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(invitations.router, prefix="/api/invitations", tags=["Invitations"])
    app.include_router(organizations.router, prefix="/api/organizations", tags=["Organizations"])

    return app
