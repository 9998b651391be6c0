"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from autocontrol.api.v1 import api_router
from autocontrol.core.config import settings
from autocontrol.core.database import dispose_db, get_db_session, init_db
from autocontrol.core.exceptions import STORAGE_ERRORS, StorageUnavailableError, register_exception_handlers
from autocontrol.core.logging import setup_logging
from autocontrol.core.middleware import RequestContextMiddleware
from autocontrol.services.email import build_email_dispatcher

# Initialize logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.

    Handles startup and shutdown tasks:
    - Database engine creation and connection verification
    - Email dispatcher (task queue pool) setup
    - Resource cleanup on shutdown
    """
    # Startup
    logger.info(
        "Starting Autocontrol API",
        extra={
            "version": settings.APP_VERSION,
            "env": settings.APP_ENV,
            "debug": settings.APP_DEBUG,
        },
    )

    init_db()

    # Verify database connection
    try:
        async with get_db_session() as db:
            await db.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except STORAGE_ERRORS as e:
        logger.error(f"Failed to connect to database: {e}")
        await dispose_db()
        raise

    app.state.email_dispatcher = build_email_dispatcher()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down Autocontrol API")

    await app.state.email_dispatcher.close()
    await dispose_db()

    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant sanitary self-control records for food businesses",
    docs_url="/api/docs" if settings.APP_DEBUG else None,
    redoc_url="/api/redoc" if settings.APP_DEBUG else None,
    openapi_url="/api/openapi.json" if settings.APP_DEBUG else None,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint for load balancers and monitoring."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        },
    )


# Readiness check endpoint
@app.get("/ready", tags=["Health"])
async def readiness_check() -> JSONResponse:
    """Readiness check endpoint - verifies the database is reachable."""
    checks = {"database": "unknown"}

    try:
        async with get_db_session() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (StorageUnavailableError, *STORAGE_ERRORS) as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "error"
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": settings.APP_NAME,
                "checks": checks,
            },
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "ready",
            "service": settings.APP_NAME,
            "checks": checks,
        },
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }


# Include API routers
app.include_router(api_router, prefix=settings.API_PREFIX)
