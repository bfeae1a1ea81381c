"""
FastAPI application entry point.

Main API server for the School ERP backend.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from schoolerp import __version__
from schoolerp.api.errors import register_exception_handlers
from schoolerp.api.routes import auth_router, finance_router, school_router, superadmin_router
from schoolerp.auth.jwt import TokenIssuer
from schoolerp.auth.password import PasswordHasher
from schoolerp.auth.rate_limit import LoginRateLimiter
from schoolerp.clock import SystemClock
from schoolerp.config import Settings, get_settings
from schoolerp.db import Database
from schoolerp.logging import configure_logging
from schoolerp.models import HealthResponse
from schoolerp.services.mailer import Mailer

logger = structlog.get_logger()

API_PREFIX = "/api/v1"


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = app.state.settings

    logger.info(
        "Starting School ERP",
        version=__version__,
        environment=settings.environment,
    )
    if settings.uses_fallback_reset_secret:
        logger.warning(
            "PASSWORD_RESET_SECRET not set; reset tokens are signed with the refresh secret",
            environment=settings.environment,
        )
    if not app.state.mailer.is_configured:
        logger.warning("SMTP is not configured; reset OTPs will not be emailed")

    database = Database(settings)
    app.state.database = database
    if settings.is_sqlite:
        await database.create_all()
        logger.info("Database tables created")
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down School ERP")
    await app.state.login_limiter.close()
    await database.dispose()


# =============================================================================
# Application Setup
# =============================================================================

def create_app(settings: Settings | None = None, clock=None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to the environment)
        clock: Time source shared by token, ledger and rate-limit code
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="School ERP",
        description="Multi-tenant school management backend",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.issuer = TokenIssuer(settings, clock=clock)
    app.state.hasher = PasswordHasher.from_settings(settings)
    app.state.mailer = Mailer(settings)
    app.state.login_limiter = LoginRateLimiter.from_settings(settings, clock=clock)

    # CORS middleware
    origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(school_router, prefix=API_PREFIX)
    app.include_router(superadmin_router, prefix=API_PREFIX)
    app.include_router(finance_router, prefix=API_PREFIX)

    # =========================================================================
    # Health & Info Endpoints
    # =========================================================================

    @app.get(f"{API_PREFIX}/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint with database connectivity."""
        db_status = "disconnected"
        try:
            await app.state.database.ping()
            db_status = "connected"
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database health check failed", error=str(e))
            db_status = f"error: {type(e).__name__}"

        return HealthResponse(
            status="healthy" if db_status == "connected" else "degraded",
            version=__version__,
            environment=settings.environment,
            timestamp=clock.now(),
            database=db_status,
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic info."""
        return {
            "name": "School ERP",
            "version": __version__,
            "docs": "/docs",
        }

    return app


app = create_app()

# =============================================================================
# Run with: uvicorn schoolerp.api.main:app --reload
# =============================================================================
