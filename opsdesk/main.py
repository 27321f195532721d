"""Opsdesk — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from opsdesk.attendance.router import router as attendance_router
from opsdesk.auth.router import router as auth_router
from opsdesk.common.exceptions import register_exception_handlers
from opsdesk.common.rate_limit import limiter
from opsdesk.config import settings
from opsdesk.database import engine
from opsdesk.expenses.router import router as expenses_router
from opsdesk.odoo.router import router as odoo_router
from opsdesk.treasury.router import router as treasury_router

APP_VERSION = "1.0.0"

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger("opsdesk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Opsdesk %s starting (%s)", APP_VERSION, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Opsdesk stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Opsdesk",
        description="Back-office operations: expense approvals, treasury, attendance, Odoo sync",
        version=APP_VERSION,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
    app.include_router(treasury_router, prefix="/api/v1/treasury", tags=["treasury"])
    app.include_router(expenses_router, prefix="/api/v1/expense-requests", tags=["expense-requests"])
    app.include_router(attendance_router, prefix="/api/v1/attendance", tags=["attendance"])
    app.include_router(odoo_router, prefix="/api/v1/odoo-sync", tags=["odoo-sync"])

    return app


app = create_app()
