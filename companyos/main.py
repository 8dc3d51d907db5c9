"""
FastAPI application entry point for the CompanyOS workspace backend.

Multi-tenant enforcement is enabled via TenantContextMiddleware.
All /api/ routes require a valid JWT with tenant context.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from companyos import __version__
from companyos.api.routes import ai_commands, expiration_checks, health
from companyos.config.expiration_monitor import get_expiration_config
from companyos.platform.tenant_context import TenantContextMiddleware

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting CompanyOS API")

    app.state.auth_configured = bool(os.getenv("JWT_SECRET"))
    if not app.state.auth_configured:
        logger.warning(
            "JWT_SECRET not set. Protected endpoints will return 503."
        )

    # Fail fast on an invalid threshold file
    config = get_expiration_config()
    logger.info(
        "Expiration monitor config ready",
        extra={
            "interval_minutes": config.schedule.interval_minutes,
            "min_interval_minutes": config.schedule.min_interval_minutes,
        },
    )

    yield

    logger.info("Shutting down CompanyOS API")


app = FastAPI(
    title="CompanyOS API",
    description="AI scope authorization and expiration monitoring for company workspaces",
    version=__version__,
    lifespan=lifespan,
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# CRITICAL: tenant context middleware
tenant_middleware = TenantContextMiddleware()
app.middleware("http")(tenant_middleware)

app.include_router(health.router)
app.include_router(ai_commands.router)
app.include_router(expiration_checks.router)
