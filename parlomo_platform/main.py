"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parlomo_platform.config import settings
from parlomo_platform.api import api_router
from parlomo_platform.database import init_database, close_database
from parlomo_platform.middleware import (
    ErrorHandlerMiddleware,
    ValidationMiddleware,
    RateLimiterMiddleware,
    LoggingMiddleware
)
from parlomo_platform.services.seatsio_client import close_seatsio_client
from parlomo_platform.utils.logging_config import setup_logging

setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/parlomo.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Parlomo Platform")
    await init_database()
    yield
    logger.info("Shutting down Parlomo Platform")
    await close_seatsio_client()
    await close_database()

app = FastAPI(
    title="Parlomo Platform API",
    description="""
    ## Parlomo Platform

    Event listings and ticketing for the Parlomo marketplace.

    ### Key Features

    * **Public Events**: Organizers create, publish and cancel events; buyers browse by category, city and date
    * **Ticketing**: Ticket types with capacity, sales windows and per-order limits
    * **Promo Codes**: Percentage and fixed discounts with usage limits
    * **Checkout**: Server-side checkout sessions that hold tickets until payment completes
    * **Scanning**: Signed QR tickets checked in at the door
    * **Seat Blocking**: Hold seats back on seats.io charts
    * **Financials**: Refund and settlement requests reviewed by admins

    ### Authentication

    JWT bearer tokens: `Authorization: Bearer <access_token>` from `/api/v1/auth/login`.

    ### Money

    All amounts are integers in minor units (pence/cents).
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "authentication", "description": "Registration, login and tokens"},
        {"name": "user-management", "description": "User profiles and admin user management"},
        {"name": "categories", "description": "Public event categories"},
        {"name": "public-events", "description": "Public event listing and lifecycle"},
        {"name": "ticketing", "description": "Ticket types, promo codes, sales reports and seat blocking"},
        {"name": "checkout", "description": "Checkout sessions, orders and tickets"},
        {"name": "scanner", "description": "Ticket validation at the venue"},
        {"name": "financials", "description": "Refund and settlement requests"},
        {"name": "health", "description": "System health and monitoring endpoints"},
    ],
    lifespan=lifespan,
)

# Middleware runs in reverse order of registration

app.add_middleware(
    LoggingMiddleware,
    log_requests=settings.enable_request_logging,
    log_responses=settings.enable_request_logging
)

app.add_middleware(
    ErrorHandlerMiddleware,
    debug=settings.debug
)

if settings.enable_rate_limiting:
    app.add_middleware(
        RateLimiterMiddleware,
        default_limit=settings.default_rate_limit,
        default_window=settings.default_rate_window,
        burst_limit=settings.burst_rate_limit,
        burst_window=settings.burst_rate_window
    )

app.add_middleware(
    ValidationMiddleware,
    max_request_size=10 * 1024 * 1024  # 10MB
)

if settings.debug:
    # Credentials cannot be combined with wildcard origins
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    """Basic information about the API."""
    return {
        "message": "Parlomo Platform API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Liveness check for uptime monitoring."""
    return {"status": "healthy", "service": "parlomo-platform"}


@app.get("/health/detailed", tags=["health"])
async def detailed_health_check():
    """
    Detailed health check with service dependencies.

    Reports database, Redis, Celery, SMTP and seats.io status together with
    circuit breaker state.
    """
    from parlomo_platform.utils.health_check import get_health_status
    return await get_health_status()


def run():
    """Console entry point."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
