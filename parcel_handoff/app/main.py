"""
FastAPI Application Entry Point.

This is the main application file for the Parcel Handoff Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from parcel_handoff.app.core.config import settings
from parcel_handoff.app.api.v1.router import router as api_v1_router
from parcel_handoff.app.core.observability import ObservabilityMiddleware, configure_logging
from parcel_handoff.app.core.redis_client import redis_client, ping_redis
from parcel_handoff.app.db.session import engine, Base, AsyncSessionLocal
from parcel_handoff.app.services.container import build_services
from parcel_handoff.app.services.sweep_scheduler import DeliverySweepScheduler
from parcel_handoff.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from parcel_handoff.app.models.user import User
from parcel_handoff.app.models.carrier_profile import CarrierProfile
from parcel_handoff.app.models.address import Address
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.review import Review
from parcel_handoff.app.models.notification import Notification
from parcel_handoff.app.models.settlement import Settlement
from parcel_handoff.app.models.ledger_entry import LedgerEntry
from parcel_handoff.app.models.audit_log import AuditLog
from parcel_handoff.app.models.dlq import DeadLetterQueue

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.
    
    1. Creates database tables on startup.
    2. Builds the delivery services.
    3. Starts the hourly auto-confirmation sweep and stops it on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    services = build_services(AsyncSessionLocal)
    app.state.services = services

    scheduler = None
    if settings.sweep_enabled:
        scheduler = DeliverySweepScheduler(
            services.delivery,
            redis_client,
            interval_seconds=settings.sweep_interval_seconds,
            lock_ttl_seconds=settings.sweep_lock_ttl_seconds,
        )
        scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel hand-off between vendors and carriers, from acceptance to confirmed delivery",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.
    
    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.
    
    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Parcel Handoff Backend API",
        "docs": "/docs",
        "health": "/health",
    }
