"""
FastAPI Application Entry Point.

This is the main application file for the Marketplace Back-Office service.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backoffice.app.core.config import settings
from backoffice.app.api.v1.router import router as api_v1_router
from backoffice.app.core.observability import ObservabilityMiddleware, configure_logging
from backoffice.app.core.redis_client import ping_redis, close_redis
from backoffice.app.db.session import engine, Base
from backoffice.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backoffice.app.models.profile import Profile  # noqa: F401
from backoffice.app.models.location import Governorate, City, District  # noqa: F401
from backoffice.app.models.provider import Provider  # noqa: F401
from backoffice.app.models.banner import HomepageBanner  # noqa: F401
from backoffice.app.models.order import Order, OrderItem, Refund  # noqa: F401
from backoffice.app.models.settlement import Settlement, SettlementGroup  # noqa: F401
from backoffice.app.models.custom_order import (  # noqa: F401
    CustomOrderRequest, CustomOrderItem, CustomOrderPriceHistory
)
from backoffice.app.models.audit_log import PermissionAuditLog, ActivityLog  # noqa: F401

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()
    await close_redis()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Back-office API for the marketplace: banners, locations, settlements and custom orders",
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
    return {
        "message": "Marketplace Back-Office API",
        "docs": "/docs",
        "health": "/health",
    }
