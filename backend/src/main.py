# pyright: reportMissingTypeStubs=false
"""
Booking Engine Backend API

A FastAPI application exposing availability calculation and conflict-free
appointment booking for service businesses.

Features:
- Free/busy calculation from weekly schedules and date exceptions
- Booking validation with next-slot suggestions
- Transactional booking that stays correct under concurrent requests
- Redis-backed availability cache
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, availability
from core.constants import CORS_ORIGINS
from core.database import SessionLocal
from core.exceptions import BookingError, ConflictError
from core.redis_client import create_redis_client
from services.registry import build_service_registry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("📅 Booking Engine API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Booking Engine Backend API")
    redis_client = create_redis_client()
    app.state.services = build_service_registry(SessionLocal, redis_client)

    yield

    try:
        redis_client.close()
    except Exception as e:
        logger.exception(f"❌ Error closing Redis client: {e}")

    logger.info("🛑 Shutting down Booking Engine Backend API")


# Create FastAPI application
app = FastAPI(
    title="Booking Engine Backend",
    description="Availability calculation and booking conflict detection",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    availability.router,
    prefix="/api/businesses",
    tags=["availability"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    appointments.router,
    prefix="/api/businesses",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    availability.cache_router,
    prefix="/api/availability-cache",
    tags=["cache"],
    responses={
        409: {"description": "Warming already in progress"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Booking Engine Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Turn booking refusals into JSON responses with their own status codes."""
    if isinstance(exc, ConflictError):
        logger.info(f"Booking conflict on {request.url.path}: {exc.message}")
    elif exc.status_code >= 500:
        logger.error(f"Booking engine error on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
