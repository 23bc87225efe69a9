"""
SceneStitch API

Main FastAPI application entry point.

Usage:
    uvicorn scenestitch.main:app
"""

import logging

from fastapi import FastAPI

from .api import api_router
from .core.config import get_settings
from .core.redis import check_redis_health

# Load settings
settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    description="Scene-based video rendering pipeline",
    version=settings.version,
)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker/orchestration.

    Redis backs both the render queue and the default job store, so it is
    the one dependency checked here.
    """
    checks = {}

    redis_status = check_redis_health()
    if redis_status.healthy:
        checks["redis"] = {
            "status": "healthy",
            "latency_ms": redis_status.latency_ms,
        }
    else:
        checks["redis"] = {
            "status": "unhealthy",
            "error": redis_status.error,
        }

    return {
        "status": "healthy" if redis_status.healthy else "unhealthy",
        "checks": checks,
        "version": settings.version,
    }
