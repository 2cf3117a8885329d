"""
Health Check Router

Provides health check endpoints for monitoring application status.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging
import time
import os
import sys
from datetime import datetime

from scorm_backend.config import get_settings
from scorm_backend.db.config import get_session, ping
from scorm_backend.models.persisted_scorm import utcnow
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.exceptions import StorageError
from scorm_backend.storage.factory import get_storage_provider

# Initialize router
router = APIRouter()
logger = logging.getLogger(__name__)

# Application start time for uptime calculation
_start_time = time.time()

HEALTH_PROBE_KEY = "_health/probe"


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    timestamp: datetime = Field(default_factory=utcnow, description="Check timestamp")
    uptime: Optional[float] = Field(None, description="Uptime in seconds")


async def _check_database(session: AsyncSession) -> dict:
    try:
        await ping(session)
        return {"available": True}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        return {"available": False, "error": str(exc)}


async def _check_storage(storage: AbstractStorage) -> dict:
    try:
        await storage.put(HEALTH_PROBE_KEY, b"ok")
        readable = await storage.get(HEALTH_PROBE_KEY) == b"ok"
        await storage.delete(HEALTH_PROBE_KEY)
        return {"available": readable, "writable": True}
    except StorageError as exc:
        logger.error(f"Storage health check failed: {exc}")
        return {"available": False, "writable": False, "error": str(exc)}


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check():
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    This endpoint is used by load balancers and monitoring systems.
    """
    uptime = time.time() - _start_time

    return HealthCheckResponse(
        status="healthy",
        version=os.getenv("APP_VERSION", "1.0.0"),
        environment=os.getenv("ENVIRONMENT", "development"),
        timestamp=utcnow(),
        uptime=uptime
    )


@router.get("/health/detailed", summary="Detailed Health Check")
async def detailed_health_check(
    session: AsyncSession = Depends(get_session),
    storage: AbstractStorage = Depends(get_storage_provider),
):
    """
    Detailed health check with dependency validation

    Checks the database connection and that package storage accepts writes.
    """
    uptime = time.time() - _start_time
    settings = get_settings()

    services = {
        "database": await _check_database(session),
        "storage": await _check_storage(storage),
    }
    is_healthy = all(s["available"] for s in services.values())

    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": utcnow().isoformat(),
        "uptime": uptime,
        "services": services,
        "limits": {
            "maxArchiveBytes": settings.max_archive_bytes,
            "maxExtractedBytes": settings.max_extracted_bytes,
            "maxArchiveEntries": settings.max_archive_entries,
            "ingestTimeoutSeconds": settings.ingest_timeout_seconds,
            "suspendDataMaxBytes": settings.suspend_data_max_bytes,
        },
        "details": {
            "python_version": sys.version,
            "startup_time": datetime.fromtimestamp(_start_time).isoformat()
        }
    }


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(session: AsyncSession = Depends(get_session)):
    """
    Kubernetes-style readiness probe

    Returns 200 if the application is ready to serve requests,
    503 if the database is unreachable.
    """
    database = await _check_database(session)
    if not database["available"]:
        raise HTTPException(
            status_code=503,
            detail=f"Application not ready: {database.get('error')}"
        )
    return {"status": "ready", "timestamp": utcnow().isoformat()}


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """
    Kubernetes-style liveness probe

    Returns 200 if the application is alive and responding,
    should rarely fail unless the application is completely broken.
    """
    return {
        "status": "alive",
        "timestamp": utcnow().isoformat(),
        "pid": os.getpid()
    }
