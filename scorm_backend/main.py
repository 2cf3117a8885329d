"""Main FastAPI application entry point.

Provides CORS, health endpoints and the SCORM package, content and runtime
APIs.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

# Import routers
from scorm_backend.routers import health, packages, content, runtime
from scorm_backend.models.persisted_scorm import utcnow
from scorm_backend.services.exceptions import ScormError
from scorm_backend.storage.exceptions import StorageError

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "LMS SCORM Service API"
VERSION = "1.0.0"
DESCRIPTION = """
SCORM package ingestion and runtime tracking for the LMS

## Features

* **Package Upload**: Validate, extract and register SCORM 1.2 / 2004 packages
* **Content Delivery**: Tenant-scoped, signed access to extracted package files
* **Launch**: Resolve entry URL and attempt number for a content object
* **Runtime Commits**: Merge incremental player state into attempt records
* **Analytics**: Attempt history, best attempt and per-content summaries
* **Health Check**: Monitor application status
"""

# Initialize FastAPI app
app = FastAPI(
    title=APP_NAME,
    description=DESCRIPTION,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# CORS middleware configuration
cors_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Global exception handlers


def _error_body(request, message, code=None, details=None) -> dict:
    body = {
        "success": False,
        "error": message,
        "timestamp": utcnow().isoformat(),
        "path": str(request.url)
    }
    if code:
        body["code"] = code
    if details:
        body["details"] = details
    return body


@app.exception_handler(ScormError)
async def scorm_exception_handler(request, exc: ScormError):
    """Render SCORM errors with their status code and stable error code"""
    body = _error_body(request, exc.message, exc.code, exc.details)
    attempt = getattr(exc, "attempt", None)
    if attempt is not None:
        body["attempt"] = attempt.to_dict()
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StorageError)
async def storage_exception_handler(request, exc: StorageError):
    """Storage is unavailable; callers may retry with backoff"""
    logger.error(f"Storage error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=503,
        content=_error_body(
            request, "Storage temporarily unavailable", "StorageUnavailable"
        ),
        headers={"Retry-After": "5"},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "Internal server error")
    )

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(packages.router, prefix="/api/v1")
app.include_router(content.router, prefix="/api/v1")
app.include_router(runtime.router, prefix="/api/v1")

# Root endpoint


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": APP_NAME,
        "version": VERSION,
        "status": "running",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": utcnow().isoformat(),
        "docs": "/docs",
        "health": "/api/v1/health"
    }

# Application startup event


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info(f"Starting {APP_NAME} v{VERSION}")
    logger.info(f"Environment: {os.getenv('ENVIRONMENT', 'development')}")
    logger.info(f"CORS Origins: {cors_origins}")
    # Optional automatic Alembic upgrade (env flag)
    if os.getenv("AUTO_MIGRATE", "false").lower() in {"1", "true", "yes"}:
        try:
            import subprocess
            logger.info("AUTO_MIGRATE enabled: running 'alembic upgrade head'")
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                cwd=os.path.join(os.path.dirname(__file__), ".."),
                capture_output=True,
                text=True,
                check=False,
            )
            if result.returncode != 0:
                logger.error(
                    "Alembic upgrade failed (code %s): %s\n%s",
                    result.returncode,
                    result.stdout,
                    result.stderr,
                )
            else:
                logger.info("Alembic migration applied successfully")
        except FileNotFoundError:
            logger.error(
                "Alembic not found - ensure it's installed in the environment"
            )

# Application shutdown event


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info(f"Shutting down {APP_NAME}")

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "scorm_backend.main:app",
        host=host,
        port=port,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
        log_level="info"
    )
