"""
Risk Worker Health API
======================
Read-only HTTP surface for the external health checker.

This API provides:
- Database connectivity and worker liveness
- Latest pipeline run per periodic task

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import __version__
from api.deps import shutdown_db
from api.routers import health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    """
    logger.info("Risk worker health API starting up...")
    yield
    logger.info("Risk worker health API shutting down...")
    shutdown_db()


app = FastAPI(
    title="Risk Worker Health API",
    description="Liveness and last-run status of the risk scoring worker.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
            "status_code": 500
        }
    )


app.include_router(health_router)


@app.get("/", tags=["Root"])
def root():
    """
    API root - returns links to the available endpoints.
    """
    return {
        "message": "Risk Worker Health API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "health": "/api/v1/health",
            "runs": "/api/v1/meta/runs",
        }
    }
