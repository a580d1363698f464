"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from bookstore.infrastructure.broker import get_broker
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import get_database

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="bookstore-api",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Check that the database and the message broker answer.

    Returns:
        200 ``ready`` or 503 ``not_ready``.
    """
    try:
        async with get_database().engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await get_broker().ping()
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return JSONResponse(content={"status": "ready"})
