"""
FormRelay Health Endpoints

``/health`` reports the database and the startup email self-test.
Only the database can make the service unhealthy: without email,
submissions are still stored.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from formrelay.core.config import settings
from formrelay.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    timestamp: str
    version: str
    components: dict[str, ComponentHealth]


async def check_database(db: AsyncSession) -> ComponentHealth:
    """Round-trip a trivial query to the submissions database."""
    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database unreachable during health check: {e}")
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
            message=f"Database connection failed: {e}",
        )
    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
    )


def check_email(request: Request) -> ComponentHealth:
    """Result of the startup SMTP self-test, if it has finished."""
    available = getattr(request.app.state, "email_available", None)
    if available is None:
        return ComponentHealth(status=HealthStatus.DEGRADED, message="Email self-test has not completed")
    if not available:
        return ComponentHealth(status=HealthStatus.DEGRADED, message="Email transport unavailable")
    return ComponentHealth(status=HealthStatus.HEALTHY, message="Email transport verified")


def overall_status(components: dict[str, ComponentHealth]) -> HealthStatus:
    if components["database"].status == HealthStatus.UNHEALTHY:
        return HealthStatus.UNHEALTHY
    if all(c.status == HealthStatus.HEALTHY for c in components.values()):
        return HealthStatus.HEALTHY
    return HealthStatus.DEGRADED


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health_check(
    request: Request,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> HealthResponse:
    components = {
        "database": await check_database(db),
        "email": check_email(request),
    }
    result = overall_status(components)
    if result == HealthStatus.UNHEALTHY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=result,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        components=components,
    )


@router.get("/health/live", summary="Liveness probe")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}
