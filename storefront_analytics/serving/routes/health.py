"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from storefront_analytics.analytics.sql_source import SQLDataSource
from storefront_analytics.config import get_settings
from storefront_analytics.database.connection import check_database_health
from storefront_analytics.database.redis_client import check_redis_health

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


def _uses_database(request: Request) -> bool:
    registry = getattr(request.app.state, "registry", None)
    return registry is not None and isinstance(registry.source, SQLDataSource)


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity (when reports read from the database)
    - Redis change feed connectivity
    - Live pipelines
    """
    settings = get_settings()
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    if _uses_database(request):
        checks["database"] = await check_database_health()
        if checks["database"].get("status") != "healthy":
            overall_status = "unhealthy"

        checks["redis"] = await check_redis_health()
        if checks["redis"].get("status") != "healthy" and overall_status == "healthy":
            overall_status = "degraded"

    registry = getattr(request.app.state, "registry", None)
    checks["pipelines"] = {"status": "healthy", "live": len(registry) if registry else 0}

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 once a data source is attached and reachable.
    """
    if getattr(request.app.state, "registry", None) is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "data_source_unavailable"}

    if _uses_database(request):
        db_health = await check_database_health()
        if db_health.get("status") != "healthy":
            response.status_code = 503
            return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
