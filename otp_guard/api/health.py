"""
Health Check Module
===================
Health, liveness and readiness endpoints with component status.
"""

import time
from enum import Enum
from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel

from ..rate_limit import AddressRateLimiter
from ..store import SessionStore

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    tracked: Optional[int] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    version: str
    components: Dict[str, ComponentHealth]
    timestamp: float


async def check_store(store: SessionStore) -> ComponentHealth:
    """Check session store connectivity and latency."""
    try:
        start = time.time()
        ok = await store.ping()
        latency = (time.time() - start) * 1000
        if not ok:
            return ComponentHealth(status="error", error="ping failed")
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("Session store health check failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


def check_limiter(limiter: AddressRateLimiter) -> ComponentHealth:
    """Report whether the background sweep is running."""
    status = "running" if limiter.running else "stopped"
    return ComponentHealth(status=status, tracked=len(limiter))


def create_health_router(
    service_name: str,
    version: str,
    store: SessionStore,
    limiter: Optional[AddressRateLimiter] = None,
) -> APIRouter:
    """
    Create a health check router.

    Args:
        service_name: Name of the service
        version: Service version
        store: Session store to probe
        limiter: Rate limiter to report on (optional)

    Returns:
        FastAPI router with /health, /health/live and /health/ready endpoints
    """
    router = APIRouter(tags=["Health"])

    @router.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check with component statuses."""
        components: Dict[str, ComponentHealth] = {}
        overall_status = HealthStatus.HEALTHY

        store_health = await check_store(store)
        components["session_store"] = store_health
        if store_health.status == "error":
            overall_status = HealthStatus.UNHEALTHY

        if limiter is not None:
            limiter_health = check_limiter(limiter)
            components["rate_limiter"] = limiter_health
            if limiter_health.status != "running" and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return HealthResponse(
            status=overall_status,
            service=service_name,
            version=version,
            components=components,
            timestamp=time.time(),
        )

    @router.get("/health/live")
    async def liveness_probe():
        """Liveness probe - always returns 200 if the process is up."""
        return {"status": "alive"}

    @router.get("/health/ready")
    async def readiness_probe():
        """Readiness probe - the session store must be reachable."""
        store_health = await check_store(store)
        if store_health.status == "error":
            return Response(
                content='{"status": "not_ready", "reason": "session_store_unavailable"}',
                status_code=503,
                media_type="application/json",
            )
        return {"status": "ready"}

    return router
