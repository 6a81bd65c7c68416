"""
Health check utilities for monitoring service dependencies.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .. import database
from ..cache import get_cache
from .circuit_breaker import get_all_circuit_breaker_stats

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthCheckResult:
    """Result of a health check."""

    def __init__(self, service: str, healthy: bool, response_time: float,
                 details: Optional[Dict[str, Any]] = None):
        self.service = service
        self.healthy = healthy
        self.response_time = response_time
        self.details = details or {}
        self.timestamp = _timestamp()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "healthy": self.healthy,
            "response_time": round(self.response_time, 4),
            "details": self.details,
            "timestamp": self.timestamp
        }


async def check_database_health() -> HealthCheckResult:
    """Check database connectivity."""
    start_time = time.time()

    if database.async_session_factory is None:
        return HealthCheckResult(
            service="database",
            healthy=False,
            response_time=0.0,
            details={"error": "Database not initialized"}
        )

    try:
        async with database.async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            healthy = result.scalar() == 1
        return HealthCheckResult(
            service="database",
            healthy=healthy,
            response_time=time.time() - start_time,
            details={"query": "SELECT 1", "result": "success" if healthy else "unexpected result"}
        )
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed: %s", e)
        return HealthCheckResult(
            service="database",
            healthy=False,
            response_time=time.time() - start_time,
            details={"error": str(e), "error_type": type(e).__name__}
        )


async def check_redis_health() -> HealthCheckResult:
    """Check Redis connectivity."""
    start_time = time.time()
    healthy = await get_cache().ping()
    details = {"operation": "ping"}
    if not healthy:
        details["error"] = "Redis unreachable or not initialized"
    return HealthCheckResult(
        service="redis",
        healthy=healthy,
        response_time=time.time() - start_time,
        details=details
    )


async def get_health_status() -> Dict[str, Any]:
    """
    Get health status of the database and cache.

    Redis is optional for correctness (cache reads fall back to the
    database), so an unhealthy cache only degrades the overall status.
    """
    start_time = time.time()

    db_check, redis_check = await asyncio.gather(
        check_database_health(),
        check_redis_health()
    )

    if not db_check.healthy:
        status = "unhealthy"
    elif not redis_check.healthy:
        status = "degraded"
    else:
        status = "healthy"

    results = [db_check.to_dict(), redis_check.to_dict()]
    return {
        "status": status,
        "timestamp": _timestamp(),
        "total_check_time": round(time.time() - start_time, 4),
        "services": results,
        "circuit_breakers": get_all_circuit_breaker_stats(),
        "summary": {
            "total_services": len(results),
            "healthy_services": sum(1 for r in results if r["healthy"]),
            "unhealthy_services": sum(1 for r in results if not r["healthy"])
        }
    }
