"""Health check endpoint for production monitoring.

Used by container health checks, deployment scripts, and monitoring systems.
"""

import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from blockmarket.api.dependencies import Services
from blockmarket.logging import get_logger
from blockmarket.storage.database import Database
from blockmarket.storage.redis_locks import RedisLockHelper

logger = get_logger(__name__)

router = APIRouter()

# Track application start time for uptime calculation
_start_time: float = time.time()

# Application version from environment or default
APP_VERSION: str = os.environ.get("APP_VERSION", "0.0.0-dev")


@dataclass
class DependencyHealth:
    """Health status for a single dependency."""

    status: str  # "healthy" or "unhealthy"
    response_time_ms: int | None = None
    error: str | None = None


@dataclass
class HealthCheckResult:
    """Complete health check response."""

    status: str  # "healthy", "degraded", or "unhealthy"
    version: str
    uptime_seconds: int
    timestamp: str
    dependencies: dict[str, DependencyHealth] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result: dict[str, Any] = {
            "status": self.status,
            "version": self.version,
            "uptime_seconds": self.uptime_seconds,
            "timestamp": self.timestamp,
            "dependencies": {},
        }

        for name, dep in self.dependencies.items():
            dep_dict: dict[str, Any] = {"status": dep.status}
            if dep.response_time_ms is not None:
                dep_dict["response_time_ms"] = dep.response_time_ms
            if dep.error:
                dep_dict["error"] = dep.error
            result["dependencies"][name] = dep_dict

        if self.warnings:
            result["warnings"] = self.warnings
        if self.errors:
            result["errors"] = self.errors

        return result


async def check_database_health(database: Database) -> DependencyHealth:
    """Run ``SELECT 1`` through a fresh session."""
    start = time.perf_counter()
    try:
        async with database.session() as session:
            await session.execute(text("SELECT 1"))
        response_time = int((time.perf_counter() - start) * 1000)
        return DependencyHealth(status="healthy", response_time_ms=response_time)
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return DependencyHealth(
            status="unhealthy",
            error=f"Connection failed: {str(e)[:100]}",
        )


async def check_redis_health(lock_helper: RedisLockHelper) -> DependencyHealth:
    """PING the Redis instance backing the payout locks."""
    start = time.perf_counter()
    try:
        if not await lock_helper.ping():
            raise ConnectionError("Redis client not connected")
        response_time = int((time.perf_counter() - start) * 1000)
        return DependencyHealth(status="healthy", response_time_ms=response_time)
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))
        return DependencyHealth(
            status="unhealthy",
            error=f"Connection failed: {str(e)[:100]}",
        )


async def perform_health_check(
    database: Database | None,
    lock_helper: RedisLockHelper | None,
) -> HealthCheckResult:
    """Check every dependency and derive the overall status.

    The database is required: when it is down the service is unhealthy.
    Redis only serializes payouts, so losing it degrades the service.
    """
    result = HealthCheckResult(
        status="healthy",
        version=APP_VERSION,
        uptime_seconds=int(time.time() - _start_time),
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )

    if database is not None:
        result.dependencies["database"] = await check_database_health(database)
    else:
        result.dependencies["database"] = DependencyHealth(
            status="unhealthy",
            error="Database not configured",
        )

    if lock_helper is not None:
        result.dependencies["redis"] = await check_redis_health(lock_helper)
    else:
        result.warnings.append("Redis check skipped - locks not configured")

    if result.dependencies["database"].status == "unhealthy":
        result.status = "unhealthy"
        result.errors.append("Critical: database connection failed")
    elif any(dep.status == "unhealthy" for dep in result.dependencies.values()):
        result.status = "degraded"
        result.warnings.append("Redis unavailable")

    return result


def get_http_status_code(health_status: str) -> int:
    """Get HTTP status code for health status.

    Args:
        health_status: "healthy", "degraded", or "unhealthy"

    Returns:
        HTTP status code (200 or 503)
    """
    if health_status == "unhealthy":
        return 503
    return 200


@router.get("/health")
async def health(services: Services) -> JSONResponse:
    result = await perform_health_check(services.database, services.lock_helper)
    return JSONResponse(
        result.to_dict(),
        status_code=get_http_status_code(result.status),
        headers={"Cache-Control": "no-cache"},
    )


def reset_start_time() -> None:
    """Reset start time for testing purposes."""
    global _start_time
    _start_time = time.time()
