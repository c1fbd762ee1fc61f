"""
Health check utilities for monitoring service dependencies.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..config import get_settings
from ..database import get_db_session

logger = logging.getLogger(__name__)


class HealthCheckResult:
    """Result of a health check."""

    def __init__(self, service: str, healthy: bool, response_time: float, details: Optional[Dict[str, Any]] = None):
        self.service = service
        self.healthy = healthy
        self.response_time = response_time
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "healthy": self.healthy,
            "response_time": self.response_time,
            "details": self.details,
            "timestamp": self.timestamp
        }


async def check_database_health() -> HealthCheckResult:
    """Check database connectivity."""
    start_time = time.time()

    try:
        async with get_db_session() as session:
            result = await session.execute(text("SELECT 1 AS health_check"))
            value = result.scalar_one()
    except (SQLAlchemyError, RuntimeError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        return HealthCheckResult(
            service="database",
            healthy=False,
            response_time=time.time() - start_time,
            details={"error": str(e), "error_type": type(e).__name__}
        )

    return HealthCheckResult(
        service="database",
        healthy=value == 1,
        response_time=time.time() - start_time,
        details={"query": "SELECT 1", "result": "success" if value == 1 else "unexpected"}
    )


async def check_notifier_health() -> HealthCheckResult:
    """Report whether the outbox broadcaster is polling."""
    from ..services.notification_service import seat_broadcaster

    settings = get_settings()
    running = seat_broadcaster.is_running

    return HealthCheckResult(
        service="notifier",
        healthy=running or not settings.enable_notifier,
        response_time=0.0,
        details={
            "enabled": settings.enable_notifier,
            "running": running,
            "cursor": seat_broadcaster.cursor,
            "subscribers": seat_broadcaster.subscriber_count,
        }
    )


async def check_celery_health() -> HealthCheckResult:
    """Check that Celery workers answer, so the periodic sweep is running."""
    start_time = time.time()

    from kombu.exceptions import OperationalError as BrokerError

    from ..tasks.celery_app import celery_app

    def _ping_workers():
        return celery_app.control.inspect(timeout=1.0).stats()

    try:
        stats = await asyncio.to_thread(_ping_workers)
    except (BrokerError, OSError) as e:
        logger.error(f"Celery health check failed: {e}")
        return HealthCheckResult(
            service="celery",
            healthy=False,
            response_time=time.time() - start_time,
            details={"error": str(e), "error_type": type(e).__name__}
        )

    if not stats:
        return HealthCheckResult(
            service="celery",
            healthy=False,
            response_time=time.time() - start_time,
            details={"error": "No active Celery workers found"}
        )

    return HealthCheckResult(
        service="celery",
        healthy=True,
        response_time=time.time() - start_time,
        details={"active_workers": len(stats), "workers": list(stats.keys())}
    )


async def get_health_status() -> Dict[str, Any]:
    """Get health status of the database, the notifier and, optionally, Celery."""
    start_time = time.time()

    checks = [check_database_health(), check_notifier_health()]
    if get_settings().health_check_celery:
        checks.append(check_celery_health())

    results = [check.to_dict() for check in await asyncio.gather(*checks)]
    overall_healthy = all(result["healthy"] for result in results)

    return {
        "status": "healthy" if overall_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_check_time": time.time() - start_time,
        "services": results,
        "summary": {
            "total_services": len(results),
            "healthy_services": sum(1 for r in results if r["healthy"]),
            "unhealthy_services": sum(1 for r in results if not r["healthy"])
        }
    }
