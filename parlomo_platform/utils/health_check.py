"""
Health check utilities for monitoring service dependencies.
"""

import asyncio
import logging
import smtplib
import ssl
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from ..cache import get_cache
from ..config import get_settings
from ..database import get_db_session
from ..models.base import utcnow
from .circuit_breaker import get_circuit_breaker_stats

logger = logging.getLogger(__name__)


class HealthCheckResult:
    """Result of a health check."""

    def __init__(self, service: str, healthy: bool, response_time: float, details: Optional[Dict[str, Any]] = None):
        self.service = service
        self.healthy = healthy
        self.response_time = response_time
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "healthy": self.healthy,
            "response_time": round(self.response_time, 4),
            "details": self.details,
        }


def _failed(service: str, start_time: float, error: Exception) -> HealthCheckResult:
    logger.error(f"{service} health check failed: {error}")
    return HealthCheckResult(
        service=service,
        healthy=False,
        response_time=time.time() - start_time,
        details={"error": str(error), "error_type": type(error).__name__}
    )


async def check_database_health() -> HealthCheckResult:
    """Check database connectivity."""
    start_time = time.time()
    try:
        async with get_db_session() as db:
            result = await db.execute(text("SELECT 1"))
            healthy = result.scalar() == 1
        return HealthCheckResult("database", healthy, time.time() - start_time)
    except Exception as e:
        return _failed("database", start_time, e)


async def check_redis_health() -> HealthCheckResult:
    """Round-trip a value through the cache."""
    start_time = time.time()
    cache = get_cache()
    if not cache.is_available:
        return HealthCheckResult(
            "redis", False, time.time() - start_time,
            {"error": "Cache not connected; requests fall back to the database"}
        )
    try:
        test_key = "health_check:test"
        await cache.set(test_key, "ok", ttl=10)
        value = await cache.get(test_key)
        await cache.delete(test_key)
        return HealthCheckResult("redis", value == "ok", time.time() - start_time)
    except Exception as e:
        return _failed("redis", start_time, e)


async def check_celery_health() -> HealthCheckResult:
    """Check that at least one Celery worker answers."""
    start_time = time.time()
    try:
        from ..tasks.celery_app import celery_app

        stats = await asyncio.to_thread(lambda: celery_app.control.inspect(timeout=1.0).stats())
        if stats:
            return HealthCheckResult(
                "celery", True, time.time() - start_time,
                {"active_workers": len(stats), "workers": list(stats.keys())}
            )
        return HealthCheckResult(
            "celery", False, time.time() - start_time,
            {"error": "No active Celery workers found"}
        )
    except Exception as e:
        return _failed("celery", start_time, e)


async def check_smtp_health() -> HealthCheckResult:
    """Check SMTP server connectivity."""
    start_time = time.time()
    settings = get_settings()

    def _connect():
        server = smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=5)
        try:
            if settings.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
        finally:
            server.quit()

    try:
        await asyncio.to_thread(_connect)
        return HealthCheckResult(
            "smtp", True, time.time() - start_time,
            {"server": settings.smtp_server, "port": settings.smtp_port}
        )
    except Exception as e:
        return _failed("smtp", start_time, e)


def check_seatsio_health() -> HealthCheckResult:
    """seats.io is healthy while configured and its circuit is not open."""
    settings = get_settings()
    breaker = get_circuit_breaker_stats().get("seatsio")
    state = breaker["state"] if breaker else "closed"
    return HealthCheckResult(
        "seatsio",
        bool(settings.seatsio_secret_key) and state != "open",
        0.0,
        {"configured": bool(settings.seatsio_secret_key), "circuit": state, "region": settings.seatsio_region}
    )


async def get_health_status() -> Dict[str, Any]:
    """Get comprehensive health status of all services."""
    start_time = time.time()
    settings = get_settings()

    checks: List[Any] = list(await asyncio.gather(
        check_database_health(),
        check_redis_health(),
        check_celery_health(),
        return_exceptions=True
    ))
    if settings.smtp_server:
        checks.append(await check_smtp_health())
    checks.append(check_seatsio_health())

    results = []
    for check in checks:
        if isinstance(check, Exception):
            logger.error(f"Health check failed with exception: {check}")
            check = HealthCheckResult("unknown", False, 0.0, {"error": str(check)})
        results.append(check.to_dict())

    # Only the database is critical; everything else degrades
    database_ok = any(r["service"] == "database" and r["healthy"] for r in results)
    all_ok = all(r["healthy"] for r in results)

    return {
        "status": "healthy" if all_ok else ("degraded" if database_ok else "unhealthy"),
        "timestamp": utcnow().isoformat(),
        "total_check_time": round(time.time() - start_time, 4),
        "services": results,
        "circuit_breakers": get_circuit_breaker_stats(),
        "summary": {
            "total_services": len(results),
            "healthy_services": sum(1 for r in results if r["healthy"]),
            "unhealthy_services": sum(1 for r in results if not r["healthy"])
        }
    }
