"""Health check endpoints.

Provides:
- Liveness probe with a database ping (/api/health)
- Process status (/api/health/status)
"""

import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.config import get_settings
from app.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("", response_model=dict[str, Any])
async def health_check(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """
    Liveness probe. Pings the database; returns 503 if it is unreachable.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "database": "unavailable"},
        )

    settings = get_settings()
    return {
        "status": "healthy",
        "database": "ok",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/status", response_model=dict[str, Any])
async def system_status() -> dict[str, Any]:
    """
    Uptime, versions and background-job mode, for admin dashboards.
    """
    settings = get_settings()
    broker = "not used" if settings.RETRY_SWEEPER_IN_PROCESS else await _ping_broker(settings.REDIS_URL)
    uptime_seconds = time.monotonic() - _start_time
    hours, remainder = divmod(int(uptime_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "started_at": _start_datetime,
        "uptime": f"{hours}h {minutes}m {seconds}s",
        "uptime_seconds": round(uptime_seconds, 1),
        "python": {
            "version": sys.version,
            "platform": platform.platform(),
        },
        "retry_sweeper": "in-process" if settings.RETRY_SWEEPER_IN_PROCESS else "celery-beat",
        "broker": broker,
    }


async def _ping_broker(redis_url: str) -> str:
    """Ping the Celery broker; only relevant when retries are swept by beat."""
    client = aioredis.from_url(redis_url, socket_connect_timeout=2, socket_timeout=2)
    try:
        await client.ping()
        return "ok"
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        return "unavailable"
    finally:
        await client.aclose()
