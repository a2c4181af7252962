"""Health check endpoints."""

import asyncio
import logging
import time
from typing import Any

import psutil
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from keyescrow.db.session import engine

logger = logging.getLogger(__name__)

router = APIRouter()


async def check_database() -> dict[str, Any]:
    """Check database connectivity and response time.

    Returns:
        dict with status, latency_ms, and optional error
    """
    start = time.time()
    try:
        async with engine.connect() as conn:
            await asyncio.wait_for(
                conn.execute(text("SELECT 1")),
                timeout=5.0,
            )
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except asyncio.TimeoutError:
        return {
            "status": "unhealthy",
            "error": "Database connection timeout (>5s)",
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": "Database connection failed",
        }


def _usage_status(percent_used: float) -> str:
    if percent_used > 90:
        return "unhealthy"
    if percent_used > 80:
        return "degraded"
    return "healthy"


def check_memory() -> dict[str, Any]:
    """Check system memory usage; key generation is memory hungry under load."""
    try:
        memory = psutil.virtual_memory()
        return {
            "status": _usage_status(memory.percent),
            "percent_used": memory.percent,
            "available_mb": round(memory.available / (1024 * 1024), 2),
        }
    except Exception as e:
        logger.error(f"Memory health check failed: {e}")
        return {"status": "unknown", "error": "Failed to check memory"}


def check_disk() -> dict[str, Any]:
    """Check disk space usage."""
    try:
        disk = psutil.disk_usage("/")
        return {
            "status": _usage_status(disk.percent),
            "percent_used": disk.percent,
            "available_gb": round(disk.free / (1024 * 1024 * 1024), 2),
        }
    except Exception as e:
        logger.error(f"Disk health check failed: {e}")
        return {"status": "unknown", "error": "Failed to check disk space"}


@router.get("/health")
async def health_check() -> JSONResponse:
    """Database, memory and disk checks. 200 unless something is unhealthy."""
    start_time = time.time()

    db_result, memory_result, disk_result = await asyncio.gather(
        check_database(),
        asyncio.to_thread(check_memory),
        asyncio.to_thread(check_disk),
    )
    checks = [db_result, memory_result, disk_result]

    if any(check["status"] == "unhealthy" for check in checks):
        overall_status = "unhealthy"
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    elif any(check["status"] == "degraded" for check in checks):
        overall_status = "degraded"
        http_status = status.HTTP_200_OK
    else:
        overall_status = "healthy"
        http_status = status.HTTP_200_OK

    return JSONResponse(
        status_code=http_status,
        content={
            "status": overall_status,
            "timestamp": time.time(),
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "checks": {
                "database": db_result,
                "memory": memory_result,
                "disk": disk_result,
            },
        },
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Readiness: 200 once the database answers, 503 otherwise."""
    db_result = await check_database()
    if db_result["status"] != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": db_result.get("error", "Database unavailable"),
                "timestamp": time.time(),
            },
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ready", "timestamp": time.time()},
    )
