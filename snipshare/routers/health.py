"""
Health Check 라우터.

애플리케이션의 상태를 확인하는 엔드포인트를 제공합니다.
"""
import asyncio
import logging
import time
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from snipshare.config import get_settings
from snipshare.database import engine
from snipshare.utils.prometheus_metrics import (
    REGISTRY,
    Gauge,
    ready,
)

logger = logging.getLogger("snipshare.health")
router = APIRouter(prefix="/health", tags=["Health"])

settings = get_settings()

# Health check 상태 메트릭
health_check_status = Gauge(
    "snipshare_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["check_type"],
    registry=REGISTRY,
)

DB_CHECK_TIMEOUT_SECONDS = 1.0


async def _check_db() -> None:
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


def _is_ready() -> bool:
    return ready._value.get() != 0


@router.get(
    "/",
    summary="Health check (fast)",
)
async def health_check() -> Dict[str, Any]:
    """
    빠른 Health Check (로드밸런서용).

    - 애플리케이션 실행 상태 확인
    - DB 연결은 간단히 확인 (타임아웃 1초)
    """
    start_time = time.perf_counter()

    if not _is_ready():
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )

    try:
        await asyncio.wait_for(_check_db(), timeout=DB_CHECK_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("DB health check timeout", extra={"event": "health"})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning(
            "DB health check failed",
            extra={"event": "health", "error": str(e)},
        )
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    health_check_status.labels(check_type="fast").set(1)
    return {
        "status": "healthy",
        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "instance": settings.instance_ip or "unknown",
    }


@router.get(
    "/liveness",
    summary="Liveness probe (Kubernetes)",
)
async def liveness_probe() -> Dict[str, str]:
    """
    Liveness Probe (Kubernetes용).

    애플리케이션이 살아있는지만 확인합니다.
    """
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )
    return {"status": "alive"}


@router.get(
    "/readiness",
    summary="Readiness probe (Kubernetes)",
)
async def readiness_probe() -> Dict[str, str]:
    """
    Readiness Probe (Kubernetes용).

    요청을 처리할 준비(ready 게이지, DB 연결)가 되었는지 확인합니다.
    """
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is not ready",
        )

    try:
        await asyncio.wait_for(_check_db(), timeout=DB_CHECK_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Readiness check failed: DB timeout", extra={"event": "health"})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning(
            "Readiness check failed: DB",
            extra={"event": "health", "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )

    return {"status": "ready"}


@router.get(
    "/detailed",
    summary="Detailed health check (monitoring)",
)
async def detailed_health_check() -> Dict[str, Any]:
    """
    상세 Health Check (모니터링 시스템용).

    - DB 연결 확인
    - 만료 링크 정리 주기 / 레이트 리밋 설정 노출
    """
    start_time = time.perf_counter()
    checks: Dict[str, Any] = {"status": "healthy", "checks": {}}

    if not _is_ready():
        checks["status"] = "unhealthy"
        checks["checks"]["ready"] = {"status": "down", "error": "Application is shutting down"}
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    try:
        await asyncio.wait_for(_check_db(), timeout=DB_CHECK_TIMEOUT_SECONDS)
        checks["checks"]["database"] = {"status": "up"}
    except asyncio.TimeoutError:
        checks["status"] = "unhealthy"
        checks["checks"]["database"] = {"status": "down", "error": "Timeout"}
    except Exception as e:
        checks["status"] = "unhealthy"
        checks["checks"]["database"] = {"status": "down", "error": str(e)[:200]}
        logger.warning(
            "DB health check failed",
            extra={"event": "health", "error": str(e)},
        )

    checks["checks"]["share_sweeper"] = (
        {"status": "enabled", "interval_seconds": settings.share_sweep_interval_seconds}
        if settings.share_sweep_interval_seconds > 0
        else {"status": "skipped", "reason": "Disabled"}
    )
    checks["checks"]["rate_limit"] = {
        "status": "enabled" if settings.rate_limit_enabled else "skipped",
    }

    checks["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
    checks["instance"] = settings.instance_ip or "unknown"

    if checks["status"] == "unhealthy":
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    health_check_status.labels(check_type="detailed").set(1)
    return checks
