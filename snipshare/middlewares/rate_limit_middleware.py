"""
Rate limiting using slowapi.

Public share endpoints get a tighter limit than the rest of the API
since they are the surface exposed to token and password guessing.
"""
import logging
from typing import Callable

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from snipshare.config import get_settings
from snipshare.utils.client_ip import client_label, get_client_ip
from snipshare.utils.prometheus_metrics import (
    rate_limit_hits_total,
    rate_limit_requests_total,
)

logger = logging.getLogger("snipshare.rate_limit")
settings = get_settings()


def get_client_identifier(request: Request) -> str:
    """Rate limit key: 프록시 헤더를 고려한 클라이언트 IP."""
    return get_client_ip(request) or "unknown"


# Rate limiter 인스턴스 (메모리 기반, 분산 환경에서는 공유 스토리지 필요)
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"] if settings.rate_limit_enabled else [],
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)

SHARE_RATE_LIMIT = f"{settings.rate_limit_share_per_minute}/minute"


def setup_rate_limit(app) -> None:
    """
    Attach the limiter to the app and register the 429 handler.
    slowapi looks the limiter up on app.state.
    """
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        client_id = get_client_identifier(request)
        # 토큰이 경로에 포함되므로 라우트 템플릿을 라벨로 사용
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unknown"

        rate_limit_hits_total.labels(endpoint=endpoint, client_id=client_label(client_id)).inc()
        rate_limit_requests_total.labels(endpoint=endpoint, status="blocked").inc()

        logger.warning(
            "Rate limit exceeded",
            extra={
                "event": "rate_limit",
                "client_ip": client_id,
                "endpoint": endpoint,
                "limit": getattr(exc, "detail", "unknown"),
            },
        )
        return _rate_limit_exceeded_handler(request, exc)


def get_rate_limit_decorator(limit: str) -> Callable:
    """
    Rate limit 데코레이터 생성 헬퍼.

    Args:
        limit: Rate limit 문자열 (예: "10/minute", "60/hour")
    """
    if not settings.rate_limit_enabled:
        def noop_decorator(func: Callable) -> Callable:
            return func
        return noop_decorator

    return limiter.limit(limit)
