"""
진행 중인 요청 추적 미들웨어.

Graceful shutdown 시 진행 중인 요청(공유 링크 조회 포함)이 끝날 때까지
기다릴 수 있도록 요청 수를 추적합니다.
"""
import asyncio
import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from snipshare.utils.prometheus_metrics import in_flight_requests

logger = logging.getLogger("snipshare.request_tracking")

# Health check 경로는 제외 (shutdown 시에도 체크 가능해야 함)
EXCLUDED_PATHS = {"/health", "/health/liveness", "/health/readiness", "/metrics"}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """진행 중인 요청 수를 in_flight_requests 게이지에 반영."""

    def __init__(self, app):
        super().__init__(app)
        self._lock = asyncio.Lock()
        self._request_count = 0

    @property
    def in_flight(self) -> int:
        return self._request_count

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        async with self._lock:
            self._request_count += 1
            in_flight_requests.set(self._request_count)

        try:
            return await call_next(request)
        finally:
            async with self._lock:
                self._request_count = max(0, self._request_count - 1)
                in_flight_requests.set(self._request_count)

    async def wait_for_requests(self, timeout: float = 30.0) -> bool:
        """
        진행 중인 요청이 완료될 때까지 대기.

        Returns:
            True: 모든 요청 완료, False: 타임아웃
        """
        deadline = time.monotonic() + timeout
        while True:
            async with self._lock:
                count = self._request_count
            if count == 0:
                logger.info("All in-flight requests completed", extra={"event": "shutdown"})
                return True
            if time.monotonic() >= deadline:
                logger.warning(
                    "Timeout waiting for requests (remaining: %d)",
                    count,
                    extra={"event": "shutdown", "remaining_requests": count, "timeout": timeout},
                )
                return False
            await asyncio.sleep(0.5)
