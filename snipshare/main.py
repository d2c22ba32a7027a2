"""
FastAPI SnipShare Application.

Main application entry point that configures:
- CORS middleware
- API routers
- Database lifecycle
- Logging system
- Exception handlers
- Rate limiting (slowapi)
- Prometheus metrics (스크래핑 + 선택적 Pushgateway)
- Background share link sweep
- Graceful shutdown (Autoscaling 환경 최적화)
"""
import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.middleware import SlowAPIMiddleware

from snipshare.config import get_settings
from snipshare.database import init_db, close_db
from snipshare.routers import (
    auth_router,
    health_router,
    share_router,
    shares_router,
    snippets_router,
)
from snipshare.services.housekeeping import sweeper_loop
from snipshare.utils.prometheus_metrics import (
    exceptions_total,
    ready,
    setup_prometheus,
    pushgateway_loop,
)
from snipshare.middlewares.rate_limit_middleware import setup_rate_limit
from snipshare.utils.logger import setup_logging, get_request_id, log_error, log_info
from snipshare.middlewares.logging_middleware import LoggingMiddleware
from snipshare.middlewares.request_tracking_middleware import RequestTrackingMiddleware

settings = get_settings()
logger = logging.getLogger("snipshare")

# Python logging 설정
setup_logging()

shutdown_event = asyncio.Event()

# 진행 중인 요청 추적 미들웨어 인스턴스 (Starlette가 미들웨어 스택 빌드 시 생성)
_request_tracker: Optional[RequestTrackingMiddleware] = None

SHUTDOWN_WAIT_SECONDS = 30.0


class _TrackedRequestTrackingMiddleware(RequestTrackingMiddleware):
    """lifespan에서 대기할 수 있도록 생성된 인스턴스를 모듈에 등록."""

    def __init__(self, app):
        global _request_tracker
        super().__init__(app)
        _request_tracker = self


def _install_signal_handlers() -> None:
    """SIGTERM/SIGINT 수신 시 shutdown_event 설정 (지원하지 않는 환경에서는 생략)."""
    loop = asyncio.get_running_loop()

    def signal_handler():
        shutdown_event.set()
        log_info("Shutdown signal received", event="lifecycle")

    for sig_name in ("SIGTERM", "SIGINT"):
        sig = getattr(signal, sig_name, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, signal_handler)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows / 메인 스레드가 아닌 경우 (테스트 클라이언트 등)
            logger.debug("Signal handler not installed", extra={"event": "lifecycle", "signal": sig_name})


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan with graceful shutdown for autoscaling.

    Graceful shutdown 흐름:
    1. SIGTERM/SIGINT 수신
    2. Health check 즉시 실패 (ready=0)
    3. 로드밸런서가 새 요청 차단
    4. 진행 중인 요청 완료 대기 (최대 30초)
    5. 백그라운드 작업 종료
    6. 리소스 정리
    """
    _install_signal_handlers()

    # 설정 검증 (프로덕션 환경에서만)
    if settings.is_production:
        from snipshare.utils.config_validator import validate_all_config
        config_ok, config_errors = await validate_all_config()
        if not config_ok:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in config_errors)
            log_error(
                "Startup failed: configuration validation errors",
                error_message=error_msg,
                event="lifecycle",
            )
            raise RuntimeError(error_msg)
        log_info("Configuration validation passed", event="lifecycle")

    await init_db()
    ready.set(1)
    log_info(
        "Application startup completed",
        event="lifecycle",
        version=settings.app_version,
        environment=settings.environment.value,
    )

    # Pushgateway 연동: PROMETHEUS_PUSHGATEWAY_URL 설정 시 백그라운드에서 주기 푸시
    pushgateway_task = asyncio.create_task(pushgateway_loop())
    # 만료 / 조회수 소진 링크 정리: SHARE_SWEEP_INTERVAL_SECONDS > 0 일 때만 동작
    sweeper_task = asyncio.create_task(sweeper_loop())

    yield

    # Graceful shutdown
    ready.set(0)  # Health check 즉시 실패 (로드밸런서가 새 요청 차단)
    log_info("Application shutdown initiated", event="lifecycle")

    if _request_tracker is not None:
        await _request_tracker.wait_for_requests(timeout=SHUTDOWN_WAIT_SECONDS)

    # 백그라운드 작업 종료
    await _cancel(sweeper_task)
    await _cancel(pushgateway_task)

    # DB 연결 종료
    await close_db()

    log_info("Graceful shutdown completed", event="lifecycle")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
## SnipShare API

A code snippet sharing API built with FastAPI, featuring:

### Features
- **User Management**: Registration and JWT authentication
- **Snippets**: Store and manage code snippets
- **Share Links**: Unguessable links with expiry, view limits, passwords,
  email/domain allowlists, revocation and token rotation
- **Shared Snippets**: Public access through the share token (view, raw, download)

### Authentication
Management endpoints require a Bearer token from `/auth/login`.
Public share endpoints accept an optional Bearer token for restricted links.
    """,
    openapi_tags=[
        {"name": "Authentication", "description": "User registration and login"},
        {"name": "Snippets", "description": "Snippet management"},
        {"name": "Share Links", "description": "Create and manage share links"},
        {"name": "Shared Snippets", "description": "Public access to shared snippets"},
        {"name": "Health", "description": "Health checks and probes"},
    ],
    lifespan=lifespan,
)

# Prometheus: FastAPI metrics + node info at /metrics
setup_prometheus(app)

# Rate limiting: limiter 등록 및 429 핸들러
setup_rate_limit(app)
if settings.rate_limit_enabled:
    # 데코레이터가 없는 엔드포인트에 기본 제한 적용
    app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Share-Access"],
)

# Add structured logging middleware
app.add_middleware(LoggingMiddleware)
# 진행 중인 요청 추적: Graceful shutdown을 위한 요청 카운트
app.add_middleware(_TrackedRequestTrackingMiddleware)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unhandled exception handler with structured logging.

    모든 처리되지 않은 예외를 캐치하여:
    - ERROR 로그 남김 (구조화된 포맷)
    - 500 응답 반환
    - Request ID 포함 (장애 추적용)
    """
    exceptions_total.inc()
    rid = get_request_id()

    log_error(
        "Unhandled exception occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code="INTERNAL_SERVER_ERROR",
        http_method=request.method,
        request_id=rid,
        event="exception",
        exc_info=True,
    )

    # 클라이언트에게 Request ID 반환 (장애 추적용)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "request_id": rid,  # 사용자가 이 ID로 문의 가능
        },
    )


# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(snippets_router)
app.include_router(shares_router)
app.include_router(share_router)


# Root endpoint
@app.get(
    "/",
    tags=["Root"],
    summary="API information",
)
async def root():
    """
    Root endpoint with API information.
    """
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
