"""
Prometheus metrics for stability, high availability, and share-link access.

- FastAPI: request count, latency (Instrumentator)
- Node/instance: app_info
- Stability: exceptions_total, db_errors_total
- HA: ready gauge (1=up, 0=shutting down), in_flight_requests
- Share links: access outcomes, latency, brute force, quota races, sweeps
- Pushgateway: 선택 시 주기적으로 메트릭 푸시 (PROMETHEUS_PUSHGATEWAY_URL)
"""
import asyncio
import logging
import socket

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, pushadd_to_gateway
from prometheus_fastapi_instrumentator import Instrumentator

from snipshare.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "snipshare_exceptions_total",
    "Total unhandled exceptions",
    registry=REGISTRY,
)
db_errors_total = Counter(
    "snipshare_db_errors_total",
    "Total database session/transaction errors",
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "snipshare_ready",
    "Application ready (1=up, 0=shutting down)",
    registry=REGISTRY,
)

# 진행 중인 요청 수 (Graceful shutdown용)
in_flight_requests = Gauge(
    "snipshare_in_flight_requests",
    "Number of requests currently being processed",
    registry=REGISTRY,
)

# --- Rate Limiting ---
rate_limit_hits_total = Counter(
    "snipshare_rate_limit_hits_total",
    "Total number of rate limit hits (requests blocked)",
    ["endpoint", "client_id"],  # client_id는 IP 주소 일부 (개인정보 보호)
    registry=REGISTRY,
)

rate_limit_requests_total = Counter(
    "snipshare_rate_limit_requests_total",
    "Total number of requests checked for rate limiting",
    ["endpoint", "status"],  # status: allowed | blocked
    registry=REGISTRY,
)

# --- Share Link Access ---
share_access_total = Counter(
    "snipshare_share_access_total",
    "Share link access decisions by outcome",
    ["outcome", "channel"],  # channel: view | raw | download
    registry=REGISTRY,
)

share_access_duration_seconds = Histogram(
    "snipshare_share_access_duration_seconds",
    "Share link access evaluation duration in seconds",
    ["outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

share_brute_force_attempts = Counter(
    "snipshare_share_brute_force_attempts_total",
    "Unknown-token and wrong-password attempts on share links",
    ["client_id", "kind"],  # kind: token | password
    registry=REGISTRY,
)

share_view_quota_races_total = Counter(
    "snipshare_share_view_quota_races_total",
    "Grants downgraded because the atomic view consume lost a race",
    registry=REGISTRY,
)

share_link_operations_total = Counter(
    "snipshare_share_link_operations_total",
    "Share link management operations",
    ["operation", "result"],  # operation: create | update | revoke | delete | regenerate
    registry=REGISTRY,
)

share_sweep_revoked_total = Counter(
    "snipshare_share_sweep_revoked_total",
    "Links revoked by the housekeeping sweep",
    ["reason"],  # reason: expired | view_limit
    registry=REGISTRY,
)

# --- Auth ---
user_login_total = Counter(
    "snipshare_user_login_total",
    "Total login attempts",
    ["result"],  # result: success | failure
    registry=REGISTRY,
)

user_registration_total = Counter(
    "snipshare_user_registration_total",
    "Total registration attempts",
    ["result"],  # result: success | failure
    registry=REGISTRY,
)

login_duration_seconds = Histogram(
    "snipshare_login_duration_seconds",
    "Login request duration in seconds",
    ["result"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=REGISTRY,
)


def _node_identity() -> str:
    """Node/instance identifier: NODE_NAME env or hostname."""
    settings = get_settings()
    if settings.node_name:
        return settings.node_name
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


def push_metrics_to_gateway() -> None:
    """
    Push current registry to Prometheus Pushgateway.
    Called periodically when PROMETHEUS_PUSHGATEWAY_URL is set.
    """
    settings = get_settings()
    url = (settings.prometheus_pushgateway_url or "").strip()
    if not url:
        return
    grouping_key = {"instance": settings.instance_ip or _node_identity()}
    if (settings.region or "").strip():
        grouping_key["region"] = settings.region.strip()
    try:
        # pushadd_to_gateway uses POST; push_to_gateway uses PUT (some gateways/proxies return 501 for PUT)
        pushadd_to_gateway(url, job="snipshare", registry=REGISTRY, grouping_key=grouping_key)
    except Exception as e:
        logger.warning("Pushgateway push failed: %s", e, exc_info=False)


async def pushgateway_loop() -> None:
    """
    Background loop: push metrics to Pushgateway at configured interval.
    Returns immediately when PROMETHEUS_PUSHGATEWAY_URL is not set.
    Push is run in thread pool to avoid blocking the event loop.
    """
    settings = get_settings()
    url = (settings.prometheus_pushgateway_url or "").strip()
    if not url:
        return
    interval = max(15, settings.prometheus_push_interval_seconds)
    logger.info(
        "Pushgateway enabled: url=%s interval=%ds",
        url,
        interval,
        extra={"event": "lifecycle"},
    )
    loop = asyncio.get_running_loop()
    while True:
        await asyncio.sleep(interval)
        await loop.run_in_executor(None, push_metrics_to_gateway)


def setup_prometheus(app) -> None:
    """
    Register Prometheus instrumentation and custom metrics.

    1. app_info + Instrumentator (FastAPI request metrics).
    2. /metrics 엔드포인트 노출 (스크래핑용).
    """
    settings = get_settings()

    app_info = Gauge(
        "snipshare_app_info",
        "Application and node identity (labels only, value is 1)",
        ["node", "app", "version", "environment", "region"],
        registry=REGISTRY,
    )
    app_info.labels(
        node=_node_identity(),
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
        region=(settings.region or "").strip() or "unknown",
    ).set(1)

    # status 라벨을 2xx/3xx 대신 구체 코드(200, 302, 404 등)로 노출
    Instrumentator(should_group_status_codes=False).instrument(app).expose(
        app, endpoint="/metrics"
    )
