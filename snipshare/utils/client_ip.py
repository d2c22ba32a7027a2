"""
클라이언트 IP / 공개 URL 추출 유틸리티.

프록시나 로드밸런서를 거치는 경우 실제 클라이언트 IP와 원본 호스트를
추출합니다. 공유 링크 감사 필드, rate limit 키, 공유 URL 생성에 사용됩니다.
"""
from typing import Optional

from fastapi import Request

from snipshare.config import get_settings

settings = get_settings()

# 메트릭 라벨에 쓰는 클라이언트 식별자 최대 길이 (개인정보 보호)
CLIENT_LABEL_LENGTH = 16

_CLIENT_IP_HEADERS = ("X-Real-IP", "CF-Connecting-IP", "True-Client-IP")


def get_client_ip(request: Request) -> Optional[str]:
    """
    요청에서 실제 클라이언트 IP를 추출합니다.

    확인 순서: X-Forwarded-For 첫 항목, X-Real-IP, CF-Connecting-IP,
    True-Client-IP, 마지막으로 request.client.host.

    Security:
        이 헤더들은 위조 가능하므로 신뢰할 수 있는 프록시가 외부 요청의
        헤더를 제거/재설정하는 환경을 전제로 합니다.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    if request.client:
        return request.client.host

    return None


def client_label(ip: Optional[str]) -> str:
    """Prometheus 라벨용 클라이언트 식별자 (IP 앞부분만)."""
    return (ip or "unknown")[:CLIENT_LABEL_LENGTH]


def get_forwarded_proto(request: Request) -> str:
    """요청의 원본 프로토콜 (X-Forwarded-Proto 우선)."""
    forwarded_proto = request.headers.get("X-Forwarded-Proto")
    if forwarded_proto:
        return forwarded_proto.split(",")[0].strip().lower()
    return request.url.scheme


def get_forwarded_host(request: Request) -> str:
    """요청의 원본 호스트 (X-Forwarded-Host 우선)."""
    forwarded_host = request.headers.get("X-Forwarded-Host")
    if forwarded_host:
        return forwarded_host.split(",")[0].strip()
    return request.headers.get("Host", "")


def get_public_base_url(request: Request) -> str:
    """
    공유 URL의 기준 주소.

    SHARE_BASE_URL이 설정되어 있으면 그 값을, 없으면 프록시 헤더를
    반영한 요청의 scheme://host를 사용합니다.
    """
    if settings.share_base_url.strip():
        return settings.share_base_url.strip().rstrip("/")
    host = get_forwarded_host(request) or request.url.netloc
    return f"{get_forwarded_proto(request)}://{host}"
