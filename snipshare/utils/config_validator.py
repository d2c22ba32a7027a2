"""
설정 검증 유틸리티.

애플리케이션 시작 시 필수 설정을 검증합니다.
프로덕션 환경에서만 lifespan에서 호출됩니다.
"""
import logging
from typing import List, Tuple

from sqlalchemy import text

from snipshare.config import Settings, get_settings
from snipshare.database import engine

logger = logging.getLogger("snipshare.config_validator")

# 기본값 그대로인 비밀키는 프로덕션에서 거부
_DEFAULT_SECRETS = {
    "secret_key": "change-me-in-production",
    "jwt_secret_key": "jwt-secret-change-in-production",
}
MIN_SECRET_LENGTH = 32


async def validate_all_config() -> Tuple[bool, List[str]]:
    """
    애플리케이션 설정을 검증합니다.

    Returns:
        (통과 여부, 에러 메시지 목록)
    """
    settings = get_settings()
    logger.info("Starting configuration validation", extra={"event": "config"})

    errors: List[str] = []
    errors.extend(await _validate_database())
    errors.extend(_validate_secrets(settings))
    errors.extend(_validate_share_config(settings))

    if errors:
        logger.error(
            "Configuration validation failed",
            extra={"event": "config", "errors": errors},
        )
        return False, errors

    logger.info("Configuration validation completed successfully", extra={"event": "config"})
    return True, []


async def _validate_database() -> List[str]:
    """DB 연결 테스트."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database connection failed", extra={"event": "config"}, exc_info=True)
        return [f"Database connection failed: {e}"]
    logger.info("Database connection: OK", extra={"event": "config"})
    return []


def _validate_secrets(settings: Settings) -> List[str]:
    """JWT / 공유 비밀번호 증명 서명 키 검증."""
    errors: List[str] = []
    for field, default in _DEFAULT_SECRETS.items():
        value = getattr(settings, field)
        env_name = field.upper()
        if value == default:
            errors.append(f"{env_name} must be changed from its default value")
        elif len(value) < MIN_SECRET_LENGTH:
            errors.append(f"{env_name} must be at least {MIN_SECRET_LENGTH} characters")
    if settings.jwt_algorithm != "HS256":
        logger.warning(
            "Non-default JWT algorithm configured",
            extra={"event": "config", "jwt_algorithm": settings.jwt_algorithm},
        )
    return errors


def _validate_share_config(settings: Settings) -> List[str]:
    """공유 링크 관련 설정 검증."""
    errors: List[str] = []

    if settings.share_password_memory_cost < 19456:
        # OWASP 최소 권장값 (19 MiB) 미만
        errors.append("SHARE_PASSWORD_MEMORY_COST must be at least 19456 KiB in production")

    if settings.share_base_url and not settings.share_base_url.startswith("https://"):
        errors.append("SHARE_BASE_URL must use https in production")

    if not settings.share_collapse_unavailable:
        logger.warning(
            "SHARE_COLLAPSE_UNAVAILABLE is off; revoked/expired links are distinguishable",
            extra={"event": "config"},
        )

    if not settings.rate_limit_enabled:
        logger.warning("Rate limiting is disabled", extra={"event": "config"})

    if not errors:
        logger.info("Share link configuration: OK", extra={"event": "config"})
    return errors
