"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
from enum import Enum
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./snipshare.db"


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="SnipShare API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    secret_key: str = Field(default="change-me-in-production")

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        # DEBUG 환경 변수가 명시적으로 설정되지 않은 경우에만 환경 모드에 따라 설정
        import os
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database (빈 문자열이면 기본값 사용)
    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return DEFAULT_DATABASE_URL
        return v

    # JWT (account sessions + share password proofs)
    jwt_secret_key: str = Field(default="jwt-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)
    login_url: str = Field(
        default="/auth/login",
        description="Where viewers are redirected when a share link requires a signed-in identity",
    )

    # Share links
    share_base_url: str = Field(
        default="",
        description="Public base URL used to build share URLs. 비우면 요청의 호스트 사용",
    )
    share_token_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Token generation attempts before a uniqueness collision is treated as fatal",
    )
    share_max_views_limit: int = Field(default=10000, ge=1)
    share_collapse_unavailable: bool = Field(
        default=True,
        description="Collapse not_found/revoked/expired/view_limit_reached into one generic 404",
    )
    share_access_proof_expire_seconds: int = Field(
        default=3600,
        description="Lifetime of the signed proof issued after a correct share password",
    )
    share_sweep_interval_seconds: int = Field(
        default=0,
        description="Housekeeping sweep interval. 0 disables the background sweep",
    )

    # Share password hashing (argon2id). 계정 비밀번호 해시와 독립적으로 조정
    share_password_time_cost: int = Field(default=2, ge=1)
    share_password_memory_cost: int = Field(default=65536, ge=8192)
    share_password_parallelism: int = Field(default=1, ge=1)

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=120)
    rate_limit_share_per_minute: int = Field(default=30)

    # Logging
    log_dir: str = Field(default="/var/log/snipshare")

    # Prometheus
    node_name: str = Field(default="", description="Node/Pod identifier for Prometheus labels")
    region: str = Field(default="", description="Deployment region label")
    # Pushgateway: 설정 시 주기적으로 메트릭을 Pushgateway로 전송
    prometheus_pushgateway_url: str = Field(
        default="",
        description="Prometheus Pushgateway URL (e.g. http://pushgateway:9091). 비우면 푸시 안 함.",
    )
    prometheus_push_interval_seconds: int = Field(
        default=30,
        description="Pushgateway로 메트릭 전송 주기(초). prometheus_pushgateway_url 설정 시에만 사용.",
    )

    @field_validator("prometheus_push_interval_seconds", "share_sweep_interval_seconds", mode="before")
    @classmethod
    def coerce_interval(cls, v: object, info) -> int:
        if v is None or v == "":
            return 30 if info.field_name == "prometheus_push_interval_seconds" else 0
        return int(v)

    # 인스턴스 식별용 사설 IP (로그·메트릭용). 비우면 hostname 사용
    instance_ip: str = Field(default="", description="서버 사설 IP (비우면 자동 감지)")

    class Config:
        # 환경변수만 사용 (.env 파일 미사용)
        env_file = None
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid reading the environment on every request.
    """
    return Settings()
