"""
Share link related Pydantic schemas for request/response validation.
"""
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from snipshare.models.share import ShareType

MAX_VIEWS_LIMIT = 10000

_DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)+$"
)


def normalize_emails(values: Optional[List[str]]) -> Optional[List[str]]:
    """Lower-case and de-duplicate an email allowlist, keeping order."""
    if values is None:
        return None
    seen: List[str] = []
    for value in values:
        email = str(value).strip().lower()
        if email and email not in seen:
            seen.append(email)
    return seen


def normalize_domains(values: Optional[List[str]]) -> Optional[List[str]]:
    """
    Lower-case, strip a leading '@' and de-duplicate a domain allowlist.

    Raises:
        ValueError: If an entry is not a valid domain name
    """
    if values is None:
        return None
    seen: List[str] = []
    for value in values:
        domain = str(value).strip().lower().lstrip("@").rstrip(".")
        if not _DOMAIN_PATTERN.match(domain):
            raise ValueError(f"Invalid domain: {value!r}")
        if domain not in seen:
            seen.append(domain)
    return seen


class ShareLinkCreate(BaseModel):
    """Schema for creating a share link."""

    snippet_id: int
    share_type: ShareType = ShareType.VIEW
    allowed_emails: Optional[List[EmailStr]] = None
    allowed_domains: Optional[List[str]] = None
    require_authentication: bool = False
    expires_in_hours: Optional[int] = Field(
        None, ge=1, le=24 * 365, description="Hours until the link expires"
    )
    expires_in_days: Optional[int] = Field(
        None, ge=1, le=365, description="Days until the link expires"
    )
    expires_at: Optional[datetime] = Field(
        None, description="Absolute expiry (UTC). Must be in the future"
    )
    max_views: Optional[int] = Field(None, ge=1, le=MAX_VIEWS_LIMIT)
    password: Optional[str] = Field(None, max_length=128)
    watermark_enabled: bool = False
    download_enabled: bool = True

    @field_validator("allowed_emails")
    @classmethod
    def lower_emails(cls, v):
        return normalize_emails(v)

    @field_validator("allowed_domains")
    @classmethod
    def lower_domains(cls, v):
        return normalize_domains(v)

    @model_validator(mode="after")
    def check_single_expiry(self):
        given = [
            name for name in ("expires_in_hours", "expires_in_days", "expires_at")
            if getattr(self, name) is not None
        ]
        if len(given) > 1:
            raise ValueError(f"Only one of {', '.join(given)} may be set")
        return self


class ShareLinkUpdate(BaseModel):
    """
    Schema for a partial share link update.

    Explicit nulls matter: ``allowed_emails: null`` and ``max_views: null``
    clear the restriction, ``password: ""`` removes the password, and a
    non-positive ``expires_in_hours``/``expires_in_days`` removes the expiry.
    """

    share_type: Optional[ShareType] = None
    allowed_emails: Optional[List[EmailStr]] = None
    allowed_domains: Optional[List[str]] = None
    require_authentication: Optional[bool] = None
    expires_in_hours: Optional[int] = Field(None, le=24 * 365)
    expires_in_days: Optional[int] = Field(None, le=365)
    expires_at: Optional[datetime] = None
    remove_expiration: bool = False
    max_views: Optional[int] = Field(None, ge=1, le=MAX_VIEWS_LIMIT)
    password: Optional[str] = Field(None, max_length=128)
    watermark_enabled: Optional[bool] = None
    download_enabled: Optional[bool] = None
    regenerate_token: bool = False

    @field_validator("allowed_emails")
    @classmethod
    def lower_emails(cls, v):
        return normalize_emails(v)

    @field_validator("allowed_domains")
    @classmethod
    def lower_domains(cls, v):
        return normalize_domains(v)

    @model_validator(mode="after")
    def check_single_expiry(self):
        given = [
            name for name in ("expires_in_hours", "expires_in_days", "expires_at")
            if getattr(self, name) is not None
        ]
        if self.remove_expiration:
            given.append("remove_expiration")
        if len(given) > 1:
            raise ValueError(f"Only one of {', '.join(given)} may be set")
        return self


class ShareLinkSnapshot(BaseModel):
    """
    Immutable view of a share link, as consumed by AccessEvaluator.decide.

    Built from an ORM row with ``from_link``; the evaluator never touches
    the session-bound row directly.
    """

    id: str
    snippet_id: int
    created_by_id: int
    share_type: ShareType = ShareType.VIEW
    token: str
    require_password: bool = False
    password_hash: Optional[str] = None
    allowed_emails: Tuple[str, ...] = ()
    allowed_domains: Tuple[str, ...] = ()
    require_authentication: bool = False
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    current_views: int = 0
    watermark_enabled: bool = False
    download_enabled: bool = True
    created_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    snippet_exists: bool = True

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("allowed_emails", "allowed_domains", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return () if v is None else tuple(v)

    @classmethod
    def from_link(cls, link, snippet_exists: bool = True) -> "ShareLinkSnapshot":
        """Capture the current state of a ShareLink row."""
        return cls.model_validate(link).model_copy(update={"snippet_exists": snippet_exists})


class ShareLinkResponse(BaseModel):
    """Schema for share link response (owner view, never carries the hash)."""

    id: str
    snippet_id: int
    share_type: ShareType
    token: str
    share_url: str  # Full URL for sharing
    require_password: bool
    allowed_emails: Optional[List[str]] = None
    allowed_domains: Optional[List[str]] = None
    require_authentication: bool
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    current_views: int
    remaining_views: Optional[int] = None
    remaining_time: Optional[str] = None
    watermark_enabled: bool
    download_enabled: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    revoked_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None


class ShareLinkListResponse(BaseModel):
    """Schema for a paginated share link listing."""

    shares: List[ShareLinkResponse]
    total: int
    page: int
    limit: int
    pages: int


class ShareStatistics(BaseModel):
    """Per-owner share link counts."""

    total: int = 0
    active: int = 0
    revoked: int = 0
    expired: int = 0
    password_protected: int = 0
    total_views: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class SharePasswordSubmit(BaseModel):
    """Schema for unlocking a password-protected share link."""

    password: str = Field(..., min_length=1, max_length=128)


class SharedSnippetResponse(BaseModel):
    """
    Schema for shared snippet response (public access).
    Carries the snippet plus the non-gating rendering flags.
    """

    title: str
    language: Optional[str] = None
    content: str
    share_type: ShareType
    watermark_enabled: bool
    download_enabled: bool
    expires_at: Optional[datetime] = None
    remaining_views: Optional[int] = None
    created_at: datetime
    # 비밀번호 통과 시 발급되는 증명 (X-Share-Access 헤더로 재사용)
    password_proof: Optional[str] = None
