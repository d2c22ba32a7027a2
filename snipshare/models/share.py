"""
Share link model: the access policy record behind a public snippet token.
"""
import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snipshare.database import Base
from snipshare.utils.clock import utcnow

if TYPE_CHECKING:
    from snipshare.models.snippet import Snippet


class ShareType(str, enum.Enum):
    """What the recipient is invited to do. Carried through, not enforced."""
    VIEW = "view"
    EDIT = "edit"
    REVIEW = "review"


def _new_share_id() -> str:
    return str(uuid.uuid4())


class ShareLink(Base):
    """
    Share link granting token-based access to a snippet.

    Mutated by the owner through ShareLinkService and by granted accesses
    (view counter, last-access fields). Once revoked_at is set the row is
    terminal.
    """

    __tablename__ = "share_links"
    __table_args__ = (
        # 활성 링크 사이에서만 토큰 유일성 보장
        Index(
            "uq_share_links_active_token",
            "token",
            unique=True,
            sqlite_where=text("revoked_at IS NULL"),
            postgresql_where=text("revoked_at IS NULL"),
        ),
        Index("ix_share_links_token", "token"),
        Index("ix_share_links_snippet_id", "snippet_id"),
        Index("ix_share_links_creator_created", "created_by_id", "created_at"),
        Index("ix_share_links_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_share_id)
    snippet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("snippets.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    share_type: Mapped[ShareType] = mapped_column(
        Enum(
            ShareType,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=ShareType.VIEW,
        nullable=False,
    )

    # Opaque public token (43자 base64url)
    token: Mapped[str] = mapped_column(String(64), nullable=False)

    # Password gate (argon2id hash only)
    require_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Identity restrictions (lower-cased)
    allowed_emails: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    allowed_domains: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    require_authentication: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Expiration and quota
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    max_views: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Rendering flags (non-gating)
    watermark_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    download_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    revoked_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Last access (single slot, overwritten on each grant)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_accessed_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    last_accessed_user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Relationships
    snippet: Mapped[Optional["Snippet"]] = relationship("Snippet", back_populates="share_links")

    def __repr__(self) -> str:
        return f"<ShareLink(id={self.id}, snippet_id={self.snippet_id})>"
