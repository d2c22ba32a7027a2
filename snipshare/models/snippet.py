"""
Snippet model: the shared resource behind a share link.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String, DateTime, Integer, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snipshare.database import Base
from snipshare.utils.clock import utcnow

if TYPE_CHECKING:
    from snipshare.models.user import User
    from snipshare.models.share import ShareLink


class Snippet(Base):
    """Code snippet owned by a user. Content is opaque to share-link logic."""

    __tablename__ = "snippets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    language: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="snippets")
    share_links: Mapped[List["ShareLink"]] = relationship(
        "ShareLink",
        back_populates="snippet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Snippet(id={self.id}, title={self.title})>"
