"""
Share token generation and rotation.

Tokens are 32 random bytes from ``secrets`` encoded as base64url (43
characters, 256 bits). Uniqueness among active links is enforced by the
partial unique index on share_links.token; a collision is retried inside
a SAVEPOINT a bounded number of times before it is treated as fatal.
"""
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from snipshare.config import get_settings
from snipshare.models.share import ShareLink
from snipshare.services.errors import ShareLinkRevokedError, TokenGenerationError
from snipshare.utils.clock import utcnow
from snipshare.utils.logger import log_error, log_warning
from snipshare.utils.security import generate_share_token

settings = get_settings()


class TokenGenerator:
    """Produces unguessable share tokens and swaps them on ShareLink rows."""

    def __init__(
        self,
        max_retries: Optional[int] = None,
        token_factory: Callable[[], str] = generate_share_token,
    ):
        self.max_retries = max_retries or settings.share_token_max_retries
        self._token_factory = token_factory

    def generate(self) -> str:
        """Return a fresh URL-safe token."""
        return self._token_factory()

    async def assign_unique(self, db: AsyncSession, link: ShareLink) -> ShareLink:
        """
        Insert a new link with a fresh token, retrying on token collision.

        Args:
            db: Database session
            link: Unsaved ShareLink; its token is overwritten

        Returns:
            The persisted ShareLink

        Raises:
            TokenGenerationError: If every attempt collided
        """
        for attempt in range(1, self.max_retries + 1):
            link.token = self.generate()
            try:
                async with db.begin_nested():
                    db.add(link)
                    await db.flush()
                return link
            except IntegrityError:
                log_warning(
                    "Share token collision",
                    event="share",
                    attempt=attempt,
                    max_retries=self.max_retries,
                )
        log_error("Share token generation exhausted retries", event="share", attempts=self.max_retries)
        raise TokenGenerationError("Failed to generate a unique share token")

    async def regenerate(self, db: AsyncSession, link: ShareLink) -> str:
        """
        Replace the link's token with a new one in a single UPDATE.

        The previous token fails lookup as soon as the statement runs;
        there is no grace period.

        Args:
            db: Database session
            link: ShareLink to rotate

        Returns:
            The new token (never equal to the previous one)

        Raises:
            ShareLinkRevokedError: If the link is revoked
            TokenGenerationError: If every attempt collided
        """
        previous = link.token
        for attempt in range(1, self.max_retries + 1):
            candidate = self.generate()
            if candidate == previous:
                continue
            now = utcnow()
            try:
                async with db.begin_nested():
                    result = await db.execute(
                        update(ShareLink)
                        .where(ShareLink.id == link.id, ShareLink.revoked_at.is_(None))
                        .values(token=candidate, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
            except IntegrityError:
                log_warning(
                    "Share token collision",
                    event="share",
                    share_id=link.id,
                    attempt=attempt,
                    max_retries=self.max_retries,
                )
                continue
            if result.rowcount != 1:
                raise ShareLinkRevokedError("Cannot regenerate the token of a revoked link")
            # 이미 UPDATE로 반영됨: 세션에 dirty로 남기지 않음
            set_committed_value(link, "token", candidate)
            set_committed_value(link, "updated_at", now)
            return candidate
        log_error("Share token regeneration exhausted retries", event="share", share_id=link.id)
        raise TokenGenerationError("Failed to generate a unique share token")
