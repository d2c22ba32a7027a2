"""
Irreversible revocation of share links.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.models.share import ShareLink
from snipshare.utils.clock import utcnow


class RevocationLedger:
    """
    Kill switch for share links.

    ``revoke`` only ever moves revoked_at from NULL to a timestamp; there
    is no operation that clears it.
    """

    async def revoke(
        self,
        db: AsyncSession,
        link: ShareLink,
        actor_id: Optional[int],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Revoke a link if it is not revoked yet.

        Args:
            db: Database session
            link: ShareLink to revoke
            actor_id: User performing the revocation (None for housekeeping)
            now: Revocation time

        Returns:
            True if this call revoked the link, False if it already was
        """
        now = now or utcnow()
        result = await db.execute(
            update(ShareLink)
            .where(ShareLink.id == link.id, ShareLink.revoked_at.is_(None))
            .values(revoked_at=now, revoked_by_id=actor_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(link, attribute_names=["revoked_at", "revoked_by_id", "updated_at"])
        return result.rowcount == 1

    @staticmethod
    def is_revoked(link) -> bool:
        return link.revoked_at is not None
