"""
Atomic view quota for share links.

The quota is enforced by one conditional UPDATE:

    UPDATE share_links SET current_views = current_views + 1
    WHERE id = :id AND revoked_at IS NULL
      AND (max_views IS NULL OR current_views < max_views)

so concurrent grants on any number of instances can never push
current_views past max_views. There is no read-check-write step and no
in-process lock.
"""
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.models.share import ShareLink
from snipshare.utils.prometheus_metrics import share_view_quota_races_total


class ViewCounter:
    """Tracks and bounds the number of granted accesses per link."""

    async def try_consume(self, db: AsyncSession, link: ShareLink) -> bool:
        """
        Consume one view if the quota allows it.

        Args:
            db: Database session
            link: ShareLink being accessed; current_views and revoked_at are refreshed

        Returns:
            True if the row was incremented, False if the quota was exhausted
            or the link was revoked after it was loaded
        """
        result = await db.execute(
            update(ShareLink)
            .where(
                ShareLink.id == link.id,
                ShareLink.revoked_at.is_(None),
                or_(
                    ShareLink.max_views.is_(None),
                    ShareLink.current_views < ShareLink.max_views,
                ),
            )
            .values(current_views=ShareLink.current_views + 1)
            .execution_options(synchronize_session=False)
        )
        consumed = result.rowcount == 1
        if not consumed:
            share_view_quota_races_total.inc()
        await db.refresh(link, attribute_names=["current_views", "revoked_at"])
        return consumed

    @staticmethod
    def remaining_views(link) -> Optional[int]:
        """Views left before the quota is reached, or None when unlimited."""
        if link.max_views is None:
            return None
        return max(0, link.max_views - link.current_views)

    @staticmethod
    def is_exhausted(link) -> bool:
        return link.max_views is not None and link.current_views >= link.max_views
