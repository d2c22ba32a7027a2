"""
Last-access metadata for share links.

Only the most recent grant is kept (single slot). A full access history
is not recorded here.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from snipshare.models.share import ShareLink
from snipshare.utils.clock import utcnow

MAX_IP_LENGTH = 45
MAX_USER_AGENT_LENGTH = 512


class AccessAuditTrail:
    """Overwrites the last-access fields of a link on each grant."""

    async def record(
        self,
        db: AsyncSession,
        link: ShareLink,
        ip: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime] = None,
    ) -> None:
        now = now or utcnow()
        values = {
            "last_accessed_at": now,
            "last_accessed_ip": ip[:MAX_IP_LENGTH] if ip else None,
            "last_accessed_user_agent": user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
        }
        await db.execute(
            update(ShareLink)
            .where(ShareLink.id == link.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        for key, value in values.items():
            set_committed_value(link, key, value)
