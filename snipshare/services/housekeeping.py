"""
Periodic housekeeping for share links.

Marks links that are past their deadline or out of views as revoked.
Access evaluation re-checks both conditions live, so the sweep only
keeps listings and statistics tidy; it is idempotent and disabled by
default (SHARE_SWEEP_INTERVAL_SECONDS=0).
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.config import get_settings
from snipshare.database import get_db_context
from snipshare.models.share import ShareLink
from snipshare.utils.clock import utcnow
from snipshare.utils.logger import log_error, log_info
from snipshare.utils.prometheus_metrics import share_sweep_revoked_total

settings = get_settings()


@dataclass
class SweepResult:
    expired: int = 0
    view_limit: int = 0

    @property
    def total(self) -> int:
        return self.expired + self.view_limit


class ShareLinkSweeper:
    """Revokes expired and quota-exhausted links in bulk."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Revoke active links whose deadline has passed. Returns the count."""
        now = now or utcnow()
        result = await self.db.execute(
            update(ShareLink)
            .where(
                ShareLink.revoked_at.is_(None),
                ShareLink.expires_at.is_not(None),
                ShareLink.expires_at <= now,
            )
            .values(revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def cleanup_view_limit_reached(self, now: Optional[datetime] = None) -> int:
        """Revoke active links that used up their view quota. Returns the count."""
        now = now or utcnow()
        result = await self.db.execute(
            update(ShareLink)
            .where(
                ShareLink.revoked_at.is_(None),
                ShareLink.max_views.is_not(None),
                ShareLink.current_views >= ShareLink.max_views,
            )
            .values(revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        result = SweepResult(
            expired=await self.cleanup_expired(now),
            view_limit=await self.cleanup_view_limit_reached(now),
        )
        if result.expired:
            share_sweep_revoked_total.labels(reason="expired").inc(result.expired)
        if result.view_limit:
            share_sweep_revoked_total.labels(reason="view_limit").inc(result.view_limit)
        return result


async def run_sweep() -> SweepResult:
    """One sweep in its own session (committed on success)."""
    async with get_db_context() as db:
        result = await ShareLinkSweeper(db).sweep()
    if result.total:
        log_info(
            "Share sweep",
            event="share",
            expired=result.expired,
            view_limit=result.view_limit,
        )
    return result


async def sweeper_loop() -> None:
    """
    Background loop started from the app lifespan.
    Returns immediately when SHARE_SWEEP_INTERVAL_SECONDS is 0.
    """
    interval = settings.share_sweep_interval_seconds
    if interval <= 0:
        return
    log_info("Share sweeper enabled", event="lifecycle", interval=interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await run_sweep()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # 한 번의 실패로 루프를 멈추지 않음 (다음 주기에 재시도)
            log_error("Share sweep failed", exc_info=True, event="share", error_type=type(e).__name__)
