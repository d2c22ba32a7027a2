"""Unit tests for the periodic share link sweep."""

from unittest.mock import patch

from snipshare.services.housekeeping import ShareLinkSweeper, sweeper_loop


class TestShareLinkSweeper:
    """Tests for ShareLinkSweeper."""

    async def test_sweep_revokes_expired_and_exhausted(self, db_session, owner, snippet, make_share):
        active = await make_share(owner, snippet, max_views=5)
        expired = await make_share(owner, snippet, expires_in_hours=1, expired=True)
        exhausted = await make_share(owner, snippet, max_views=1)
        exhausted.current_views = 1
        await db_session.commit()

        result = await ShareLinkSweeper(db_session).sweep()
        await db_session.commit()

        assert result.expired == 1
        assert result.view_limit == 1
        assert result.total == 2
        for link in (active, expired, exhausted):
            await db_session.refresh(link)
        assert active.revoked_at is None
        assert expired.revoked_at is not None
        assert exhausted.revoked_at is not None
        assert expired.revoked_by_id is None

    async def test_sweep_is_idempotent(self, db_session, owner, snippet, make_share):
        await make_share(owner, snippet, expires_in_hours=1, expired=True)
        sweeper = ShareLinkSweeper(db_session)

        first = await sweeper.sweep()
        await db_session.commit()
        second = await sweeper.sweep()
        await db_session.commit()

        assert first.total == 1
        assert second.total == 0


class TestSweeperLoop:
    """Tests for the background loop entry point."""

    async def test_disabled_loop_returns_immediately(self):
        with patch("snipshare.services.housekeeping.settings") as mock_settings:
            mock_settings.share_sweep_interval_seconds = 0
            assert await sweeper_loop() is None
