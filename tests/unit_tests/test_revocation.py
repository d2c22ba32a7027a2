"""Unit tests for revocation and the last-access audit slot."""

from datetime import timedelta

from snipshare.services.audit import MAX_IP_LENGTH, AccessAuditTrail
from snipshare.services.revocation import RevocationLedger
from snipshare.utils.clock import utcnow


class TestRevocationLedger:
    """Tests for RevocationLedger.revoke."""

    async def test_revoke_sets_actor_and_time(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet)

        assert await RevocationLedger().revoke(db_session, link, actor_id=owner.id) is True
        await db_session.commit()

        assert link.revoked_at is not None
        assert link.revoked_by_id == owner.id
        assert RevocationLedger.is_revoked(link)

    async def test_second_revoke_is_noop(self, db_session, owner, snippet, make_share):
        """Test that revoking twice keeps the first timestamp and actor."""
        link = await make_share(owner, snippet)
        ledger = RevocationLedger()
        first_time = utcnow() - timedelta(minutes=5)
        await ledger.revoke(db_session, link, actor_id=owner.id, now=first_time)
        await db_session.commit()

        assert await ledger.revoke(db_session, link, actor_id=None) is False
        await db_session.commit()

        assert link.revoked_at == first_time
        assert link.revoked_by_id == owner.id


class TestAccessAuditTrail:
    """Tests for AccessAuditTrail.record."""

    async def test_overwrites_single_slot(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet)
        audit = AccessAuditTrail()

        await audit.record(db_session, link, "198.51.100.1", "first")
        await audit.record(db_session, link, "198.51.100.2", "second")
        await db_session.commit()
        await db_session.refresh(link)

        assert link.last_accessed_ip == "198.51.100.2"
        assert link.last_accessed_user_agent == "second"

    async def test_truncates_and_accepts_missing_values(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet)

        await AccessAuditTrail().record(db_session, link, "1" * 100, None)
        await db_session.commit()
        await db_session.refresh(link)

        assert len(link.last_accessed_ip) == MAX_IP_LENGTH
        assert link.last_accessed_user_agent is None
        assert link.last_accessed_at is not None
