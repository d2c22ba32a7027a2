"""Tests for AccessEvaluator.evaluate against the database."""

import asyncio

from snipshare.services.access import AccessEvaluator, AccessOutcome, AccessRequest
from snipshare.services.audit import MAX_USER_AGENT_LENGTH
from snipshare.services.revocation import RevocationLedger
from snipshare.services.share import ShareLinkService
from snipshare.services.view_counter import ViewCounter
from snipshare.schemas.share import ShareLinkUpdate
from snipshare.utils.security import create_share_access_proof


async def _access(db_session, evaluator, token, **request):
    decision = await evaluator.evaluate(db_session, token, AccessRequest(**request))
    await db_session.commit()
    return decision


class TestGrantSideEffects:
    """Tests for what a granted access writes."""

    async def test_grant_consumes_view_and_records_access(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet)

        decision = await _access(
            db_session, evaluator, link.token, ip="203.0.113.9", user_agent="pytest-agent"
        )

        assert decision.granted
        await db_session.refresh(link)
        assert link.current_views == 1
        assert link.last_accessed_at is not None
        assert link.last_accessed_ip == "203.0.113.9"
        assert link.last_accessed_user_agent == "pytest-agent"

    async def test_long_user_agent_is_truncated(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet)

        await _access(db_session, evaluator, link.token, user_agent="x" * 2000)

        await db_session.refresh(link)
        assert len(link.last_accessed_user_agent) == MAX_USER_AGENT_LENGTH

    async def test_denied_access_writes_nothing(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet, password="open-sesame")

        decision = await _access(db_session, evaluator, link.token, supplied_password="nope")

        assert decision.outcome == AccessOutcome.PASSWORD_INCORRECT
        await db_session.refresh(link)
        assert link.current_views == 0
        assert link.last_accessed_at is None

    async def test_unknown_token(self, db_session, evaluator, owner, snippet, make_share):
        await make_share(owner, snippet)

        decision = await _access(db_session, evaluator, "does-not-exist")

        assert decision.outcome == AccessOutcome.NOT_FOUND
        assert decision.link is None


class TestScenarios:
    """End-to-end share link scenarios."""

    async def test_password_and_view_quota(self, db_session, evaluator, owner, snippet, make_share):
        """Two correct-password views succeed, the third hits the quota."""
        link = await make_share(owner, snippet, max_views=2, password="open-sesame")

        first = await _access(db_session, evaluator, link.token, supplied_password="open-sesame")
        second = await _access(db_session, evaluator, link.token, supplied_password="open-sesame")
        third = await _access(db_session, evaluator, link.token, supplied_password="open-sesame")

        assert first.granted and second.granted
        assert first.password_verified
        assert third.outcome == AccessOutcome.VIEW_LIMIT_REACHED
        await db_session.refresh(link)
        assert link.current_views == 2

    async def test_expired_link(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet, expires_in_hours=1, expired=True)

        decision = await _access(db_session, evaluator, link.token)

        assert decision.outcome == AccessOutcome.EXPIRED
        await db_session.refresh(link)
        assert link.current_views == 0
        assert link.last_accessed_at is None

    async def test_email_allowlist(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet, allowed_emails=["alice@example.com"])

        anonymous = await _access(db_session, evaluator, link.token)
        bob = await _access(db_session, evaluator, link.token, viewer_email="bob@example.com")
        alice = await _access(db_session, evaluator, link.token, viewer_email="alice@example.com")

        assert anonymous.outcome == AccessOutcome.AUTHENTICATION_REQUIRED
        assert bob.outcome == AccessOutcome.EMAIL_NOT_ALLOWED
        assert alice.granted
        await db_session.refresh(link)
        assert link.current_views == 1

    async def test_revoked_link(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet)
        await ShareLinkService(db_session).revoke(owner, link.id)
        await db_session.commit()

        decision = await _access(db_session, evaluator, link.token)

        assert decision.outcome == AccessOutcome.REVOKED

    async def test_regenerated_token(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet)
        old_token = link.token
        await ShareLinkService(db_session).regenerate_token(owner, link.id)
        await db_session.commit()

        old = await _access(db_session, evaluator, old_token)
        new = await _access(db_session, evaluator, link.token)

        assert old.outcome == AccessOutcome.NOT_FOUND
        assert new.granted


class TestPasswordProof:
    """Tests for the signed proof that skips the password on later requests."""

    async def test_valid_proof_skips_password(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet, password="open-sesame")
        proof = create_share_access_proof(link.id, link.token, link.password_hash)

        decision = await _access(db_session, evaluator, link.token, password_proof=proof)

        assert decision.granted
        assert not decision.password_verified

    async def test_password_change_voids_proof(self, db_session, evaluator, owner, snippet, make_share):
        link = await make_share(owner, snippet, password="open-sesame")
        proof = create_share_access_proof(link.id, link.token, link.password_hash)
        await ShareLinkService(db_session).update(owner, link.id, ShareLinkUpdate(password="changed"))
        await db_session.commit()

        decision = await _access(db_session, evaluator, link.token, password_proof=proof)

        assert decision.outcome == AccessOutcome.PASSWORD_REQUIRED

    async def test_proof_for_other_link_is_ignored(self, db_session, evaluator, owner, snippet, make_share):
        first = await make_share(owner, snippet, password="open-sesame")
        second = await make_share(owner, snippet, password="open-sesame")
        proof = create_share_access_proof(first.id, first.token, first.password_hash)

        decision = await _access(db_session, evaluator, second.token, password_proof=proof)

        assert decision.outcome == AccessOutcome.PASSWORD_REQUIRED


class TestConcurrentViews:
    """Tests for the atomic view quota under concurrent grants."""

    async def test_quota_is_never_exceeded(self, session_factory, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, max_views=3)
        evaluator = AccessEvaluator()

        async def attempt():
            async with session_factory() as session:
                decision = await evaluator.evaluate(session, link.token, AccessRequest())
                await session.commit()
                return decision.outcome

        outcomes = await asyncio.gather(*(attempt() for _ in range(8)))

        assert outcomes.count(AccessOutcome.GRANTED) == 3
        assert outcomes.count(AccessOutcome.VIEW_LIMIT_REACHED) == 5
        await db_session.refresh(link)
        assert link.current_views == 3

    async def test_try_consume_directly(self, session_factory, db_session, owner, snippet, make_share):
        """Test that racing try_consume calls succeed exactly max_views times."""
        link = await make_share(owner, snippet, max_views=2)
        counter = ViewCounter()

        async def consume():
            async with session_factory() as session:
                row = await session.get(type(link), link.id)
                consumed = await counter.try_consume(session, row)
                await session.commit()
                return consumed

        results = await asyncio.gather(*(consume() for _ in range(6)))

        assert results.count(True) == 2
        await db_session.refresh(link)
        assert link.current_views == 2

    async def test_revoked_after_load_is_not_consumed(self, session_factory, db_session, owner, snippet, make_share):
        """Test that a revocation committed after the row was loaded stops the consume."""
        link = await make_share(owner, snippet, max_views=5)

        async with session_factory() as session:
            row = await session.get(type(link), link.id)
            await RevocationLedger().revoke(session, row, actor_id=owner.id)
            await session.commit()

        consumed = await ViewCounter().try_consume(db_session, link)
        await db_session.commit()

        assert consumed is False
        assert link.revoked_at is not None
        assert link.current_views == 0

    async def test_revoked_between_lookup_and_grant(self, session_factory, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet)

        class RevokingEvaluator(AccessEvaluator):
            async def lookup(self, db, token):
                found = await super().lookup(db, token)
                async with session_factory() as session:
                    row = await session.get(type(found), found.id)
                    await RevocationLedger().revoke(session, row, actor_id=owner.id)
                    await session.commit()
                return found

        decision = await _access(db_session, RevokingEvaluator(), link.token)

        assert decision.outcome == AccessOutcome.REVOKED
        await db_session.refresh(link)
        assert link.current_views == 0
        assert link.last_accessed_at is None
