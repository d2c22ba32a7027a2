"""Unit tests for share token generation and rotation."""

import re
from itertools import chain, repeat

import pytest

from snipshare.models.share import ShareLink, ShareType
from snipshare.services.access import AccessEvaluator
from snipshare.services.errors import ShareLinkRevokedError, TokenGenerationError
from snipshare.services.revocation import RevocationLedger
from snipshare.services.tokens import TokenGenerator
from snipshare.utils.clock import utcnow

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def _sequence(*tokens, then="fallback-token"):
    """Token factory yielding the given tokens, then ``then`` forever."""
    values = chain(tokens, repeat(then))
    return lambda: next(values)


def _new_link(owner, snippet) -> ShareLink:
    now = utcnow()
    return ShareLink(
        snippet_id=snippet.id,
        created_by_id=owner.id,
        share_type=ShareType.VIEW,
        current_views=0,
        created_at=now,
        updated_at=now,
    )


class TestTokenGenerate:
    """Tests for TokenGenerator.generate."""

    def test_token_is_url_safe_and_256_bits(self):
        """Test the default token is 43 URL-safe characters."""
        token = TokenGenerator().generate()

        assert len(token) == 43
        assert URL_SAFE.match(token)

    def test_tokens_do_not_repeat(self):
        """Test that a batch of generated tokens contains no duplicates."""
        generator = TokenGenerator()
        tokens = {generator.generate() for _ in range(500)}

        assert len(tokens) == 500


class TestAssignUnique:
    """Tests for TokenGenerator.assign_unique."""

    async def test_persists_link_with_token(self, db_session, owner, snippet):
        """Test that a new link is inserted with a fresh token."""
        link = await TokenGenerator().assign_unique(db_session, _new_link(owner, snippet))
        await db_session.commit()

        assert link.id
        assert len(link.token) == 43

    async def test_collision_is_retried(self, db_session, owner, snippet):
        """Test that a token already used by an active link is replaced by the next candidate."""
        first = await TokenGenerator(token_factory=_sequence("taken-token")).assign_unique(
            db_session, _new_link(owner, snippet)
        )
        await db_session.commit()

        generator = TokenGenerator(max_retries=3, token_factory=_sequence("taken-token", "fresh-token"))
        second = await generator.assign_unique(db_session, _new_link(owner, snippet))
        await db_session.commit()

        assert first.token == "taken-token"
        assert second.token == "fresh-token"

    async def test_exhausted_retries_raise(self, db_session, owner, snippet):
        """Test that persistent collisions surface as TokenGenerationError."""
        await TokenGenerator(token_factory=_sequence("taken-token")).assign_unique(
            db_session, _new_link(owner, snippet)
        )
        await db_session.commit()

        generator = TokenGenerator(max_retries=3, token_factory=_sequence(then="taken-token"))
        with pytest.raises(TokenGenerationError):
            await generator.assign_unique(db_session, _new_link(owner, snippet))
        await db_session.rollback()

    async def test_revoked_link_token_can_be_reused(self, db_session, owner, snippet):
        """Test that uniqueness only applies among links that are not revoked."""
        old = await TokenGenerator(token_factory=_sequence("recycled")).assign_unique(
            db_session, _new_link(owner, snippet)
        )
        await RevocationLedger().revoke(db_session, old, actor_id=owner.id)
        await db_session.commit()

        new = await TokenGenerator(token_factory=_sequence("recycled")).assign_unique(
            db_session, _new_link(owner, snippet)
        )
        await db_session.commit()

        found = await AccessEvaluator().lookup(db_session, "recycled")
        assert found.id == new.id


class TestRegenerate:
    """Tests for TokenGenerator.regenerate."""

    async def test_new_token_differs_and_old_token_is_dead(self, db_session, owner, snippet):
        """Test that rotation swaps the token and the old one no longer resolves."""
        generator = TokenGenerator()
        link = await generator.assign_unique(db_session, _new_link(owner, snippet))
        await db_session.commit()
        old_token = link.token

        new_token = await generator.regenerate(db_session, link)
        await db_session.commit()

        assert new_token != old_token
        assert link.token == new_token
        evaluator = AccessEvaluator()
        assert await evaluator.lookup(db_session, old_token) is None
        assert (await evaluator.lookup(db_session, new_token)).id == link.id

    async def test_candidate_equal_to_current_is_skipped(self, db_session, owner, snippet):
        """Test that regenerate never returns the token it replaces."""
        link = await TokenGenerator(token_factory=_sequence("same")).assign_unique(
            db_session, _new_link(owner, snippet)
        )
        await db_session.commit()

        generator = TokenGenerator(max_retries=3, token_factory=_sequence("same", "different"))
        assert await generator.regenerate(db_session, link) == "different"
        await db_session.commit()

    async def test_revoked_link_cannot_be_rotated(self, db_session, owner, snippet):
        """Test that regenerate on a revoked link raises and leaves the token alone."""
        generator = TokenGenerator()
        link = await generator.assign_unique(db_session, _new_link(owner, snippet))
        await RevocationLedger().revoke(db_session, link, actor_id=owner.id)
        await db_session.commit()
        token = link.token

        with pytest.raises(ShareLinkRevokedError):
            await generator.regenerate(db_session, link)
        await db_session.rollback()

        await db_session.refresh(link)
        assert link.token == token
