"""Unit tests for ShareLinkService (owner-side operations)."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from snipshare.models.share import ShareLink, ShareType
from snipshare.schemas.share import ShareLinkCreate, ShareLinkUpdate
from snipshare.services.errors import (
    ShareLinkNotFoundError,
    ShareLinkPermissionError,
    ShareLinkRevokedError,
    ShareLinkValidationError,
)
from snipshare.services.revocation import RevocationLedger
from snipshare.services.share import ShareLinkService, build_share_url
from snipshare.services.view_counter import ViewCounter
from snipshare.utils.clock import utcnow


class TestCreate:
    """Tests for ShareLinkService.create."""

    async def test_defaults(self, db_session, owner, snippet):
        link = await ShareLinkService(db_session).create(owner, ShareLinkCreate(snippet_id=snippet.id))
        await db_session.commit()

        assert len(link.token) == 43
        assert link.share_type == ShareType.VIEW
        assert link.current_views == 0
        assert link.max_views is None
        assert link.expires_at is None
        assert link.require_password is False
        assert link.password_hash is None
        assert link.watermark_enabled is False
        assert link.download_enabled is True
        assert link.revoked_at is None

    async def test_password_is_hashed(self, db_session, owner, snippet):
        data = ShareLinkCreate(snippet_id=snippet.id, password="open-sesame")

        link = await ShareLinkService(db_session).create(owner, data)
        await db_session.commit()

        assert link.require_password is True
        assert link.password_hash.startswith("$argon2id$")
        assert "open-sesame" not in link.password_hash

    async def test_relative_expiry(self, db_session, owner, snippet):
        before = utcnow()
        link = await ShareLinkService(db_session).create(
            owner, ShareLinkCreate(snippet_id=snippet.id, expires_in_days=7)
        )
        await db_session.commit()

        assert before + timedelta(days=7) <= link.expires_at <= utcnow() + timedelta(days=7)

    async def test_aware_absolute_expiry_is_stored_as_utc(self, db_session, owner, snippet):
        deadline = datetime.now(timezone(timedelta(hours=9))) + timedelta(days=1)

        link = await ShareLinkService(db_session).create(
            owner, ShareLinkCreate(snippet_id=snippet.id, expires_at=deadline)
        )
        await db_session.commit()

        assert link.expires_at.tzinfo is None
        assert link.expires_at == deadline.astimezone(timezone.utc).replace(tzinfo=None)

    async def test_past_expiry_rejected(self, db_session, owner, snippet):
        data = ShareLinkCreate(snippet_id=snippet.id, expires_at=utcnow() - timedelta(hours=1))

        with pytest.raises(ShareLinkValidationError):
            await ShareLinkService(db_session).create(owner, data)

    async def test_unknown_snippet(self, db_session, owner):
        with pytest.raises(ShareLinkNotFoundError):
            await ShareLinkService(db_session).create(owner, ShareLinkCreate(snippet_id=9999))

    async def test_other_users_snippet(self, db_session, owner, snippet, make_user):
        stranger = await make_user()

        with pytest.raises(ShareLinkPermissionError):
            await ShareLinkService(db_session).create(stranger, ShareLinkCreate(snippet_id=snippet.id))

    async def test_allowlists_are_normalized(self, db_session, owner, snippet):
        data = ShareLinkCreate(
            snippet_id=snippet.id,
            allowed_emails=["Alice@Example.com", "alice@example.com"],
            allowed_domains=["@Example.ORG", "example.org."],
        )

        link = await ShareLinkService(db_session).create(owner, data)
        await db_session.commit()

        assert link.allowed_emails == ["alice@example.com"]
        assert link.allowed_domains == ["example.org"]


class TestCreateSchema:
    """Validation performed by ShareLinkCreate before the service runs."""

    def test_only_one_expiry_option(self):
        with pytest.raises(ValidationError):
            ShareLinkCreate(snippet_id=1, expires_in_hours=1, expires_in_days=1)

    @pytest.mark.parametrize("max_views", [0, -1, 10001])
    def test_max_views_bounds(self, max_views):
        with pytest.raises(ValidationError):
            ShareLinkCreate(snippet_id=1, max_views=max_views)

    def test_zero_hours_rejected_on_create(self):
        with pytest.raises(ValidationError):
            ShareLinkCreate(snippet_id=1, expires_in_hours=0)

    def test_invalid_domain(self):
        with pytest.raises(ValidationError):
            ShareLinkCreate(snippet_id=1, allowed_domains=["not a domain"])

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            ShareLinkCreate(snippet_id=1, allowed_emails=["nobody"])


class TestUpdate:
    """Tests for ShareLinkService.update."""

    async def test_max_views_below_current_rejected(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, max_views=10)
        link.current_views = 5
        await db_session.commit()

        with pytest.raises(ShareLinkValidationError):
            await ShareLinkService(db_session).update(owner, link.id, ShareLinkUpdate(max_views=4))
        await db_session.rollback()

        await db_session.refresh(link)
        assert link.max_views == 10

    async def test_max_views_equal_to_current_allowed(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, max_views=10)
        link.current_views = 5
        await db_session.commit()

        updated = await ShareLinkService(db_session).update(owner, link.id, ShareLinkUpdate(max_views=5))
        await db_session.commit()

        assert updated.max_views == 5

    async def test_explicit_null_lifts_restrictions(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, max_views=3, allowed_emails=["alice@example.com"])

        update = ShareLinkUpdate.model_validate({"max_views": None, "allowed_emails": None})
        updated = await ShareLinkService(db_session).update(owner, link.id, update)
        await db_session.commit()

        assert updated.max_views is None
        assert updated.allowed_emails is None

    async def test_omitted_fields_unchanged(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, max_views=3, password="open-sesame")
        password_hash = link.password_hash

        updated = await ShareLinkService(db_session).update(
            owner, link.id, ShareLinkUpdate(watermark_enabled=True)
        )
        await db_session.commit()

        assert updated.watermark_enabled is True
        assert updated.max_views == 3
        assert updated.password_hash == password_hash

    async def test_empty_password_clears(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, password="open-sesame")

        updated = await ShareLinkService(db_session).update(owner, link.id, ShareLinkUpdate(password=""))
        await db_session.commit()

        assert updated.require_password is False
        assert updated.password_hash is None

    async def test_remove_expiration(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, expires_in_hours=2)

        updated = await ShareLinkService(db_session).update(
            owner, link.id, ShareLinkUpdate(remove_expiration=True)
        )
        await db_session.commit()

        assert updated.expires_at is None

    async def test_non_positive_duration_removes_expiration(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, expires_in_hours=2)

        updated = await ShareLinkService(db_session).update(
            owner, link.id, ShareLinkUpdate(expires_in_hours=0)
        )
        await db_session.commit()

        assert updated.expires_at is None

    async def test_extend_expiration(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, expires_in_hours=2)

        updated = await ShareLinkService(db_session).update(
            owner, link.id, ShareLinkUpdate(expires_in_days=3)
        )
        await db_session.commit()

        assert updated.expires_at > utcnow() + timedelta(days=2)

    async def test_regenerate_during_update(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet)
        old_token = link.token

        updated = await ShareLinkService(db_session).update(
            owner, link.id, ShareLinkUpdate(share_type=ShareType.REVIEW, regenerate_token=True)
        )
        await db_session.commit()

        assert updated.token != old_token
        assert updated.share_type == ShareType.REVIEW

    async def test_revoked_link_is_immutable(self, db_session, owner, snippet, make_share):
        service = ShareLinkService(db_session)
        link = await make_share(owner, snippet)
        await service.revoke(owner, link.id)
        await db_session.commit()

        with pytest.raises(ShareLinkRevokedError):
            await service.update(owner, link.id, ShareLinkUpdate(max_views=5))
        with pytest.raises(ShareLinkRevokedError):
            await service.regenerate_token(owner, link.id)

    async def test_non_owner_cannot_update(self, db_session, owner, snippet, make_share, make_user):
        link = await make_share(owner, snippet)
        stranger = await make_user()

        with pytest.raises(ShareLinkPermissionError):
            await ShareLinkService(db_session).update(stranger, link.id, ShareLinkUpdate(max_views=5))


class TestConcurrentUpdate:
    """Tests for updates racing with grants and revocations from other sessions."""

    async def test_lowering_quota_below_views_granted_meanwhile(
        self, session_factory, db_session, owner, snippet, make_share
    ):
        """Test that views granted after the owner loaded the link still block a lower quota."""
        link = await make_share(owner, snippet, max_views=10)
        service = ShareLinkService(db_session)
        await service.get_owned(owner, link.id)

        for _ in range(3):
            async with session_factory() as session:
                row = await session.get(ShareLink, link.id)
                assert await ViewCounter().try_consume(session, row)
                await session.commit()

        with pytest.raises(ShareLinkValidationError):
            await service.update(owner, link.id, ShareLinkUpdate(max_views=2))
        await db_session.rollback()

        await db_session.refresh(link)
        assert link.current_views == 3
        assert link.max_views == 10

    async def test_revocation_committed_meanwhile_wins(
        self, session_factory, db_session, owner, snippet, make_share
    ):
        link = await make_share(owner, snippet, expires_in_hours=1, max_views=5)
        expires_at = link.expires_at
        service = ShareLinkService(db_session)
        await service.get_owned(owner, link.id)

        async with session_factory() as session:
            row = await session.get(ShareLink, link.id)
            await RevocationLedger().revoke(session, row, actor_id=owner.id)
            await session.commit()

        update = ShareLinkUpdate.model_validate({"remove_expiration": True, "max_views": None})
        with pytest.raises(ShareLinkRevokedError):
            await service.update(owner, link.id, update)
        await db_session.rollback()

        await db_session.refresh(link)
        assert link.revoked_at is not None
        assert link.expires_at == expires_at
        assert link.max_views == 5


class TestRevokeAndDelete:
    """Tests for revoke and delete."""

    async def test_revoke_is_idempotent(self, db_session, owner, snippet, make_share):
        service = ShareLinkService(db_session)
        link = await make_share(owner, snippet)

        first = await service.revoke(owner, link.id)
        revoked_at = first.revoked_at
        second = await service.revoke(owner, link.id)
        await db_session.commit()

        assert second.revoked_at == revoked_at

    async def test_delete(self, db_session, owner, snippet, make_share):
        service = ShareLinkService(db_session)
        link = await make_share(owner, snippet)

        await service.delete(owner, link.id)
        await db_session.commit()

        with pytest.raises(ShareLinkNotFoundError):
            await service.get_owned(owner, link.id)


class TestListingAndStatistics:
    """Tests for list_for_user and statistics."""

    async def test_pagination(self, db_session, owner, snippet, make_share, make_snippet):
        other_snippet = await make_snippet(owner, title="Other")
        for _ in range(5):
            await make_share(owner, snippet)
        await make_share(owner, other_snippet)
        service = ShareLinkService(db_session)

        page_one, total = await service.list_for_user(owner, page=1, limit=4)
        page_two, _ = await service.list_for_user(owner, page=2, limit=4)
        filtered, filtered_total = await service.list_for_user(owner, snippet_id=other_snippet.id)

        assert total == 6
        assert len(page_one) == 4
        assert len(page_two) == 2
        assert {link.id for link in page_one}.isdisjoint({link.id for link in page_two})
        assert filtered_total == 1
        assert filtered[0].snippet_id == other_snippet.id
        assert service.page_count(total, 4) == 2

    async def test_listing_only_shows_own_links(self, db_session, owner, snippet, make_share, make_user):
        await make_share(owner, snippet)
        stranger = await make_user()

        links, total = await ShareLinkService(db_session).list_for_user(stranger)

        assert links == []
        assert total == 0

    async def test_statistics(self, db_session, owner, snippet, make_share):
        service = ShareLinkService(db_session)
        await make_share(owner, snippet, password="open-sesame")
        await make_share(owner, snippet, share_type=ShareType.EDIT, expires_in_hours=1, expired=True)
        revoked = await make_share(owner, snippet)
        await service.revoke(owner, revoked.id)
        exhausted = await make_share(owner, snippet, max_views=1)
        exhausted.current_views = 1
        await db_session.commit()

        stats = await service.statistics(owner)

        assert stats.total == 4
        assert stats.active == 1
        assert stats.revoked == 1
        assert stats.expired == 1
        assert stats.password_protected == 1
        assert stats.total_views == 1
        assert stats.by_type == {"view": 3, "edit": 1, "review": 0}


class TestResponse:
    """Tests for to_response."""

    async def test_response_never_exposes_hash(self, db_session, owner, snippet, make_share):
        link = await make_share(owner, snippet, password="open-sesame", max_views=5)

        response = ShareLinkService(db_session).to_response(link, "https://snip.example/")

        payload = response.model_dump()
        assert "password_hash" not in payload
        assert payload["share_url"] == f"https://snip.example/share/{link.token}"
        assert payload["remaining_views"] == 5
        assert payload["is_active"] is True

    def test_build_share_url(self):
        assert build_share_url("http://localhost:8000/", "abc") == "http://localhost:8000/share/abc"
