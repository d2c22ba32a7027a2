"""
Share link management for snippet owners.

Create, list, update, revoke, rotate and delete share links. Only the
creator of a link may touch it, and a revoked link accepts no further
mutation apart from deletion.
"""
import asyncio
import math
from datetime import datetime
from types import SimpleNamespace
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.config import get_settings
from snipshare.models.share import ShareLink, ShareType
from snipshare.models.snippet import Snippet
from snipshare.models.user import User
from snipshare.schemas.share import (
    ShareLinkCreate,
    ShareLinkResponse,
    ShareLinkUpdate,
    ShareStatistics,
)
from snipshare.services.errors import (
    ShareLinkNotFoundError,
    ShareLinkPermissionError,
    ShareLinkRevokedError,
    ShareLinkValidationError,
)
from snipshare.services.expiration import ExpirationClock
from snipshare.services.password_gate import PasswordGate
from snipshare.services.revocation import RevocationLedger
from snipshare.services.tokens import TokenGenerator
from snipshare.services.view_counter import ViewCounter
from snipshare.utils.clock import to_naive_utc
from snipshare.utils.logger import log_info, log_warning
from snipshare.utils.prometheus_metrics import share_link_operations_total

settings = get_settings()

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100


def build_share_url(base_url: str, token: str) -> str:
    """Public URL for a share token."""
    return f"{base_url.rstrip('/')}/share/{token}"


class ShareLinkService:
    """
    Service for owner-side share link operations.
    Uses TokenGenerator, PasswordGate, ExpirationClock and RevocationLedger.
    """

    def __init__(
        self,
        db: AsyncSession,
        tokens: Optional[TokenGenerator] = None,
        password_gate: Optional[PasswordGate] = None,
        expiration: Optional[ExpirationClock] = None,
    ):
        self.db = db
        self.tokens = tokens or TokenGenerator()
        self.password_gate = password_gate or PasswordGate()
        self.expiration = expiration or ExpirationClock()
        self.revocation = RevocationLedger()

    # ============== Create ==============

    async def create(self, user: User, data: ShareLinkCreate) -> ShareLink:
        """
        Create a share link for one of the user's snippets.

        Args:
            user: Owner creating the link
            data: Validated create payload

        Returns:
            The persisted ShareLink

        Raises:
            ShareLinkNotFoundError: Snippet does not exist
            ShareLinkPermissionError: Snippet belongs to someone else
            ShareLinkValidationError: Expiry not in the future, quota too large
            TokenGenerationError: Token uniqueness could not be satisfied
        """
        snippet = await self.db.get(Snippet, data.snippet_id)
        if snippet is None:
            raise ShareLinkNotFoundError("Snippet not found")
        if snippet.owner_id != user.id:
            log_warning(
                "Share create denied",
                event="share",
                user_id=user.id,
                snippet_id=data.snippet_id,
                reason="not_owner",
            )
            share_link_operations_total.labels(operation="create", result="forbidden").inc()
            raise ShareLinkPermissionError("You can only share your own snippets")

        now = self.expiration.now()
        link = ShareLink(
            snippet_id=snippet.id,
            created_by_id=user.id,
            share_type=data.share_type,
            allowed_emails=data.allowed_emails or None,
            allowed_domains=data.allowed_domains or None,
            require_authentication=data.require_authentication,
            max_views=self._checked_max_views(data.max_views),
            current_views=0,
            watermark_enabled=data.watermark_enabled,
            download_enabled=data.download_enabled,
            created_at=now,
            updated_at=now,
        )
        link.expires_at = self._resolve_expiry(
            hours=data.expires_in_hours,
            days=data.expires_in_days,
            absolute=data.expires_at,
            now=now,
        )
        await self._set_password(link, data.password)

        await self.tokens.assign_unique(self.db, link)

        share_link_operations_total.labels(operation="create", result="success").inc()
        log_info(
            "Share created",
            event="share",
            share_id=link.id,
            snippet_id=link.snippet_id,
            user_id=user.id,
            share_type=link.share_type.value,
            expires_at=link.expires_at.isoformat() if link.expires_at else None,
            max_views=link.max_views,
            password_protected=link.require_password,
        )
        return link

    # ============== Read ==============

    async def get_owned(self, user: User, share_id: str) -> ShareLink:
        """
        Get a link the user created.

        Raises:
            ShareLinkNotFoundError: Unknown id
            ShareLinkPermissionError: Link created by another user
        """
        link = await self.db.get(ShareLink, share_id)
        if link is None:
            raise ShareLinkNotFoundError("Share not found")
        if link.created_by_id != user.id:
            log_warning(
                "Share access by non-owner",
                event="share",
                share_id=share_id,
                user_id=user.id,
            )
            raise ShareLinkPermissionError("Access denied")
        return link

    async def list_for_user(
        self,
        user: User,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        snippet_id: Optional[int] = None,
    ) -> Tuple[List[ShareLink], int]:
        """
        Page through the user's links, newest first.

        Args:
            user: Owner
            page: 1-based page number
            limit: Page size (1..100)
            snippet_id: Optional filter on one snippet

        Returns:
            (links on this page, total matching links)
        """
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)

        conditions = [ShareLink.created_by_id == user.id]
        if snippet_id is not None:
            conditions.append(ShareLink.snippet_id == snippet_id)

        total = await self.db.scalar(
            select(func.count(ShareLink.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(ShareLink)
            .where(*conditions)
            .order_by(ShareLink.created_at.desc(), ShareLink.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def statistics(self, user: User) -> ShareStatistics:
        """Aggregate counts over the user's links."""
        now = self.expiration.now()
        owned = ShareLink.created_by_id == user.id
        not_revoked = ShareLink.revoked_at.is_(None)
        is_expired = and_(ShareLink.expires_at.is_not(None), ShareLink.expires_at <= now)
        exhausted = and_(
            ShareLink.max_views.is_not(None),
            ShareLink.current_views >= ShareLink.max_views,
        )

        async def count(*conditions) -> int:
            return await self.db.scalar(
                select(func.count(ShareLink.id)).where(owned, *conditions)
            ) or 0

        by_type_rows = await self.db.execute(
            select(ShareLink.share_type, func.count(ShareLink.id))
            .where(owned)
            .group_by(ShareLink.share_type)
        )
        by_type = {share_type.value: 0 for share_type in ShareType}
        for share_type, type_count in by_type_rows.all():
            by_type[ShareType(share_type).value] = type_count

        total_views = await self.db.scalar(
            select(func.coalesce(func.sum(ShareLink.current_views), 0)).where(owned)
        )

        return ShareStatistics(
            total=await count(),
            active=await count(not_revoked, ~is_expired, ~exhausted),
            revoked=await count(ShareLink.revoked_at.is_not(None)),
            expired=await count(not_revoked, is_expired),
            password_protected=await count(ShareLink.require_password.is_(True)),
            total_views=total_views or 0,
            by_type=by_type,
        )

    # ============== Update ==============

    async def update(self, user: User, share_id: str, data: ShareLinkUpdate) -> ShareLink:
        """
        Apply a partial update.

        Every field is validated before the row is touched, so a rejected
        update leaves the link unchanged. The write itself is one
        conditional UPDATE guarded by ``revoked_at IS NULL`` and, when the
        quota changes, ``current_views <= max_views``. A revocation or a
        grant that commits after the link was loaded therefore still wins.

        Raises:
            ShareLinkNotFoundError, ShareLinkPermissionError
            ShareLinkRevokedError: Link is revoked
            ShareLinkValidationError: Expiry in the past, max_views below current_views
        """
        link = await self.get_owned(user, share_id)
        self._ensure_mutable(link)
        fields = data.model_fields_set
        now = self.expiration.now()

        # 1) 검증 (행 변경 전). 변경 값은 staged에 모은다
        staged = SimpleNamespace(expires_at=link.expires_at)
        if data.remove_expiration:
            self.expiration.clear_expiration(staged)
        elif data.expires_in_hours is not None:
            if data.expires_in_hours > 0:
                self.expiration.apply(staged, hours=data.expires_in_hours, now=now)
            else:
                self.expiration.clear_expiration(staged)
        elif data.expires_in_days is not None:
            if data.expires_in_days > 0:
                self.expiration.apply(staged, days=data.expires_in_days, now=now)
            else:
                self.expiration.clear_expiration(staged)
        elif data.expires_at is not None:
            staged.expires_at = self._resolve_expiry(absolute=data.expires_at, now=now)

        new_max_views = None
        if "max_views" in fields:
            new_max_views = self._checked_max_views(data.max_views)
            if new_max_views is not None and new_max_views < link.current_views:
                raise ShareLinkValidationError(
                    f"max_views cannot be lower than the current view count ({link.current_views})"
                )
            staged.max_views = new_max_views
        if data.share_type is not None:
            staged.share_type = data.share_type
        if "allowed_emails" in fields:
            staged.allowed_emails = data.allowed_emails or None
        if "allowed_domains" in fields:
            staged.allowed_domains = data.allowed_domains or None
        if data.require_authentication is not None:
            staged.require_authentication = data.require_authentication
        if data.watermark_enabled is not None:
            staged.watermark_enabled = data.watermark_enabled
        if data.download_enabled is not None:
            staged.download_enabled = data.download_enabled
        if "password" in fields:
            await self._set_password(staged, data.password)
        staged.updated_at = now
        values = vars(staged)

        # 2) 적용: 조건부 UPDATE 한 번
        conditions = [ShareLink.id == link.id, ShareLink.revoked_at.is_(None)]
        if new_max_views is not None:
            conditions.append(ShareLink.current_views <= new_max_views)
        result = await self.db.execute(
            update(ShareLink)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(
            link, attribute_names=sorted({*values, "current_views", "revoked_at", "revoked_by_id"})
        )
        if result.rowcount != 1:
            share_link_operations_total.labels(operation="update", result="conflict").inc()
            if RevocationLedger.is_revoked(link):
                raise ShareLinkRevokedError("Share link has been revoked")
            raise ShareLinkValidationError(
                f"max_views cannot be lower than the current view count ({link.current_views})"
            )

        if data.regenerate_token:
            await self.tokens.regenerate(self.db, link)

        share_link_operations_total.labels(operation="update", result="success").inc()
        log_info(
            "Share updated",
            event="share",
            share_id=link.id,
            user_id=user.id,
            fields=sorted(fields),
        )
        return link

    async def regenerate_token(self, user: User, share_id: str) -> ShareLink:
        """Rotate the token; the old one stops working immediately."""
        link = await self.get_owned(user, share_id)
        self._ensure_mutable(link)
        await self.tokens.regenerate(self.db, link)
        share_link_operations_total.labels(operation="regenerate", result="success").inc()
        log_info("Share token regenerated", event="share", share_id=link.id, user_id=user.id)
        return link

    # ============== Revoke / Delete ==============

    async def revoke(self, user: User, share_id: str) -> ShareLink:
        """Revoke a link. Revoking an already revoked link is a no-op."""
        link = await self.get_owned(user, share_id)
        revoked_now = await self.revocation.revoke(self.db, link, actor_id=user.id)
        share_link_operations_total.labels(
            operation="revoke", result="success" if revoked_now else "noop"
        ).inc()
        log_info(
            "Share revoked",
            event="share",
            share_id=link.id,
            user_id=user.id,
            already_revoked=not revoked_now,
        )
        return link

    async def delete(self, user: User, share_id: str) -> None:
        """Hard-delete a link."""
        link = await self.get_owned(user, share_id)
        await self.db.delete(link)
        await self.db.flush()
        share_link_operations_total.labels(operation="delete", result="success").inc()
        log_info("Share deleted", event="share", share_id=share_id, user_id=user.id)

    # ============== Presentation ==============

    def to_response(
        self,
        link: ShareLink,
        base_url: str,
        now: Optional[datetime] = None,
    ) -> ShareLinkResponse:
        """Build the owner-facing response (never includes the hash)."""
        now = now or self.expiration.now()
        is_active = (
            not RevocationLedger.is_revoked(link)
            and not ExpirationClock.is_expired(link, now)
            and not ViewCounter.is_exhausted(link)
        )
        return ShareLinkResponse(
            id=link.id,
            snippet_id=link.snippet_id,
            share_type=link.share_type,
            token=link.token,
            share_url=build_share_url(base_url, link.token),
            require_password=link.require_password,
            allowed_emails=link.allowed_emails,
            allowed_domains=link.allowed_domains,
            require_authentication=link.require_authentication,
            expires_at=link.expires_at,
            max_views=link.max_views,
            current_views=link.current_views,
            remaining_views=ViewCounter.remaining_views(link),
            remaining_time=self.expiration.remaining_time(link, now),
            watermark_enabled=link.watermark_enabled,
            download_enabled=link.download_enabled,
            is_active=is_active,
            created_at=link.created_at,
            updated_at=link.updated_at,
            revoked_at=link.revoked_at,
            last_accessed_at=link.last_accessed_at,
        )

    @staticmethod
    def page_count(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0

    # ============== Helpers ==============

    @staticmethod
    def _ensure_mutable(link: ShareLink) -> None:
        if RevocationLedger.is_revoked(link):
            raise ShareLinkRevokedError("Share link has been revoked")

    @staticmethod
    def _checked_max_views(max_views: Optional[int]) -> Optional[int]:
        if max_views is None:
            return None
        if max_views < 1 or max_views > settings.share_max_views_limit:
            raise ShareLinkValidationError(
                f"max_views must be between 1 and {settings.share_max_views_limit}"
            )
        return max_views

    def _resolve_expiry(
        self,
        hours: Optional[int] = None,
        days: Optional[int] = None,
        absolute: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        now = now or self.expiration.now()
        if hours is not None or days is not None:
            return self.expiration.from_relative_duration(hours=hours, days=days, now=now)
        if absolute is None:
            return None
        expires_at = to_naive_utc(absolute)
        if expires_at <= now:
            raise ShareLinkValidationError("Expiration date must be in the future")
        return expires_at

    async def _set_password(self, target, password: Optional[str]) -> None:
        # argon2 해시는 CPU 작업: 이벤트 루프 밖에서 실행
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.password_gate.set_password, target, password)
