"""
Share link access evaluation.

``AccessEvaluator.decide`` is a pure function of an immutable
ShareLinkSnapshot, the viewer's request and the current time. It walks a
fixed gate order and returns exactly one AccessOutcome:

1. not_found            no link for the token, or its snippet is gone
2. revoked              revoked_at is set
3. expired              expires_at <= now
4. view_limit_reached   current_views >= max_views
5. authentication_required
                        no viewer identity while the link requires one
                        (require_authentication or a non-empty allowlist)
6. email_not_allowed / domain_not_allowed
7. password_required / password_incorrect
8. download_disabled    download requested while downloads are off
9. granted

``evaluate`` wraps it with the token lookup and, only on ``granted``,
the atomic view consume and the last-access update. Every other outcome
performs no writes. Outcomes are returned, never raised.
"""
import asyncio
import enum
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from snipshare.models.share import ShareLink
from snipshare.schemas.share import ShareLinkSnapshot
from snipshare.services.audit import AccessAuditTrail
from snipshare.services.expiration import ExpirationClock
from snipshare.services.password_gate import PasswordGate
from snipshare.services.revocation import RevocationLedger
from snipshare.services.view_counter import ViewCounter
from snipshare.utils.client_ip import client_label
from snipshare.utils.logger import log_info, log_warning
from snipshare.utils.security import verify_share_access_proof
from snipshare.utils.prometheus_metrics import (
    share_access_duration_seconds,
    share_access_total,
    share_brute_force_attempts,
)


class AccessOutcome(str, enum.Enum):
    """Result of evaluating a share link access."""
    GRANTED = "granted"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    VIEW_LIMIT_REACHED = "view_limit_reached"
    AUTHENTICATION_REQUIRED = "authentication_required"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_INCORRECT = "password_incorrect"
    EMAIL_NOT_ALLOWED = "email_not_allowed"
    DOMAIN_NOT_ALLOWED = "domain_not_allowed"
    DOWNLOAD_DISABLED = "download_disabled"


# 외부에는 동일한 "unavailable" 응답으로 합쳐지는 결과
UNAVAILABLE_OUTCOMES = frozenset({
    AccessOutcome.NOT_FOUND,
    AccessOutcome.REVOKED,
    AccessOutcome.EXPIRED,
    AccessOutcome.VIEW_LIMIT_REACHED,
})


class AccessChannel(str, enum.Enum):
    """How the shared snippet is being consumed."""
    VIEW = "view"
    RAW = "raw"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class AccessRequest:
    """What a viewer presents alongside the token."""
    viewer_email: Optional[str] = None
    supplied_password: Optional[str] = None
    password_already_proven: bool = False
    password_proof: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    channel: AccessChannel = AccessChannel.VIEW

    @property
    def requires_download(self) -> bool:
        return self.channel == AccessChannel.DOWNLOAD


@dataclass
class AccessDecision:
    """Outcome of ``AccessEvaluator.evaluate`` plus the link it concerns."""
    outcome: AccessOutcome
    link: Optional[ShareLink] = None
    # 이번 요청에서 비밀번호를 직접 검증해 통과함 (증명 토큰 발급 대상)
    password_verified: bool = False

    @property
    def granted(self) -> bool:
        return self.outcome == AccessOutcome.GRANTED


def email_domain(email: str) -> str:
    """Domain part of an address, lower-cased."""
    return email.rsplit("@", 1)[-1].strip().lower() if "@" in email else ""


def domain_allowed(domain: str, allowed_domains) -> bool:
    """Exact match, or a subdomain of an allowed domain."""
    if not domain:
        return False
    return any(domain == allowed or domain.endswith("." + allowed) for allowed in allowed_domains)


class AccessEvaluator:
    """Turns a share token and viewer context into an AccessOutcome."""

    def __init__(
        self,
        password_gate: Optional[PasswordGate] = None,
        expiration: Optional[ExpirationClock] = None,
        view_counter: Optional[ViewCounter] = None,
        audit: Optional[AccessAuditTrail] = None,
    ):
        self.password_gate = password_gate or PasswordGate()
        self.expiration = expiration or ExpirationClock()
        self.view_counter = view_counter or ViewCounter()
        self.audit = audit or AccessAuditTrail()

    def decide(
        self,
        snapshot: Optional[ShareLinkSnapshot],
        request: AccessRequest,
        now: datetime,
    ) -> AccessOutcome:
        """
        Evaluate every gate in order and return the first failure, or GRANTED.

        Pure apart from the password hash verification, which is CPU-bound;
        async callers should run it in an executor.

        Args:
            snapshot: Link state, or None when the token matched nothing
            request: Viewer context
            now: Evaluation time (naive UTC)

        Returns:
            The AccessOutcome
        """
        if snapshot is None or not snapshot.snippet_exists:
            return AccessOutcome.NOT_FOUND

        if RevocationLedger.is_revoked(snapshot):
            return AccessOutcome.REVOKED

        if ExpirationClock.is_expired(snapshot, now):
            return AccessOutcome.EXPIRED

        if ViewCounter.is_exhausted(snapshot):
            return AccessOutcome.VIEW_LIMIT_REACHED

        viewer = (request.viewer_email or "").strip().lower()
        identity_restricted = bool(snapshot.allowed_emails or snapshot.allowed_domains)
        if not viewer and (snapshot.require_authentication or identity_restricted):
            return AccessOutcome.AUTHENTICATION_REQUIRED

        if viewer:
            if snapshot.allowed_emails and viewer not in snapshot.allowed_emails:
                return AccessOutcome.EMAIL_NOT_ALLOWED
            if snapshot.allowed_domains and not domain_allowed(
                email_domain(viewer), snapshot.allowed_domains
            ):
                return AccessOutcome.DOMAIN_NOT_ALLOWED

        if snapshot.require_password:
            if not snapshot.password_hash:
                # 해시 없는 비밀번호 요구 링크는 열지 않음
                return AccessOutcome.PASSWORD_REQUIRED
            if not request.password_already_proven:
                if request.supplied_password is None:
                    return AccessOutcome.PASSWORD_REQUIRED
                if not self.password_gate.verify(request.supplied_password, snapshot.password_hash):
                    return AccessOutcome.PASSWORD_INCORRECT

        if request.requires_download and not snapshot.download_enabled:
            return AccessOutcome.DOWNLOAD_DISABLED

        return AccessOutcome.GRANTED

    async def lookup(self, db: AsyncSession, token: str) -> Optional[ShareLink]:
        """
        Find the link for a token, preferring the active row.

        Revoked rows may share a token with an active one, so the active
        row wins; a revoked-only match is still returned so the caller
        can tell revoked from unknown.
        """
        if not token:
            return None
        result = await db.execute(
            select(ShareLink)
            .options(selectinload(ShareLink.snippet))
            .where(ShareLink.token == token)
            .order_by(ShareLink.revoked_at.is_not(None), ShareLink.revoked_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def evaluate(
        self,
        db: AsyncSession,
        token: str,
        request: AccessRequest,
    ) -> AccessDecision:
        """
        Evaluate a public access and apply the grant side effects.

        On GRANTED the view is consumed atomically; losing that race
        downgrades the outcome to VIEW_LIMIT_REACHED, or to REVOKED when
        a revocation committed after the lookup. Last-access fields
        are only written for a grant that consumed a view.

        Args:
            db: Database session
            token: Public share token
            request: Viewer context

        Returns:
            AccessDecision with the outcome and the matched link (if any)
        """
        started = time.perf_counter()
        link = await self.lookup(db, token)
        snapshot = (
            ShareLinkSnapshot.from_link(link, snippet_exists=link.snippet is not None)
            if link is not None
            else None
        )
        now = self.expiration.now()

        if snapshot is not None and request.password_proof and not request.password_already_proven:
            request = replace(
                request,
                password_already_proven=verify_share_access_proof(
                    request.password_proof, snapshot.id, snapshot.token, snapshot.password_hash
                ),
            )

        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, self.decide, snapshot, request, now)

        if outcome == AccessOutcome.GRANTED:
            if await self.view_counter.try_consume(db, link):
                await self.audit.record(db, link, request.ip, request.user_agent, now)
            elif RevocationLedger.is_revoked(link):
                outcome = AccessOutcome.REVOKED
            else:
                outcome = AccessOutcome.VIEW_LIMIT_REACHED

        self._observe(outcome, link, request, time.perf_counter() - started)
        return AccessDecision(
            outcome=outcome,
            link=link,
            password_verified=(
                outcome == AccessOutcome.GRANTED
                and snapshot.require_password
                and not request.password_already_proven
            ),
        )

    def _observe(
        self,
        outcome: AccessOutcome,
        link: Optional[ShareLink],
        request: AccessRequest,
        elapsed: float,
    ) -> None:
        share_access_total.labels(outcome=outcome.value, channel=request.channel.value).inc()
        share_access_duration_seconds.labels(outcome=outcome.value).observe(elapsed)

        if outcome == AccessOutcome.NOT_FOUND:
            share_brute_force_attempts.labels(client_id=client_label(request.ip), kind="token").inc()
        elif outcome == AccessOutcome.PASSWORD_INCORRECT:
            share_brute_force_attempts.labels(client_id=client_label(request.ip), kind="password").inc()

        context = {
            "event": "share",
            "outcome": outcome.value,
            "channel": request.channel.value,
            "share_id": link.id if link is not None else None,
            "client_ip": request.ip,
            "ms": round(elapsed * 1000),
        }
        if outcome == AccessOutcome.GRANTED:
            log_info("Share access granted", current_views=link.current_views, **context)
        else:
            log_warning("Share access denied", **context)
