"""
Public share router: token-based access to shared snippets.

Every endpoint runs the same AccessEvaluator gate chain. Unavailable
links (unknown, revoked, expired, out of views) collapse into one generic
404 unless SHARE_COLLAPSE_UNAVAILABLE is turned off; the precise outcome
is only logged.
"""
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.config import get_settings
from snipshare.database import get_db
from snipshare.dependencies.auth import get_optional_current_user
from snipshare.middlewares.rate_limit_middleware import SHARE_RATE_LIMIT, get_rate_limit_decorator
from snipshare.models.user import User
from snipshare.schemas.share import SharedSnippetResponse, SharePasswordSubmit
from snipshare.services.access import (
    UNAVAILABLE_OUTCOMES,
    AccessChannel,
    AccessDecision,
    AccessEvaluator,
    AccessOutcome,
    AccessRequest,
)
from snipshare.services.snippet import download_filename
from snipshare.services.view_counter import ViewCounter
from snipshare.utils.client_ip import get_client_ip, get_public_base_url
from snipshare.utils.security import create_share_access_proof

router = APIRouter(prefix="/share", tags=["Shared Snippets"])

settings = get_settings()

# 비밀번호 / 비밀번호 통과 증명 헤더
PASSWORD_HEADER = "X-Share-Password"
PROOF_HEADER = "X-Share-Access"

UNAVAILABLE_DETAIL = "Share link unavailable"
_UNAVAILABLE_DETAILS = {
    AccessOutcome.NOT_FOUND: "Share link not found",
    AccessOutcome.REVOKED: "Share link has been revoked",
    AccessOutcome.EXPIRED: "Share link has expired",
    AccessOutcome.VIEW_LIMIT_REACHED: "Share link view limit reached",
}

_evaluator = AccessEvaluator()


def get_access_evaluator() -> AccessEvaluator:
    """Dependency providing the process-wide evaluator."""
    return _evaluator


async def _evaluate(
    request: Request,
    token: str,
    db: AsyncSession,
    evaluator: AccessEvaluator,
    viewer: Optional[User],
    channel: AccessChannel,
    password: Optional[str] = None,
) -> AccessDecision:
    if password is None:
        password = request.headers.get(PASSWORD_HEADER) or None
    access_request = AccessRequest(
        viewer_email=viewer.email if viewer else None,
        supplied_password=password,
        password_proof=request.headers.get(PROOF_HEADER),
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        channel=channel,
    )
    return await evaluator.evaluate(db, token, access_request)


def _denied_response(decision: AccessDecision, request: Request) -> Response:
    """
    Map a non-granted outcome to its HTTP response.

    Raises:
        HTTPException: For every outcome except authentication_required
    """
    outcome = decision.outcome
    if outcome in UNAVAILABLE_OUTCOMES:
        detail = UNAVAILABLE_DETAIL if settings.share_collapse_unavailable else _UNAVAILABLE_DETAILS[outcome]
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

    if outcome == AccessOutcome.AUTHENTICATION_REQUIRED:
        login = f"{settings.login_url}?next={quote(request.url.path, safe='')}"
        return RedirectResponse(url=login, status_code=status.HTTP_302_FOUND)

    if outcome in (AccessOutcome.PASSWORD_REQUIRED, AccessOutcome.PASSWORD_INCORRECT):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Password required" if outcome == AccessOutcome.PASSWORD_REQUIRED else "Incorrect password",
            headers={"WWW-Authenticate": "SharePassword"},
        )

    if outcome == AccessOutcome.DOWNLOAD_DISABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Download is disabled for this share link",
        )

    # email_not_allowed / domain_not_allowed
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def _password_proof(decision: AccessDecision) -> Optional[str]:
    """Issue a proof when the password was verified on this request."""
    if not decision.password_verified:
        return None
    link = decision.link
    return create_share_access_proof(link.id, link.token, link.password_hash)


def _snippet_response(decision: AccessDecision) -> SharedSnippetResponse:
    link = decision.link
    snippet = link.snippet
    return SharedSnippetResponse(
        title=snippet.title,
        language=snippet.language,
        content=snippet.content,
        share_type=link.share_type,
        watermark_enabled=link.watermark_enabled,
        download_enabled=link.download_enabled,
        expires_at=link.expires_at,
        remaining_views=ViewCounter.remaining_views(link),
        created_at=snippet.created_at,
        password_proof=_password_proof(decision),
    )


def _with_proof(response: Response, proof: Optional[str]) -> Response:
    if proof:
        response.headers[PROOF_HEADER] = proof
    return response


@router.get(
    "/{token}",
    response_model=SharedSnippetResponse,
    summary="View a shared snippet",
)
@get_rate_limit_decorator(SHARE_RATE_LIMIT)
async def view_shared_snippet(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_current_user),
    evaluator: AccessEvaluator = Depends(get_access_evaluator),
):
    """
    Access a snippet through its share token.

    - Password-protected links take the password in the `X-Share-Password`
      header, or a proof from a previous unlock in `X-Share-Access`.
    - Links restricted to signed-in or specific viewers read the identity
      from an optional Bearer token.
    """
    decision = await _evaluate(request, token, db, evaluator, viewer, AccessChannel.VIEW)
    if not decision.granted:
        return _denied_response(decision, request)
    return _snippet_response(decision)


@router.post(
    "/{token}",
    response_model=SharedSnippetResponse,
    summary="Unlock a password-protected shared snippet",
)
@get_rate_limit_decorator(SHARE_RATE_LIMIT)
async def unlock_shared_snippet(
    request: Request,
    token: str,
    submission: SharePasswordSubmit,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_current_user),
    evaluator: AccessEvaluator = Depends(get_access_evaluator),
):
    """
    Submit the share password in the body.

    On success the response carries `password_proof`; send it back in the
    `X-Share-Access` header to skip the password on later requests.
    """
    decision = await _evaluate(
        request, token, db, evaluator, viewer, AccessChannel.VIEW, password=submission.password
    )
    if not decision.granted:
        return _denied_response(decision, request)
    return _snippet_response(decision)


@router.get(
    "/{token}/raw",
    response_class=PlainTextResponse,
    summary="Raw content of a shared snippet",
)
@get_rate_limit_decorator(SHARE_RATE_LIMIT)
async def raw_shared_snippet(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_current_user),
    evaluator: AccessEvaluator = Depends(get_access_evaluator),
):
    """Plain-text content, wrapped in a watermark comment when enabled."""
    decision = await _evaluate(request, token, db, evaluator, viewer, AccessChannel.RAW)
    if not decision.granted:
        return _denied_response(decision, request)

    content = decision.link.snippet.content
    if decision.link.watermark_enabled:
        watermark = f"\n/* Shared via SnipShare - {get_public_base_url(request)} */\n"
        content = f"{watermark}{content}{watermark}"
    return _with_proof(PlainTextResponse(content), _password_proof(decision))


@router.get(
    "/{token}/download",
    summary="Download a shared snippet as a file",
)
@get_rate_limit_decorator(SHARE_RATE_LIMIT)
async def download_shared_snippet(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_current_user),
    evaluator: AccessEvaluator = Depends(get_access_evaluator),
):
    """Attachment named after the snippet title and language. Requires downloads to be enabled."""
    decision = await _evaluate(request, token, db, evaluator, viewer, AccessChannel.DOWNLOAD)
    if not decision.granted:
        return _denied_response(decision, request)

    snippet = decision.link.snippet
    response = Response(
        content=snippet.content,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{download_filename(snippet)}"'},
    )
    return _with_proof(response, _password_proof(decision))
