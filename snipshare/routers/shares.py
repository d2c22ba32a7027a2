"""
Share link management router (owner only).
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.database import get_db
from snipshare.dependencies.auth import get_current_active_user
from snipshare.models.user import User
from snipshare.schemas.share import (
    ShareLinkCreate,
    ShareLinkListResponse,
    ShareLinkResponse,
    ShareLinkUpdate,
    ShareStatistics,
)
from snipshare.services.errors import (
    ShareLinkError,
    ShareLinkNotFoundError,
    ShareLinkPermissionError,
    ShareLinkRevokedError,
    ShareLinkValidationError,
)
from snipshare.services.share import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, ShareLinkService
from snipshare.utils.client_ip import get_public_base_url

router = APIRouter(prefix="/shares", tags=["Share Links"])

_ERROR_STATUS = {
    ShareLinkValidationError: status.HTTP_400_BAD_REQUEST,
    ShareLinkPermissionError: status.HTTP_403_FORBIDDEN,
    ShareLinkNotFoundError: status.HTTP_404_NOT_FOUND,
    ShareLinkRevokedError: status.HTTP_409_CONFLICT,
}


def _http_error(exc: ShareLinkError) -> HTTPException:
    """
    Translate a service error into an HTTPException.
    Fatal errors (token generation, hashing) are re-raised for the global handler.
    """
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    raise exc


@router.post(
    "",
    response_model=ShareLinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a share link",
)
async def create_share(
    request: Request,
    share_data: ShareLinkCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    """
    Create a share link for one of your snippets.

    - **expires_in_hours** / **expires_in_days** / **expires_at**: at most one
    - **max_views**: 1 to 10000
    - **password**: optional; stored only as an argon2 hash
    - **allowed_emails** / **allowed_domains**: viewers must sign in and match
    """
    service = ShareLinkService(db)
    try:
        link = await service.create(current_user, share_data)
    except ShareLinkError as e:
        raise _http_error(e)
    return service.to_response(link, get_public_base_url(request))


@router.get(
    "",
    response_model=ShareLinkListResponse,
    summary="List your share links",
)
async def list_shares(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    snippet_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkListResponse:
    """Paginated, newest first. Optionally filtered by snippet."""
    service = ShareLinkService(db)
    links, total = await service.list_for_user(current_user, page=page, limit=limit, snippet_id=snippet_id)
    base_url = get_public_base_url(request)
    now = service.expiration.now()
    return ShareLinkListResponse(
        shares=[service.to_response(link, base_url, now) for link in links],
        total=total,
        page=page,
        limit=limit,
        pages=service.page_count(total, limit),
    )


@router.get(
    "/statistics",
    response_model=ShareStatistics,
    summary="Share link statistics",
)
async def share_statistics(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareStatistics:
    """Counts of your links by state and type, plus total views."""
    return await ShareLinkService(db).statistics(current_user)


@router.get(
    "/{share_id}",
    response_model=ShareLinkResponse,
    summary="Get a share link",
)
async def get_share(
    request: Request,
    share_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    service = ShareLinkService(db)
    try:
        link = await service.get_owned(current_user, share_id)
    except ShareLinkError as e:
        raise _http_error(e)
    return service.to_response(link, get_public_base_url(request))


@router.patch(
    "/{share_id}",
    response_model=ShareLinkResponse,
    summary="Update a share link",
)
async def update_share(
    request: Request,
    share_id: str,
    update_data: ShareLinkUpdate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    """
    Partial update. Revoked links cannot be updated.

    - `"password": ""` removes the password
    - `"max_views": null` / `"allowed_emails": null` lift the restriction
    - `"remove_expiration": true` or a non-positive `expires_in_*` removes the expiry
    - `"regenerate_token": true` rotates the token
    """
    service = ShareLinkService(db)
    try:
        link = await service.update(current_user, share_id, update_data)
    except ShareLinkError as e:
        raise _http_error(e)
    return service.to_response(link, get_public_base_url(request))


@router.post(
    "/{share_id}/revoke",
    response_model=ShareLinkResponse,
    summary="Revoke a share link",
)
async def revoke_share(
    request: Request,
    share_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    """Permanently disable the link. Revoking twice is harmless."""
    service = ShareLinkService(db)
    try:
        link = await service.revoke(current_user, share_id)
    except ShareLinkError as e:
        raise _http_error(e)
    return service.to_response(link, get_public_base_url(request))


@router.post(
    "/{share_id}/regenerate-token",
    response_model=ShareLinkResponse,
    summary="Regenerate the share token",
)
async def regenerate_share_token(
    request: Request,
    share_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> ShareLinkResponse:
    """Issue a new token; the previous URL stops working immediately."""
    service = ShareLinkService(db)
    try:
        link = await service.regenerate_token(current_user, share_id)
    except ShareLinkError as e:
        raise _http_error(e)
    return service.to_response(link, get_public_base_url(request))


@router.delete(
    "/{share_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a share link",
)
async def delete_share(
    share_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    service = ShareLinkService(db)
    try:
        await service.delete(current_user, share_id)
    except ShareLinkError as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
