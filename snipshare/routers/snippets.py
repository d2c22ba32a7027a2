"""
Snippet router: the owner's snippet store.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.database import get_db
from snipshare.dependencies.auth import get_current_active_user
from snipshare.models.user import User
from snipshare.schemas.snippet import SnippetCreate, SnippetListResponse, SnippetResponse
from snipshare.services.snippet import SnippetService

router = APIRouter(prefix="/snippets", tags=["Snippets"])


@router.post(
    "",
    response_model=SnippetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a snippet",
)
async def create_snippet(
    snippet_data: SnippetCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> SnippetResponse:
    snippet = await SnippetService(db).create(current_user, snippet_data)
    return SnippetResponse.model_validate(snippet)


@router.get(
    "",
    response_model=SnippetListResponse,
    summary="List your snippets",
)
async def list_snippets(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> SnippetListResponse:
    snippets, total = await SnippetService(db).list_for_user(current_user.id, skip=skip, limit=limit)
    return SnippetListResponse(
        snippets=[SnippetResponse.model_validate(s) for s in snippets],
        total=total,
    )


@router.get(
    "/{snippet_id}",
    response_model=SnippetResponse,
    summary="Get a snippet",
)
async def get_snippet(
    snippet_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> SnippetResponse:
    snippet = await SnippetService(db).get(snippet_id, user_id=current_user.id)
    if snippet is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Snippet not found")
    return SnippetResponse.model_validate(snippet)


@router.delete(
    "/{snippet_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a snippet",
)
async def delete_snippet(
    snippet_id: int,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a snippet together with all of its share links."""
    service = SnippetService(db)
    snippet = await service.get(snippet_id, user_id=current_user.id)
    if snippet is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Snippet not found")
    await service.delete(snippet)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
