"""
Snippet store: the resources that share links point at.
"""
import re
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.models.snippet import Snippet
from snipshare.models.user import User
from snipshare.schemas.snippet import SnippetCreate
from snipshare.utils.logger import log_info

# 언어 -> 다운로드 파일 확장자
LANGUAGE_EXTENSIONS = {
    "javascript": "js",
    "typescript": "ts",
    "php": "php",
    "python": "py",
    "java": "java",
    "csharp": "cs",
    "cpp": "cpp",
    "go": "go",
    "rust": "rs",
    "ruby": "rb",
    "kotlin": "kt",
    "swift": "swift",
    "scala": "scala",
    "bash": "sh",
    "shell": "sh",
    "sql": "sql",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "json": "json",
    "xml": "xml",
    "yaml": "yml",
    "markdown": "md",
}
DEFAULT_EXTENSION = "txt"


def sanitize_filename(title: str) -> str:
    """
    Make a snippet title safe to use as a file name.

    Characters other than word characters, '-' and '.' become '_',
    runs of '_' collapse and leading/trailing '_' are dropped.
    """
    name = re.sub(r"[^\w\-.]", "_", title or "", flags=re.ASCII)
    name = re.sub(r"_+", "_", name).strip("_")
    return name or "snippet"


def download_filename(snippet: Snippet) -> str:
    """File name for a snippet download, e.g. ``hello_world.py``."""
    extension = LANGUAGE_EXTENSIONS.get((snippet.language or "").lower(), DEFAULT_EXTENSION)
    return f"{sanitize_filename(snippet.title)}.{extension}"


class SnippetService:
    """Create, list, fetch and delete a user's snippets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user: User, data: SnippetCreate) -> Snippet:
        snippet = Snippet(
            owner_id=user.id,
            title=data.title,
            language=data.language.lower() if data.language else None,
            content=data.content,
        )
        self.db.add(snippet)
        await self.db.flush()
        await self.db.refresh(snippet)
        log_info("Snippet created", event="snippet", snippet_id=snippet.id, user_id=user.id)
        return snippet

    async def get(self, snippet_id: int, user_id: Optional[int] = None) -> Optional[Snippet]:
        """
        Get a snippet by ID.

        Args:
            snippet_id: Snippet ID
            user_id: If provided, only return if the user owns the snippet

        Returns:
            Snippet if found, None otherwise
        """
        query = select(Snippet).where(Snippet.id == snippet_id)
        if user_id is not None:
            query = query.where(Snippet.owner_id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Snippet], int]:
        total = await self.db.scalar(
            select(func.count(Snippet.id)).where(Snippet.owner_id == user_id)
        )
        result = await self.db.execute(
            select(Snippet)
            .where(Snippet.owner_id == user_id)
            .order_by(Snippet.created_at.desc(), Snippet.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def delete(self, snippet: Snippet) -> None:
        """Delete a snippet. Its share links go with it (ON DELETE CASCADE)."""
        await self.db.delete(snippet)
        await self.db.flush()
        log_info("Snippet deleted", event="snippet", snippet_id=snippet.id, user_id=snippet.owner_id)
