"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from snipshare.schemas.user import (
    UserCreate,
    UserResponse,
    UserLogin,
    Token,
    TokenPayload,
)
from snipshare.schemas.snippet import (
    SnippetCreate,
    SnippetResponse,
    SnippetListResponse,
)
from snipshare.schemas.share import (
    ShareLinkCreate,
    ShareLinkUpdate,
    ShareLinkResponse,
    ShareLinkListResponse,
    ShareLinkSnapshot,
    SharedSnippetResponse,
    SharePasswordSubmit,
    ShareStatistics,
)

__all__ = [
    # User schemas
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "Token",
    "TokenPayload",
    # Snippet schemas
    "SnippetCreate",
    "SnippetResponse",
    "SnippetListResponse",
    # Share schemas
    "ShareLinkCreate",
    "ShareLinkUpdate",
    "ShareLinkResponse",
    "ShareLinkListResponse",
    "ShareLinkSnapshot",
    "SharedSnippetResponse",
    "SharePasswordSubmit",
    "ShareStatistics",
]
