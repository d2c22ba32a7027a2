"""
Snippet-related Pydantic schemas.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SnippetCreate(BaseModel):
    """Schema for creating a snippet."""

    title: str = Field(..., min_length=1, max_length=255)
    language: Optional[str] = Field(None, max_length=50)
    content: str = Field(..., max_length=1_000_000)


class SnippetResponse(BaseModel):
    """Schema for snippet response."""

    id: int
    owner_id: int
    title: str
    language: Optional[str] = None
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SnippetListResponse(BaseModel):
    """Schema for the owner's snippet listing."""

    snippets: List[SnippetResponse]
    total: int
