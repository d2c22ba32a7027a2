"""
Database models package.
All models are exported here for easy import.
"""
from snipshare.models.user import User
from snipshare.models.snippet import Snippet
from snipshare.models.share import ShareLink, ShareType

__all__ = ["User", "Snippet", "ShareLink", "ShareType"]
