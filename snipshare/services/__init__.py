"""
Services package.
Contains business logic for accounts, snippets and share links.
"""
from snipshare.services.access import AccessEvaluator
from snipshare.services.auth import AuthService
from snipshare.services.housekeeping import ShareLinkSweeper
from snipshare.services.share import ShareLinkService
from snipshare.services.snippet import SnippetService

__all__ = [
    "AccessEvaluator",
    "AuthService",
    "ShareLinkService",
    "ShareLinkSweeper",
    "SnippetService",
]
