"""
API routers package.
"""
from snipshare.routers.auth import router as auth_router
from snipshare.routers.health import router as health_router
from snipshare.routers.snippets import router as snippets_router
from snipshare.routers.shares import router as shares_router
from snipshare.routers.share import router as share_router

__all__ = ["auth_router", "health_router", "snippets_router", "shares_router", "share_router"]
