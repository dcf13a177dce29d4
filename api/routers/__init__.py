"""API Routers for AdSync."""

from .sync import router as sync_router
from .hierarchy import router as hierarchy_router
from .issues import router as issues_router
from .recommendations import router as recommendations_router

__all__ = [
    "sync_router",
    "hierarchy_router",
    "issues_router",
    "recommendations_router",
]
