"""AdSync - API Module.

This module provides the FastAPI application exposing the synced
hierarchy, issues and recommendations.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
