"""Shared dependencies for API routers."""

from typing import Optional

from fastapi import HTTPException

from analytics.recommendation_engine import RecommendationEngine
from collectors.errors import ClassifiedError, FetchTimeoutError, RateLimitError
from config import ConfigManager
from services.notifications import Notifier
from services.sync_orchestrator import SyncOrchestrator

# Global instances - set by main.py lifespan
_orchestrator: Optional[SyncOrchestrator] = None
_engine: Optional[RecommendationEngine] = None
_notifier: Optional[Notifier] = None
_config_manager: Optional[ConfigManager] = None


def set_orchestrator(orchestrator: Optional[SyncOrchestrator]) -> None:
    """Set the global sync orchestrator (called from main.py lifespan)."""
    global _orchestrator
    _orchestrator = orchestrator


def set_engine(engine: Optional[RecommendationEngine]) -> None:
    """Set the global recommendation engine (called from main.py lifespan)."""
    global _engine
    _engine = engine


def set_notifier(notifier: Optional[Notifier]) -> None:
    global _notifier
    _notifier = notifier


def set_config_manager(config_manager: Optional[ConfigManager]) -> None:
    """Set the global config manager instance (called from main.py lifespan)."""
    global _config_manager
    _config_manager = config_manager


def get_orchestrator() -> SyncOrchestrator:
    """Dependency for getting the sync orchestrator."""
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Sync not initialized. Configure the ads platform first.")
    return _orchestrator


def get_engine() -> RecommendationEngine:
    """Dependency for getting the recommendation engine."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Recommendations not initialized")
    return _engine


def get_notifier() -> Notifier:
    if _notifier is None:
        raise HTTPException(status_code=503, detail="Notifier not initialized")
    return _notifier


def get_config() -> ConfigManager:
    """Dependency for getting the config manager."""
    if _config_manager is None:
        raise HTTPException(status_code=503, detail="Config not initialized")
    return _config_manager


def http_error(error: ClassifiedError) -> HTTPException:
    """Map a classified upstream failure to an HTTP error."""
    if isinstance(error, RateLimitError):
        return HTTPException(status_code=429, detail=error.message)
    if isinstance(error, FetchTimeoutError):
        return HTTPException(status_code=504, detail=error.message)
    return HTTPException(status_code=502, detail=error.message)
