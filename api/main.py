"""FastAPI application for AdSync.

This module provides the main application setup, service wiring and router
configuration. All route handlers are organized in the api/routers/ directory.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analytics.recommendation_engine import RecommendationEngine
from api.dependencies import set_config_manager, set_engine, set_notifier, set_orchestrator
from api.routers import hierarchy_router, issues_router, recommendations_router, sync_router
from collectors.activities import ActivitiesClient
from collectors.base import BaseAdsPlatformClient
from collectors.hierarchy.client import HierarchyClient
from collectors.issues import IssuesClient
from collectors.mutations import MutationsClient
from config import AppConfig, ConfigError, ConfigManager
from services.entity_actions import EntityActions
from services.fetch_scheduler import FetchScheduler
from services.hierarchy_store import HierarchyStore
from services.notifications import Notifier
from services.sync_orchestrator import SyncOrchestrator
from storage.hierarchy_cache import HierarchyCacheRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routers need, built from one AppConfig."""

    orchestrator: SyncOrchestrator
    engine: RecommendationEngine
    notifier: Notifier
    clients: list[BaseAdsPlatformClient]

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_services(config: AppConfig) -> Services:
    """Wire clients, store, scheduler, engine and orchestrator.

    Raises:
        ConfigError: If the ads platform section is missing.
    """
    if config.platform is None:
        raise ConfigError("Ads platform configuration not set")

    platform = config.platform
    token = platform.access_token.get_secret_value() if platform.access_token else None
    client_args = {"base_url": platform.base_url, "account_id": platform.account_id, "access_token": token}

    hierarchy_client = HierarchyClient(**client_args)
    mutations_client = MutationsClient(**client_args)
    activities_client = ActivitiesClient(**client_args)
    issues_client = IssuesClient(**client_args)

    sync = config.sync
    notifier = Notifier()
    store = HierarchyStore()
    scheduler = FetchScheduler(
        hierarchy_client,
        store,
        notifier,
        fast_timeout=sync.fast_timeout_seconds,
        basic_timeout=sync.basic_timeout_seconds,
        cooldown_seconds=sync.rate_limit_cooldown_seconds,
        notice_interval_seconds=sync.rate_limit_notice_interval_seconds,
    )
    entity_actions = EntityActions(mutations_client, store, notifier)
    engine = RecommendationEngine(
        entity_actions,
        store,
        notifier,
        confirm_window_seconds=config.recommendations.confirm_window_seconds,
        remember_dismissed=config.recommendations.remember_dismissed,
    )
    cache = HierarchyCacheRepository(config.cache.path, enabled=config.cache.enabled)

    orchestrator = SyncOrchestrator(
        scheduler,
        store,
        cache=cache,
        activities_client=activities_client,
        issues_client=issues_client,
        entity_actions=entity_actions,
        recommendations=engine,
        notifier=notifier,
        max_active_campaigns=sync.max_active_campaigns,
        max_ad_groups_per_campaign=sync.max_ad_groups_per_campaign,
        line_item_spacing_seconds=sync.line_item_spacing_seconds,
        empty_campaign_spacing_seconds=sync.empty_campaign_spacing_seconds,
        campaign_spacing_seconds=sync.campaign_spacing_seconds,
        actions_delay_seconds=sync.actions_delay_seconds,
        actions_window_days=sync.actions_window_days,
        actions_limit=sync.actions_limit,
        poll_timeout_seconds=sync.poll_timeout_seconds,
    )
    return Services(
        orchestrator=orchestrator,
        engine=engine,
        notifier=notifier,
        clients=[hierarchy_client, mutations_client, activities_client, issues_client],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    config_manager = ConfigManager()
    config = config_manager.get_config_or_default()
    configure_logging(config.log_level)
    set_config_manager(config_manager)

    services: Optional[Services] = None
    try:
        services = build_services(config)
    except ConfigError as e:
        logger.warning(f"Sync disabled: {e}")

    if services is not None:
        set_orchestrator(services.orchestrator)
        set_engine(services.engine)
        set_notifier(services.notifier)
        logger.info(f"AdSync API started for account {config.platform.account_id}")

    yield

    logger.info("AdSync API shutting down")
    if services is not None:
        await services.aclose()
    set_orchestrator(None)
    set_engine(None)
    set_notifier(None)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="AdSync",
        description="API for syncing, inspecting and bulk-controlling ad campaigns",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(sync_router)
    application.include_router(hierarchy_router)
    application.include_router(issues_router)
    application.include_router(recommendations_router)

    @application.get("/health", tags=["System"])
    async def health():
        return {"status": "ok"}

    return application


app = create_app()
