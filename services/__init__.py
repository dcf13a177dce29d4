"""Services package for hierarchy sync and entity actions."""

from services.entity_actions import BulkStatusResult, EntityActions, UnknownEntityError
from services.fetch_scheduler import CancellationToken, FetchScheduler, StaleResultError
from services.hierarchy_store import (
    HierarchyStore,
    SelectionState,
    SortDirection,
    SortState,
    sort_entities,
)
from services.notifications import Notice, NoticeLevel, Notifier
from services.sync_orchestrator import StageState, SyncOrchestrator, SyncState

__all__ = [
    "BulkStatusResult",
    "EntityActions",
    "UnknownEntityError",
    "CancellationToken",
    "FetchScheduler",
    "StaleResultError",
    "HierarchyStore",
    "SelectionState",
    "SortDirection",
    "SortState",
    "sort_entities",
    "Notice",
    "NoticeLevel",
    "Notifier",
    "StageState",
    "SyncOrchestrator",
    "SyncState",
]
