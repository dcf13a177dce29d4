"""Rate-limit-aware child fetcher for the campaign hierarchy.

FetchScheduler issues the per-node child fetches (a campaign's ad-groups,
an ad-group's line items) and owns everything around them:

- fetch-once: a node marked fetched is never requested again unless forced
- per-node dedupe: concurrent callers for one node share one request
- circuit breaker: after a 429 every unforced fetch short-circuits with no
  network call until the cooldown expires
- fast/basic fallback: a failed fast attempt gets one basic retry
- stale-response suppression: results that arrive after their cancellation
  token was cancelled are discarded instead of written
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Union

from collectors.errors import ClassifiedError, FetchTimeoutError, RateLimitError
from collectors.hierarchy.client import HierarchyClient
from services.hierarchy_store import HierarchyStore
from services.notifications import Notifier
from storage.adapters import ad_group_from_dict, line_item_from_dict
from storage.models import (
    AdGroup,
    EntityLevel,
    FetchMode,
    FetchStatus,
    LineItem,
    SyncContext,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Ads API rate limited, wait a minute and try again"
TIMEOUT_MESSAGE = "Request timed out, the ads platform may be slow, try again shortly"


class CancellationToken:
    """Marks a unit of background work as superseded.

    Work keeps running to completion (the network call is not aborted) but
    must check the token before writing and drop its result when cancelled.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class StaleResultError(Exception):
    """Raised to a caller whose fetch completed after its token was cancelled."""


Children = list[Union[AdGroup, LineItem]]


class FetchScheduler:
    """Issues child fetches for hierarchy nodes.

    Attributes:
        cooldown_until: Monotonic clock value before which unforced fetches
            short-circuit. Survives reset(): the upstream limit does not care
            that the user switched date ranges.

    Example:
        >>> scheduler = FetchScheduler(client, store, notifier)
        >>> scheduler.set_context(SyncContext("act_1", "2026-10-01", "2026-10-07"))
        >>> ad_groups = await scheduler.fetch("c1", EntityLevel.CAMPAIGN)
    """

    def __init__(
        self,
        client: HierarchyClient,
        store: HierarchyStore,
        notifier: Optional[Notifier] = None,
        fast_timeout: float = 12.0,
        basic_timeout: float = 10.0,
        cooldown_seconds: float = 60.0,
        notice_interval_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.store = store
        self.notifier = notifier or Notifier()
        self.fast_timeout = fast_timeout
        self.basic_timeout = basic_timeout
        self.cooldown_seconds = cooldown_seconds
        self.notice_interval_seconds = notice_interval_seconds
        self._clock = clock

        self.context: Optional[SyncContext] = None
        self.cooldown_until: float = 0.0
        self._last_rate_limit_notice: Optional[float] = None
        self._in_flight: dict[str, asyncio.Task] = {}
        self.network_calls = 0

    def set_context(self, context: SyncContext) -> None:
        self.context = context

    def reset(self) -> None:
        """Forget fetched marks and in-flight fetches. Keeps the cooldown."""
        self._in_flight.clear()
        self.store.reset_fetch_status()

    def in_cooldown(self) -> bool:
        return self._clock() < self.cooldown_until

    def cooldown_remaining(self) -> float:
        return max(0.0, self.cooldown_until - self._clock())

    def is_fetched(self, node_id: str) -> bool:
        return self.store.fetch_status(node_id) == FetchStatus.FETCHED

    async def fetch(
        self,
        node_id: str,
        level: EntityLevel,
        mode: FetchMode = FetchMode.FAST,
        force_refresh: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> Children:
        """Fetch and store the children of a campaign or ad-group.

        Args:
            node_id: Campaign or ad-group id.
            level: EntityLevel.CAMPAIGN or EntityLevel.AD_GROUP.
            mode: Profile for the first attempt. FAST falls back to BASIC.
            force_refresh: Clear the fetched mark and bypass the cooldown for
                this one attempt.
            token: Cancellation token of the calling background pass.

        Returns:
            The node's children after the fetch.

        Raises:
            RateLimitError: Rate limited, or short-circuited by the cooldown.
            FetchTimeoutError: The request timed out.
            ApiError: Any other failure.
            StaleResultError: The token was cancelled before the result landed.
        """
        if level not in (EntityLevel.CAMPAIGN, EntityLevel.AD_GROUP):
            raise ValueError(f"Only campaigns and ad-groups have children, got {level}")

        if force_refresh:
            self.store.clear_fetch_status(node_id)
        elif self.is_fetched(node_id):
            return self.store.children_of(node_id, level)

        pending = self._in_flight.get(node_id)
        if pending is not None:
            return await asyncio.shield(pending)

        if not force_refresh and self.in_cooldown():
            self.store.set_fetch_status(node_id, FetchStatus.ERRORED, RATE_LIMIT_MESSAGE)
            logger.warning(
                f"Skipping fetch for {level.value} {node_id}: rate-limit cooldown "
                f"({self.cooldown_remaining():.0f}s left)"
            )
            raise RateLimitError(RATE_LIMIT_MESSAGE)

        task = asyncio.ensure_future(self._fetch_node(node_id, level, mode, token))
        self._in_flight[node_id] = task
        task.add_done_callback(lambda t: self._forget(node_id, t))
        return await asyncio.shield(task)

    def _forget(self, node_id: str, task: asyncio.Future) -> None:
        if self._in_flight.get(node_id) is task:
            del self._in_flight[node_id]

    async def _fetch_node(
        self,
        node_id: str,
        level: EntityLevel,
        mode: FetchMode,
        token: Optional[CancellationToken],
    ) -> Children:
        self.store.set_fetch_status(node_id, FetchStatus.LOADING)

        try:
            children = await self._request(node_id, level, mode, self._timeout_for(mode))
        except ClassifiedError as first_error:
            if mode == FetchMode.BASIC:
                self._record_failure(node_id, level, first_error, token)
                raise
            logger.warning(
                f"Fast fetch failed for {level.value} {node_id} ({first_error.kind}), "
                f"falling back to basic"
            )
            try:
                children = await self._request(
                    node_id, level, FetchMode.BASIC, self.basic_timeout
                )
            except ClassifiedError as fallback_error:
                error = fallback_error if isinstance(fallback_error, RateLimitError) else first_error
                self._record_failure(node_id, level, error, token)
                raise error from None

        if token is not None and token.cancelled:
            logger.debug(f"Discarding stale {level.value} fetch for {node_id}")
            raise StaleResultError(node_id)

        if level == EntityLevel.CAMPAIGN:
            self.store.replace_ad_groups(node_id, children)
        else:
            self.store.replace_line_items(node_id, children)
        self.store.set_fetch_status(node_id, FetchStatus.FETCHED)
        return self.store.children_of(node_id, level)

    async def _request(
        self,
        node_id: str,
        level: EntityLevel,
        mode: FetchMode,
        timeout: float,
    ) -> Children:
        context = self.context or SyncContext(self.client.account_id)
        self.network_calls += 1
        if level == EntityLevel.CAMPAIGN:
            rows = await self.client.list_ad_groups(
                node_id, context.since, context.until, mode=mode.value, timeout=timeout
            )
            return [ad_group_from_dict(row) for row in rows]
        rows = await self.client.list_line_items(
            node_id, context.since, context.until, mode=mode.value, timeout=timeout
        )
        return [line_item_from_dict(row) for row in rows]

    def _timeout_for(self, mode: FetchMode) -> float:
        return self.fast_timeout if mode == FetchMode.FAST else self.basic_timeout

    def _record_failure(
        self,
        node_id: str,
        level: EntityLevel,
        error: ClassifiedError,
        token: Optional[CancellationToken],
    ) -> None:
        if isinstance(error, RateLimitError):
            self._enter_cooldown()
        if token is not None and token.cancelled:
            logger.debug(f"Discarding stale {level.value} failure for {node_id}")
            return

        self.store.set_fetch_status(node_id, FetchStatus.ERRORED, error.message)
        logger.warning(f"Failed to load children of {level.value} {node_id}: {error.message}")
        if isinstance(error, FetchTimeoutError):
            self.notifier.error(TIMEOUT_MESSAGE)
        elif not isinstance(error, RateLimitError):
            noun = "ad groups" if level == EntityLevel.CAMPAIGN else "line items"
            self.notifier.error(f"Could not load {noun}: {error.message}")

    def _enter_cooldown(self) -> None:
        now = self._clock()
        self.cooldown_until = now + self.cooldown_seconds
        logger.warning(f"Rate limited, pausing fetches for {self.cooldown_seconds:.0f}s")
        if (
            self._last_rate_limit_notice is None
            or now - self._last_rate_limit_notice > self.notice_interval_seconds
        ):
            self.notifier.error(RATE_LIMIT_MESSAGE)
            self._last_rate_limit_notice = now
