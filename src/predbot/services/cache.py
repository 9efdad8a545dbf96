"""Cache-aside market reads: serve from the store while fresh, refetch live when stale."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import structlog

from predbot.errors import PersistenceFailure
from predbot.models import Market
from predbot.services.reconciler import MarketReconciler
from predbot.services.retry import FetchStatus, RetryCoordinator
from predbot.storage.markets import MarketStore

log = structlog.get_logger(__name__)

CACHE_TTL_MS = 5 * 60 * 1000


class CachePath(str, Enum):
    RETURN_STORE = "return_store"
    PARTIAL_ENHANCE = "partial_enhance"
    FETCH_LIVE = "fetch_live"


@dataclass
class CacheStatus:
    has_cache: bool
    age_ms: int
    ttl_ms: int


class MarketCache:
    """Decides per request whether the store or the live pipeline answers.

    Freshness is ``now - last_updated < ttl_ms``. With the ``batch`` policy one
    stale record sends the whole request to the live pipeline; with ``record``
    only stale records are refreshed and the live pipeline runs when none is
    fresh. Independently of age, records that are not tradable (missing token
    ids or prices) are re-enhanced.
    """

    def __init__(
        self,
        store: MarketStore,
        reconciler: MarketReconciler,
        coordinator: RetryCoordinator,
        *,
        ttl_ms: int = CACHE_TTL_MS,
        over_fetch: int = 20,
        staleness_policy: str = "batch",
        clock: Callable[[], int] | None = None,
    ) -> None:
        if staleness_policy not in ("batch", "record"):
            raise ValueError(f"unknown staleness policy: {staleness_policy!r}")
        self.store = store
        self.reconciler = reconciler
        self.coordinator = coordinator
        self.ttl_ms = ttl_ms
        self.over_fetch = over_fetch
        self.staleness_policy = staleness_policy
        self._clock = clock or (lambda: int(time.time() * 1000))
        self.last_path: CachePath | None = None

    def is_fresh(self, market: Market, now_ms: int) -> bool:
        return market.last_updated is not None and now_ms - market.last_updated < self.ttl_ms

    async def get_markets(self, limit: int, order: str = "createdAt", ascending: bool = False) -> list[Market]:
        records = await self.store.list_active(max(self.over_fetch, limit))
        if not records:
            log.info("store_empty")
            return await self._fetch_live(limit, order, ascending)

        now = self._clock()
        fresh = [r for r in records if self.is_fresh(r, now)]
        if self.staleness_policy == "batch":
            if len(fresh) != len(records):
                log.info("store_stale", stale=len(records) - len(fresh), total=len(records))
                return await self._fetch_live(limit, order, ascending)
            to_refresh = [r for r in records if not r.is_tradable]
        else:
            if not fresh:
                log.info("store_stale", stale=len(records), total=len(records))
                return await self._fetch_live(limit, order, ascending)
            to_refresh = [r for r in records if not r.is_tradable or not self.is_fresh(r, now)]

        if not to_refresh:
            self.last_path = CachePath.RETURN_STORE
            log.info("serving_from_store", count=len(records))
            return records[:limit]

        self.last_path = CachePath.PARTIAL_ENHANCE
        refresh_ids = {r.natural_id for r in to_refresh}
        valid = [r for r in records if r.natural_id not in refresh_ids]
        log.info("partial_enhance", refresh=len(to_refresh), valid=len(valid))
        reconciled = await self.reconciler.reconcile(to_refresh)
        # Failed refreshes come back unchanged and may still be stale
        now = self._clock()
        enhanced = [m for m in reconciled if m.is_tradable and self.is_fresh(m, now)]
        log.info("partial_enhance_done", enhanced=len(enhanced), unresolved=len(to_refresh) - len(enhanced))
        merged = sorted(enhanced + valid, key=lambda m: m.end_ts or 0, reverse=True)
        return merged[:limit]

    async def _fetch_live(self, limit: int, order: str, ascending: bool) -> list[Market]:
        self.last_path = CachePath.FETCH_LIVE
        result = await self.coordinator.fetch(limit, order=order, ascending=ascending)
        if result.status is FetchStatus.EXHAUSTED:
            raise result.error
        persisted = await self._persist(result.seen)
        log.info("fetched_live", status=result.status.value, attempts=result.attempts, count=len(result.markets))
        return [persisted.get(m.natural_id, m) for m in result.markets]

    async def _persist(self, markets: list[Market]) -> dict[str, Market]:
        """Upsert markets the reconciler has not written yet; returns them keyed by natural id with row ids."""
        out: dict[str, Market] = {}
        for market in markets:
            if market.id is not None:
                out[market.natural_id] = market
                continue
            try:
                row_id = await self.store.upsert(market)
            except PersistenceFailure as e:
                log.warning("persist_failed", natural_id=market.natural_id, error=e.detail)
                continue
            out[market.natural_id] = market.model_copy(update={"id": row_id})
        return out

    async def cache_status(self) -> CacheStatus:
        """Age of the most recently ending active record."""
        records = await self.store.list_active(1)
        if not records or records[0].last_updated is None:
            return CacheStatus(has_cache=False, age_ms=0, ttl_ms=self.ttl_ms)
        return CacheStatus(has_cache=True, age_ms=self._clock() - records[0].last_updated, ttl_ms=self.ttl_ms)

    async def clear_cache(self) -> int:
        """Mark every record stale so the next request refetches. Nothing is deleted."""
        count = await self.store.mark_all_stale()
        log.info("cache_cleared", count=count)
        return count
