"""MarketService - wires store, upstream clients, reconciler, retries and cache from one config."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog

from predbot.config.settings import MarketServiceConfig
from predbot.ingestion.base import MetadataSource, OrderBookSource
from predbot.ingestion.polymarket.clob import ClobOrderBookSource
from predbot.ingestion.polymarket.gamma import GammaMetadataSource
from predbot.models import Market
from predbot.services.cache import CacheStatus, MarketCache
from predbot.services.reconciler import MarketReconciler
from predbot.services.retry import RetryCoordinator
from predbot.storage.markets import DuckDBMarketStore, MarketStore

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


@dataclass
class EnhanceSummary:
    candidates: int
    enhanced: int
    dropped: int


class MarketService:
    """Entry point for callers (API routes, CLI, bot handlers)."""

    def __init__(
        self,
        config: MarketServiceConfig,
        store: MarketStore,
        metadata: MetadataSource,
        order_book: OrderBookSource,
        *,
        clock: Callable[[], int] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.metadata = metadata
        self.order_book = order_book
        self.reconciler = MarketReconciler(
            order_book,
            store,
            batch_size=config.batch_size,
            batch_delay_sec=config.batch_delay_sec,
            clock=clock,
            sleep=sleep,
        )
        self.coordinator = RetryCoordinator(
            metadata,
            order_book,
            self.reconciler,
            max_retries=config.max_retries,
            retry_base_delay_sec=config.retry_base_delay_sec,
            retry_max_delay_sec=config.retry_max_delay_sec,
            fallback_max_pages=config.fallback_max_pages,
            sleep=sleep,
        )
        self.cache = MarketCache(
            store,
            self.reconciler,
            self.coordinator,
            ttl_ms=config.cache_ttl_ms,
            over_fetch=config.store_over_fetch,
            staleness_policy=config.staleness_policy,
            clock=clock,
        )

    @classmethod
    def from_config(cls, config: MarketServiceConfig, conn: DuckDBPyConnection) -> MarketService:
        """Build with the real Gamma/CLOB clients and a DuckDB store on conn."""
        return cls(
            config,
            DuckDBMarketStore(conn),
            GammaMetadataSource(config.gamma_api_base, timeout=config.http_timeout_sec),
            ClobOrderBookSource(
                config.clob_host,
                timeout=config.http_timeout_sec,
                fetch_order_book=config.clob_fetch_order_book,
            ),
        )

    async def fetch_markets(
        self, limit: int | None = None, order: str = "createdAt", ascending: bool = False
    ) -> list[Market]:
        return await self.cache.get_markets(limit or self.config.default_limit, order=order, ascending=ascending)

    async def get_market(self, market_id: str) -> Market | None:
        """Lookup by row id (what the bot hands out), then by natural id."""
        market = await self.store.get_by_id(market_id)
        if market is None:
            market = await self.store.get_by_natural_id(market_id)
        return market

    async def get_market_by_token_id(self, token_id: str) -> Market | None:
        return await self.store.get_by_token_id(token_id)

    async def enhance_all_markets(self, limit: int = 500) -> EnhanceSummary:
        """Re-enhance every active stored market that is not tradable yet."""
        records = await self.store.list_active(limit)
        pending = [r for r in records if not r.is_tradable]
        if not pending:
            return EnhanceSummary(candidates=0, enhanced=0, dropped=0)
        result = await self.reconciler.reconcile(pending)
        enhanced = sum(1 for m in result if m.is_tradable)
        summary = EnhanceSummary(candidates=len(pending), enhanced=enhanced, dropped=len(pending) - len(result))
        log.info("enhance_all_done", candidates=summary.candidates, enhanced=summary.enhanced, dropped=summary.dropped)
        return summary

    async def cache_status(self) -> CacheStatus:
        return await self.cache.cache_status()

    async def clear_cache(self) -> int:
        return await self.cache.clear_cache()

    async def close(self) -> None:
        for client in (self.metadata, self.order_book):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
