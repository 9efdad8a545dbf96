"""Bounded fetch-and-enhance retries with CLOB listing fallback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from predbot.ingestion.base import MetadataSource, OrderBookSource
from predbot.ingestion.polymarket.gamma import parse_gamma_markets
from predbot.ingestion.polymarket.normalize import clob_market_to_market
from predbot.ingestion.rate_limit import backoff_delay
from predbot.models import Market
from predbot.services.reconciler import MarketReconciler, resolve_condition_id

log = structlog.get_logger(__name__)


class FetchStatus(str, Enum):
    SUCCESS = "success"  # at least `limit` tradable markets
    PARTIAL = "partial"  # attempts exhausted, fewer tradable markets than asked for
    FALLBACK = "fallback"  # metadata source down, markets derived from the CLOB listing
    EXHAUSTED = "exhausted"  # final attempt raised


@dataclass
class FetchResult:
    status: FetchStatus
    markets: list[Market] = field(default_factory=list)
    attempts: int = 0
    error: BaseException | None = None
    # Every market the final pass produced, tradable or not; persisted by the cache
    seen: list[Market] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not FetchStatus.EXHAUSTED


@dataclass
class _Pass:
    markets: list[Market]
    from_fallback: bool = False


def _by_end_desc(markets: list[Market]) -> list[Market]:
    return sorted(markets, key=lambda m: m.end_ts or 0, reverse=True)


class RetryCoordinator:
    """Run up to ``max_retries + 1`` fetch-and-enhance passes for one request.

    Each retry advances the Gamma offset by ``limit * attempt`` so it explores
    new candidates instead of re-reading the same page.
    """

    def __init__(
        self,
        metadata: MetadataSource,
        order_book: OrderBookSource,
        reconciler: MarketReconciler,
        *,
        max_retries: int = 2,
        retry_base_delay_sec: float = 0.5,
        retry_max_delay_sec: float = 5.0,
        fallback_max_pages: int = 1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.metadata = metadata
        self.order_book = order_book
        self.reconciler = reconciler
        self.max_retries = max(0, max_retries)
        self.retry_base_delay_sec = retry_base_delay_sec
        self.retry_max_delay_sec = retry_max_delay_sec
        self.fallback_max_pages = max(1, fallback_max_pages)
        self._sleep = sleep

    async def fetch(self, limit: int, order: str = "createdAt", ascending: bool = False) -> FetchResult:
        total = self.max_retries + 1
        for attempt in range(total):
            final = attempt == self.max_retries
            log.info("fetch_attempt", attempt=attempt + 1, of=total, limit=limit)
            try:
                result = await self._run_pass(limit, attempt, order, ascending)
            except Exception as e:
                log.warning("fetch_attempt_failed", attempt=attempt + 1, of=total, error=str(e))
                if final:
                    return FetchResult(FetchStatus.EXHAUSTED, attempts=attempt + 1, error=e)
                delay = backoff_delay(attempt, self.retry_base_delay_sec, self.retry_max_delay_sec)
                if delay > 0:
                    await self._sleep(delay)
                continue

            if result.from_fallback:
                return FetchResult(
                    FetchStatus.FALLBACK, result.markets[:limit], attempts=attempt + 1, seen=result.markets
                )
            valid = [m for m in result.markets if m.is_tradable]
            log.info("fetch_valid_markets", attempt=attempt + 1, valid=len(valid), total=len(result.markets))
            if len(valid) >= limit:
                return FetchResult(FetchStatus.SUCCESS, valid[:limit], attempts=attempt + 1, seen=result.markets)
            if final:
                return FetchResult(FetchStatus.PARTIAL, valid, attempts=attempt + 1, seen=result.markets)
            log.info("fetch_insufficient_retrying", valid=len(valid), limit=limit)
        raise AssertionError("unreachable: loop returns on the final attempt")

    async def _run_pass(self, limit: int, attempt: int, order: str, ascending: bool) -> _Pass:
        try:
            raw = await self.metadata.fetch_markets(limit=limit, offset=limit * attempt, order=order, ascending=ascending)
        except Exception as metadata_error:
            log.warning("metadata_failed_using_clob_listing", error=str(metadata_error))
            try:
                markets = await self.fetch_from_listing(limit)
            except Exception as listing_error:
                log.warning("clob_listing_failed", error=str(listing_error))
                raise metadata_error from listing_error
            return _Pass(markets, from_fallback=True)

        markets = _by_end_desc(parse_gamma_markets(raw))
        with_condition = [m for m in markets if resolve_condition_id(m, raw)]
        if not with_condition:
            log.info("no_condition_ids_trying_clob_listing", received=len(markets))
            try:
                listed = await self.fetch_from_listing(limit)
            except Exception as e:
                log.warning("clob_listing_failed", error=str(e))
                return _Pass(markets)
            if listed:
                return _Pass(listed, from_fallback=True)
            return _Pass(markets)

        reconciled = await self.reconciler.reconcile(with_condition, raw)
        # Candidates the reconciler dropped are not re-added from the raw batch
        attempted_ids = {m.natural_id for m in with_condition}
        regular = [m for m in markets if m.natural_id not in attempted_ids]
        log.info("fetch_pass_merged", reconciled=len(reconciled), regular=len(regular))
        return _Pass(reconciled + regular)

    async def fetch_from_listing(self, limit: int) -> list[Market]:
        """Active, unarchived markets with both token ids, straight from the CLOB listing."""
        markets: list[Market] = []
        cursor = ""
        for _ in range(self.fallback_max_pages):
            page = await self.order_book.get_markets(cursor)
            for clob in page.data:
                if not clob.active or clob.archived:
                    continue
                market = clob_market_to_market(clob)
                if market is not None:
                    markets.append(market)
            if len(markets) >= limit or not page.next_cursor:
                break
            cursor = page.next_cursor
        log.info("clob_listing_markets", count=len(markets))
        return _by_end_desc(markets)
