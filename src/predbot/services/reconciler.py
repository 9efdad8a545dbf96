"""Merge Gamma metadata with CLOB tokens and prices, drop untradable markets, write through."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from predbot.errors import PersistenceFailure
from predbot.ingestion.base import OrderBookSource
from predbot.ingestion.polymarket.normalize import match_outcome_tokens, normalize_condition_id
from predbot.models import Market
from predbot.storage.markets import MarketStore

log = structlog.get_logger(__name__)


@dataclass
class EnhancementCandidate:
    """A market paired with the condition id used to query the CLOB. Lives for one pass."""

    market: Market
    condition_id: str | None


@dataclass
class _Outcome:
    market: Market
    enhanced: bool


def resolve_condition_id(market: Market, raw_batch: list[dict[str, Any]] | None = None) -> str | None:
    """The market's own condition id, else the conditionId of the raw Gamma row with the same id."""
    if market.condition_id:
        return market.condition_id
    for raw in raw_batch or []:
        if str(raw.get("id", "")) == market.natural_id and raw.get("conditionId"):
            return normalize_condition_id(str(raw["conditionId"])) or None
    return None


class MarketReconciler:
    """Attach CLOB token ids and live prices to metadata-only markets.

    Candidates are processed in sub-batches of ``batch_size``; the CLOB calls of
    one sub-batch run concurrently and the next sub-batch starts only after they
    all settle. Output keeps:

    * enhanced markets (both token ids and both prices > 0), persisted by natural id;
    * unchanged candidates whose condition id is unknown, whose CLOB record has no
      tokens, or whose CLOB call failed.

    Candidates the CLOB answered for but that still fail the tradability check are dropped.
    """

    def __init__(
        self,
        order_book: OrderBookSource,
        store: MarketStore,
        *,
        batch_size: int = 5,
        batch_delay_sec: float = 0.1,
        clock: Callable[[], int] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.order_book = order_book
        self.store = store
        self.batch_size = max(1, batch_size)
        self.batch_delay_sec = batch_delay_sec
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._sleep = sleep

    async def reconcile(self, markets: list[Market], raw_batch: list[dict[str, Any]] | None = None) -> list[Market]:
        candidates = [EnhancementCandidate(m, resolve_condition_id(m, raw_batch)) for m in markets]
        results: list[Market] = []
        enhanced_count = 0
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            outcomes = await asyncio.gather(*(self._enhance(c) for c in batch))
            for outcome in outcomes:
                if outcome is None:
                    continue
                if outcome.enhanced:
                    enhanced_count += 1
                    results.append(await self._persist(outcome.market))
                else:
                    results.append(outcome.market)
            if start + self.batch_size < len(candidates) and self.batch_delay_sec > 0:
                await self._sleep(self.batch_delay_sec)
        log.info(
            "reconcile_done",
            candidates=len(candidates),
            enhanced=enhanced_count,
            dropped=len(candidates) - len(results),
        )
        return results

    async def _enhance(self, candidate: EnhancementCandidate) -> _Outcome | None:
        market = candidate.market
        if not candidate.condition_id:
            return _Outcome(market, enhanced=False)
        try:
            clob = await self.order_book.get_market(candidate.condition_id)
        except Exception as e:
            log.warning(
                "enhance_failed",
                natural_id=market.natural_id,
                condition_id=candidate.condition_id,
                error=str(e),
            )
            return _Outcome(market, enhanced=False)
        if clob is None or not clob.tokens:
            return _Outcome(market, enhanced=False)

        yes_price, no_price = market.yes_price, market.no_price
        mid = clob.order_book.mid_price if clob.order_book is not None else None
        if mid is not None:
            yes_price = mid
            no_price = 1 - mid

        yes_token_id, no_token_id = match_outcome_tokens(clob.tokens)
        yes_token_id = yes_token_id or market.yes_token_id
        no_token_id = no_token_id or market.no_token_id

        if not (yes_token_id and no_token_id and yes_price > 0 and no_price > 0):
            log.info(
                "enhance_rejected",
                natural_id=market.natural_id,
                has_tokens=bool(yes_token_id and no_token_id),
                yes_price=yes_price,
                no_price=no_price,
            )
            return None

        updated = market.model_copy(
            update={
                "condition_id": candidate.condition_id,
                "yes_price": yes_price,
                "no_price": no_price,
                "yes_token_id": yes_token_id,
                "no_token_id": no_token_id,
                "volume_24h": clob.volume_24h or market.volume_24h,
                "liquidity": clob.liquidity or market.liquidity,
                "last_updated": self._clock(),
            }
        )
        return _Outcome(updated, enhanced=True)

    async def _persist(self, market: Market) -> Market:
        """Upsert by natural id; on failure keep the in-memory copy."""
        try:
            row_id = await self.store.upsert(market)
        except PersistenceFailure as e:
            log.warning("persist_failed", natural_id=market.natural_id, error=e.detail)
            return market
        return market.model_copy(update={"id": row_id})
