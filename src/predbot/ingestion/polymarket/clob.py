"""Polymarket CLOB REST client - token ids, outcomes and top of book by condition id."""

from __future__ import annotations

import httpx
import structlog

from predbot.errors import UpstreamUnavailable
from predbot.ingestion.http import HTTPClientMixin
from predbot.ingestion.polymarket.normalize import match_outcome_tokens, parse_clob_market, parse_order_book
from predbot.models import ClobMarket, ClobMarketsPage, ClobOrderBook

log = structlog.get_logger(__name__)

CLOB_HOST = "https://clob.polymarket.com"
# Cursor value the CLOB returns once the listing is exhausted
END_CURSOR = "LTE="


class ClobOrderBookSource(HTTPClientMixin):
    """OrderBookSource over the public (unauthenticated) CLOB endpoints."""

    source_name = "clob"

    def __init__(
        self,
        host: str = CLOB_HOST,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        fetch_order_book: bool = True,
    ) -> None:
        self.host = host.rstrip("/")
        self.fetch_order_book = fetch_order_book
        self._init_client(http_client, timeout=timeout)

    async def get_market(self, condition_id: str) -> ClobMarket | None:
        """Market by condition id; None if the CLOB does not know it."""
        try:
            raw = await self._get_json(f"{self.host}/markets/{condition_id}")
        except UpstreamUnavailable as e:
            if e.status_code == 404:
                return None
            raise
        if not isinstance(raw, dict):
            return None
        market = parse_clob_market(raw)
        if market is None:
            return None
        if market.order_book is None and self.fetch_order_book and market.tokens:
            market.order_book = await self._get_top_of_book(market)
        return market

    async def _get_top_of_book(self, market: ClobMarket) -> ClobOrderBook | None:
        """Book for the yes token (first token if unmatched). Failures leave the book unset."""
        yes_id, _ = match_outcome_tokens(market.tokens)
        token_id = yes_id or market.tokens[0].token_id
        try:
            raw = await self._get_json(f"{self.host}/book", params={"token_id": token_id})
        except UpstreamUnavailable as e:
            log.debug("book_unavailable", condition_id=market.condition_id, token_id=token_id, error=str(e))
            return None
        return parse_order_book(raw)

    async def get_markets(self, cursor: str = "") -> ClobMarketsPage:
        """One page of the CLOB market listing."""
        params = {"next_cursor": cursor} if cursor else None
        raw = await self._get_json(f"{self.host}/markets", params=params)
        rows = raw.get("data", []) if isinstance(raw, dict) else raw if isinstance(raw, list) else []
        markets = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                parsed = parse_clob_market(row)
            except (ValueError, TypeError) as e:
                log.warning("skip_market", condition_id=row.get("condition_id"), error=str(e))
                continue
            if parsed is not None:
                markets.append(parsed)
        next_cursor = raw.get("next_cursor") if isinstance(raw, dict) else None
        if next_cursor == END_CURSOR:
            next_cursor = None
        return ClobMarketsPage(data=markets, next_cursor=next_cursor or None)
