"""Upstream source protocols: Gamma-style metadata and CLOB-style order book."""

from __future__ import annotations

from typing import Any, Protocol

from predbot.models import ClobMarket, ClobMarketsPage


class MetadataSource(Protocol):
    """Market metadata (question, dates, volume). Never carries tradable token ids."""

    async def fetch_markets(
        self,
        limit: int,
        offset: int = 0,
        order: str = "createdAt",
        ascending: bool = False,
    ) -> list[dict[str, Any]]: ...


class OrderBookSource(Protocol):
    """Order-book venue keyed by settlement-condition id."""

    async def get_market(self, condition_id: str) -> ClobMarket | None: ...

    async def get_markets(self, cursor: str = "") -> ClobMarketsPage: ...
