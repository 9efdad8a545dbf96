"""Canonical schema (Pydantic) - Market and CLOB order book."""

from predbot.models.market import Market, parse_timestamp_ms
from predbot.models.orderbook import (
    ClobMarket,
    ClobMarketsPage,
    ClobOrderBook,
    ClobToken,
    PriceLevel,
)

__all__ = [
    "Market",
    "ClobMarket",
    "ClobMarketsPage",
    "ClobOrderBook",
    "ClobToken",
    "PriceLevel",
    "parse_timestamp_ms",
]
