"""CLOB market, token and top-of-book models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PriceLevel(BaseModel):
    """Single price level (price -> size)."""

    price: float = Field(..., ge=0, le=1)
    size: float = Field(0.0, ge=0)


class ClobOrderBook(BaseModel):
    """Order book sides as returned by the CLOB. Level ordering is not trusted."""

    bids: list[PriceLevel] = Field(default_factory=list)
    asks: list[PriceLevel] = Field(default_factory=list)

    @property
    def best_bid(self) -> float | None:
        prices = [lev.price for lev in self.bids if lev.price > 0]
        return max(prices) if prices else None

    @property
    def best_ask(self) -> float | None:
        prices = [lev.price for lev in self.asks if lev.price > 0]
        return min(prices) if prices else None

    @property
    def mid_price(self) -> float | None:
        bid, ask = self.best_bid, self.best_ask
        if bid is None or ask is None:
            return None
        return (bid + ask) / 2


class ClobToken(BaseModel):
    """One outcome token of a CLOB market."""

    token_id: str
    outcome: str = ""


class ClobMarket(BaseModel):
    """CLOB market keyed by condition id."""

    condition_id: str
    question: str = ""
    category: str | None = None
    end_date_iso: str | None = None
    active: bool = True
    archived: bool = False
    tokens: list[ClobToken] = Field(default_factory=list)
    order_book: ClobOrderBook | None = None
    volume_24h: float | None = None
    liquidity: float | None = None


class ClobMarketsPage(BaseModel):
    """One page of the CLOB market listing."""

    data: list[ClobMarket] = Field(default_factory=list)
    next_cursor: str | None = None
