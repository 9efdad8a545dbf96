"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from predbot.models import Market


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, upstream_unavailable")


# --- Markets ---
class MarketView(BaseModel):
    """Caller-facing market shape (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    cuid: str | None = None
    question: str
    description: str
    end_date: str = Field(..., alias="endDate", description="ISO-8601 end time")
    volume_24h: float = Field(..., alias="volume24h")
    liquidity: float
    yes_price: float = Field(..., alias="yesPrice")
    no_price: float = Field(..., alias="noPrice")
    price_change_24h: float | None = Field(None, alias="priceChange24h")
    yes_token_id: str = Field(..., alias="yesTokenId")
    no_token_id: str = Field(..., alias="noTokenId")
    condition_id: str | None = Field(None, alias="conditionId")
    clob_tokens_ids: str | None = Field(None, alias="clobTokensIds")

    @classmethod
    def from_market(cls, market: Market) -> MarketView:
        return cls(
            id=market.natural_id,
            cuid=market.id,
            question=market.question,
            description=market.description,
            end_date=market.end_date_iso,
            volume_24h=market.volume_24h,
            liquidity=market.liquidity,
            yes_price=market.yes_price,
            no_price=market.no_price,
            price_change_24h=market.price_change_24h,
            yes_token_id=market.yes_token_id,
            no_token_id=market.no_token_id,
            condition_id=market.condition_id,
            clob_tokens_ids=market.clob_token_ids,
        )


class MarketsListResponse(BaseModel):
    markets: list[MarketView]
    total: int


class EnhanceResponse(BaseModel):
    success: bool = True
    candidates: int
    enhanced: int
    dropped: int


class CacheStatusResponse(BaseModel):
    has_cache: bool = Field(..., alias="hasCache")
    age: int = Field(..., description="Age of the newest-ending cached market in ms")
    ttl: int

    model_config = ConfigDict(populate_by_name=True)


class ClearCacheResponse(BaseModel):
    cleared: int
