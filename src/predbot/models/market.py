"""Market - canonical persisted entity."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Market(BaseModel):
    """Canonical market merged from Gamma metadata and CLOB token/price data."""

    natural_id: str  # Gamma id, or CLOB condition id for listing-sourced rows
    id: str | None = None  # store row id, assigned on first upsert
    condition_id: str | None = None
    question: str = ""
    description: str = ""
    end_ts: int | None = None  # ms epoch
    volume_24h: float = Field(0.0, ge=0)
    liquidity: float = Field(0.0, ge=0)
    yes_price: float = Field(0.0, ge=0, le=1)
    no_price: float = Field(0.0, ge=0, le=1)
    price_change_24h: float | None = None
    yes_token_id: str = ""
    no_token_id: str = ""
    clob_token_ids: str | None = None
    outcomes: str | None = None
    outcome_prices: str | None = None
    last_updated: int | None = None  # ms epoch
    is_active: bool = True
    is_archived: bool = False

    @property
    def is_enhanced(self) -> bool:
        """Both tradable token ids are resolved."""
        return bool(self.yes_token_id) and bool(self.no_token_id)

    @property
    def is_tradable(self) -> bool:
        """Enhanced and priced on both sides."""
        return self.is_enhanced and self.yes_price > 0 and self.no_price > 0

    @property
    def end_date_iso(self) -> str:
        if self.end_ts is None:
            return ""
        dt = datetime.fromtimestamp(self.end_ts / 1000, tz=timezone.utc)
        return dt.isoformat().replace("+00:00", "Z")


def parse_timestamp_ms(value: str | int | float | None) -> int | None:
    """ISO-8601 string (or epoch seconds/ms) -> ms epoch. None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        # Heuristic: values below 1e12 are seconds
        return int(value if value >= 1e12 else value * 1000)
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
