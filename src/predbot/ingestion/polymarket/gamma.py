"""Polymarket Gamma API client - market metadata (no tradable token ids)."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from predbot.ingestion.http import HTTPClientMixin
from predbot.ingestion.polymarket.normalize import normalize_condition_id, to_float
from predbot.models import Market, parse_timestamp_ms

log = structlog.get_logger(__name__)

GAMMA_API_BASE = "https://gamma-api.polymarket.com"


def _parse_prices(raw: dict[str, Any]) -> tuple[float, float]:
    """(yes, no) from outcomePrices (JSON string or list), else lastTradePrice, else zeros."""
    prices_raw = raw.get("outcomePrices")
    if prices_raw:
        try:
            prices = json.loads(prices_raw) if isinstance(prices_raw, str) else list(prices_raw)
            if len(prices) >= 2:
                return to_float(prices[0]), to_float(prices[1])
        except (json.JSONDecodeError, TypeError):
            log.warning("bad_outcome_prices", market_id=raw.get("id"), value=str(prices_raw)[:80])
        return 0.0, 0.0
    last_trade = to_float(raw.get("lastTradePrice"))
    if last_trade > 0:
        return last_trade, 1 - last_trade
    return 0.0, 0.0


def _as_json_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def parse_gamma_market(raw: dict[str, Any]) -> Market:
    """Convert a Gamma market object to a canonical Market with empty token ids."""
    gamma_id = str(raw.get("id", "")).strip()
    if not gamma_id:
        raise ValueError("gamma market without id")
    yes_price, no_price = _parse_prices(raw)
    condition_id = normalize_condition_id(str(raw.get("conditionId") or ""))
    change = raw.get("oneDayPriceChange")
    return Market(
        natural_id=gamma_id,
        condition_id=condition_id or None,
        question=raw.get("question") or raw.get("slug") or f"Market {gamma_id}",
        description=raw.get("description") or raw.get("slug") or f"Market {gamma_id}",
        end_ts=parse_timestamp_ms(raw.get("endDate") or raw.get("end_date")),
        volume_24h=to_float(raw.get("volume24hr") or raw.get("volume")),
        liquidity=to_float(raw.get("liquidity")),
        yes_price=yes_price,
        no_price=no_price,
        price_change_24h=to_float(change) if change is not None else None,
        clob_token_ids=_as_json_str(raw.get("clobTokenIds")),
        outcomes=_as_json_str(raw.get("outcomes")),
        outcome_prices=_as_json_str(raw.get("outcomePrices")),
        is_active=bool(raw.get("active", True) and not raw.get("closed", False)),
        is_archived=bool(raw.get("archived", False)),
    )


def parse_gamma_markets(rows: list[dict[str, Any]]) -> list[Market]:
    """Parse a Gamma batch, skipping rows that fail validation."""
    markets = []
    for row in rows:
        try:
            markets.append(parse_gamma_market(row))
        except (ValueError, TypeError) as e:
            log.warning("skip_market", market_id=row.get("id"), error=str(e))
    return markets


class GammaMetadataSource(HTTPClientMixin):
    """MetadataSource over GET {base}/markets."""

    source_name = "gamma"

    def __init__(
        self,
        base_url: str = GAMMA_API_BASE,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._init_client(http_client, timeout=timeout)

    @property
    def markets_url(self) -> str:
        return self.base_url if self.base_url.endswith("/markets") else self.base_url + "/markets"

    async def fetch_markets(
        self,
        limit: int,
        offset: int = 0,
        order: str = "createdAt",
        ascending: bool = False,
    ) -> list[dict[str, Any]]:
        """Raw active, open Gamma market objects."""
        params = {
            "active": "true",
            "closed": "false",
            "limit": limit,
            "order": order,
            "ascending": "true" if ascending else "false",
            "offset": offset,
        }
        data = await self._get_json(self.markets_url, params=params)
        if not isinstance(data, list):
            data = data.get("data", []) if isinstance(data, dict) else []
        rows = [row for row in data if isinstance(row, dict)]
        log.debug("gamma_markets_received", count=len(rows), offset=offset)
        return rows
