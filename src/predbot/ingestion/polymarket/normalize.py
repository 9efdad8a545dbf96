"""Polymarket CLOB payloads -> canonical ClobMarket / Market, plus outcome token matching."""

from __future__ import annotations

from typing import Any

from predbot.models import ClobMarket, ClobOrderBook, ClobToken, Market, PriceLevel, parse_timestamp_ms

YES_LABELS = ("yes", "true")
NO_LABELS = ("no", "false")


def to_float(s: str | float | None) -> float:
    if s is None:
        return 0.0
    try:
        return float(s)
    except (TypeError, ValueError):
        return 0.0


def normalize_condition_id(s: str) -> str:
    """Canonicalize condition_id for matching (Gamma and CLOB use 0x + 64 hex)."""
    s = (s or "").strip()
    if not s:
        return s
    if s.startswith("0x"):
        return "0x" + s[2:].lower()
    return s.lower() if len(s) == 64 and all(c in "0123456789abcdefABCDEF" for c in s) else s


def match_outcome_tokens(tokens: list[ClobToken]) -> tuple[str, str]:
    """Return (yes_token_id, no_token_id) by case-insensitive substring match on outcome labels.

    "yes"/"true" marks the yes side, "no"/"false" the no side; first match wins and
    unmatched tokens are ignored. Only binary markets are supported: labels like
    "Yes-ish"/"Maybe" can mismatch, and N-ary outcome sets usually resolve one side
    or neither. Empty string means unresolved.
    """
    yes_id = ""
    no_id = ""
    for token in tokens:
        label = (token.outcome or "").lower()
        if not yes_id and any(word in label for word in YES_LABELS):
            yes_id = token.token_id
        # A single label may match both sides
        if not no_id and any(word in label for word in NO_LABELS):
            no_id = token.token_id
    return yes_id, no_id


def _parse_levels(raw_levels: Any) -> list[PriceLevel]:
    levels = []
    for lev in raw_levels or []:
        if not isinstance(lev, dict):
            continue
        p, s = to_float(lev.get("price")), to_float(lev.get("size"))
        if 0 <= p <= 1 and s >= 0:
            levels.append(PriceLevel(price=p, size=s))
    return levels


def parse_order_book(raw: dict[str, Any] | None) -> ClobOrderBook | None:
    """CLOB book object ('bids'/'asks' or 'buys'/'sells') -> ClobOrderBook."""
    if not isinstance(raw, dict):
        return None
    bids = _parse_levels(raw.get("bids") or raw.get("buys"))
    asks = _parse_levels(raw.get("asks") or raw.get("sells"))
    if not bids and not asks:
        return None
    return ClobOrderBook(bids=bids, asks=asks)


def parse_clob_market(raw: dict[str, Any]) -> ClobMarket | None:
    """CLOB /markets object -> ClobMarket. None when it carries no condition id."""
    condition_id = normalize_condition_id(str(raw.get("condition_id") or raw.get("conditionId") or ""))
    if not condition_id:
        return None
    tokens = [
        ClobToken(token_id=str(t.get("token_id") or ""), outcome=str(t.get("outcome") or ""))
        for t in raw.get("tokens") or []
        if isinstance(t, dict) and t.get("token_id")
    ]
    volume = raw.get("volume24h")
    liquidity = raw.get("liquidity")
    return ClobMarket(
        condition_id=condition_id,
        question=raw.get("question") or "",
        category=raw.get("category"),
        end_date_iso=raw.get("end_date_iso"),
        active=bool(raw.get("active", True)),
        archived=bool(raw.get("archived", False)),
        tokens=tokens,
        order_book=parse_order_book(raw.get("orderBook") or raw.get("order_book")),
        volume_24h=to_float(volume) if volume is not None else None,
        liquidity=to_float(liquidity) if liquidity is not None else None,
    )


def clob_market_to_market(clob: ClobMarket) -> Market | None:
    """Derive a Market straight from the CLOB listing.

    The listing already carries token ids but no volume, liquidity or 24h change;
    those default to zero and prices stay zero. None unless both sides resolve.
    """
    yes_id, no_id = match_outcome_tokens(clob.tokens)
    if not yes_id or not no_id:
        return None
    question = clob.question or clob.condition_id
    return Market(
        natural_id=clob.condition_id,
        condition_id=clob.condition_id,
        question=question,
        description=f"{clob.category} - {question}" if clob.category else question,
        end_ts=parse_timestamp_ms(clob.end_date_iso),
        yes_token_id=yes_id,
        no_token_id=no_id,
        is_active=clob.active,
        is_archived=clob.archived,
    )
