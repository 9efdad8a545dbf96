"""Market persistence: upsert by natural id, active listing, point lookups."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, Protocol

import duckdb
import structlog

from predbot.errors import PersistenceFailure
from predbot.models import Market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

_COLUMNS = [
    "natural_id",
    "id",
    "condition_id",
    "question",
    "description",
    "end_ts",
    "volume_24h",
    "liquidity",
    "yes_price",
    "no_price",
    "price_change_24h",
    "yes_token_id",
    "no_token_id",
    "clob_token_ids",
    "outcomes",
    "outcome_prices",
    "last_updated",
    "is_active",
    "is_archived",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM markets"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _row_to_market(row: tuple[Any, ...]) -> Market:
    data = dict(zip(_COLUMNS, row))
    data["description"] = data["description"] or ""
    data["yes_token_id"] = data["yes_token_id"] or ""
    data["no_token_id"] = data["no_token_id"] or ""
    return Market(**data)


def upsert_market(conn: DuckDBPyConnection, market: Market, now_ms: int | None = None) -> str:
    """Insert or update a market keyed by natural_id. Returns the row id.

    The row id is kept stable across updates; last_updated is always rewritten.
    """
    now_ms = _now_ms() if now_ms is None else now_ms
    new_id = market.id or uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO markets (natural_id, id, condition_id, question, description, end_ts,
            volume_24h, liquidity, yes_price, no_price, price_change_24h, yes_token_id,
            no_token_id, clob_token_ids, outcomes, outcome_prices, last_updated, is_active, is_archived)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (natural_id) DO UPDATE SET
            condition_id = excluded.condition_id,
            question = excluded.question,
            description = excluded.description,
            end_ts = excluded.end_ts,
            volume_24h = excluded.volume_24h,
            liquidity = excluded.liquidity,
            yes_price = excluded.yes_price,
            no_price = excluded.no_price,
            price_change_24h = excluded.price_change_24h,
            yes_token_id = excluded.yes_token_id,
            no_token_id = excluded.no_token_id,
            clob_token_ids = excluded.clob_token_ids,
            outcomes = excluded.outcomes,
            outcome_prices = excluded.outcome_prices,
            last_updated = excluded.last_updated,
            is_active = excluded.is_active,
            is_archived = excluded.is_archived
        """,
        [
            market.natural_id,
            new_id,
            market.condition_id,
            market.question,
            market.description,
            market.end_ts,
            market.volume_24h,
            market.liquidity,
            market.yes_price,
            market.no_price,
            market.price_change_24h,
            market.yes_token_id,
            market.no_token_id,
            market.clob_token_ids,
            market.outcomes,
            market.outcome_prices,
            now_ms,
            market.is_active,
            market.is_archived,
        ],
    )
    row = conn.execute("SELECT id FROM markets WHERE natural_id = ?", [market.natural_id]).fetchone()
    return row[0]


def list_active_markets(conn: DuckDBPyConnection, limit: int) -> list[Market]:
    """Active, non-archived markets, most recently ending first."""
    rows = conn.execute(
        f"{_SELECT} WHERE is_active AND NOT is_archived ORDER BY end_ts DESC NULLS LAST, natural_id LIMIT ?",
        [limit],
    ).fetchall()
    return [_row_to_market(r) for r in rows]


def list_markets(conn: DuckDBPyConnection, active_only: bool = False) -> list[Market]:
    """All markets (or active only), most recently ending first."""
    where = " WHERE is_active AND NOT is_archived" if active_only else ""
    rows = conn.execute(f"{_SELECT}{where} ORDER BY end_ts DESC NULLS LAST, natural_id").fetchall()
    return [_row_to_market(r) for r in rows]


def get_market_by_natural_id(conn: DuckDBPyConnection, natural_id: str) -> Market | None:
    row = conn.execute(f"{_SELECT} WHERE natural_id = ?", [natural_id]).fetchone()
    return _row_to_market(row) if row else None


def get_market_by_id(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    row = conn.execute(f"{_SELECT} WHERE id = ?", [market_id]).fetchone()
    return _row_to_market(row) if row else None


def get_market_by_token_id(conn: DuckDBPyConnection, token_id: str) -> Market | None:
    """Market whose yes or no token matches token_id."""
    if not token_id:
        return None
    row = conn.execute(
        f"{_SELECT} WHERE yes_token_id = ? OR no_token_id = ? LIMIT 1",
        [token_id, token_id],
    ).fetchone()
    return _row_to_market(row) if row else None


def mark_all_stale(conn: DuckDBPyConnection) -> int:
    """Zero last_updated on every row so the next read refetches. Returns row count."""
    count = conn.execute("SELECT count(*) FROM markets").fetchone()[0]
    conn.execute("UPDATE markets SET last_updated = 0")
    return int(count)


class MarketStore(Protocol):
    """Persistent market store consumed by the market services."""

    async def upsert(self, market: Market) -> str: ...
    async def list_active(self, limit: int) -> list[Market]: ...
    async def get_by_natural_id(self, natural_id: str) -> Market | None: ...
    async def get_by_id(self, market_id: str) -> Market | None: ...
    async def get_by_token_id(self, token_id: str) -> Market | None: ...
    async def mark_all_stale(self) -> int: ...


class DuckDBMarketStore:
    """MarketStore over a single DuckDB connection.

    Calls run inline on the event loop; DuckDB statements against the local
    file are short and the connection is not shared across threads.
    """

    def __init__(self, conn: DuckDBPyConnection, clock: Callable[[], int] | None = None) -> None:
        self.conn = conn
        self._clock = clock or _now_ms

    async def upsert(self, market: Market) -> str:
        try:
            return upsert_market(self.conn, market, now_ms=self._clock())
        except duckdb.Error as e:
            raise PersistenceFailure(market.natural_id, str(e)) from e

    async def list_active(self, limit: int) -> list[Market]:
        return list_active_markets(self.conn, limit)

    async def get_by_natural_id(self, natural_id: str) -> Market | None:
        return get_market_by_natural_id(self.conn, natural_id)

    async def get_by_id(self, market_id: str) -> Market | None:
        return get_market_by_id(self.conn, market_id)

    async def get_by_token_id(self, token_id: str) -> Market | None:
        return get_market_by_token_id(self.conn, token_id)

    async def mark_all_stale(self) -> int:
        count = mark_all_stale(self.conn)
        log.info("markets_marked_stale", count=count)
        return count
