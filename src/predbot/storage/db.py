"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Market cache: one row per natural id, rewritten on every reconciliation pass
CREATE TABLE IF NOT EXISTS markets (
    natural_id      VARCHAR PRIMARY KEY,
    id              VARCHAR NOT NULL,
    condition_id    VARCHAR,
    question        VARCHAR NOT NULL,
    description     VARCHAR,
    end_ts          BIGINT,
    volume_24h      DOUBLE NOT NULL DEFAULT 0,
    liquidity       DOUBLE NOT NULL DEFAULT 0,
    yes_price       DOUBLE NOT NULL DEFAULT 0,
    no_price        DOUBLE NOT NULL DEFAULT 0,
    price_change_24h DOUBLE,
    yes_token_id    VARCHAR NOT NULL DEFAULT '',
    no_token_id     VARCHAR NOT NULL DEFAULT '',
    clob_token_ids  VARCHAR,
    outcomes        VARCHAR,
    outcome_prices  VARCHAR,
    last_updated    BIGINT NOT NULL,
    is_active       BOOLEAN NOT NULL DEFAULT TRUE,
    is_archived     BOOLEAN NOT NULL DEFAULT FALSE
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Pass ":memory:" for a throwaway database (tests)."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
