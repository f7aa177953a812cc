"""DuckDB connection and schema init."""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS trendsetter_event_seq START 1;

CREATE TABLE IF NOT EXISTS users (
    user_id         VARCHAR PRIMARY KEY,
    username        VARCHAR NOT NULL,
    balance         DECIMAL(12, 2) NOT NULL DEFAULT 100.00,
    created_at      BIGINT
);

CREATE TABLE IF NOT EXISTS markets (
    market_id               VARCHAR PRIMARY KEY,
    title                   VARCHAR NOT NULL,
    movie_title             VARCHAR NOT NULL,
    imdb_id                 VARCHAR,
    release_date            DATE,
    market_type             VARCHAR NOT NULL,
    category                VARCHAR NOT NULL,
    threshold               DECIMAL(14, 2),
    status                  VARCHAR NOT NULL DEFAULT 'pending',
    blind_period_ends_at    BIGINT,
    lock_at                 BIGINT,
    resolution_at           BIGINT,
    resolved_outcome_id     VARCHAR,
    actual_value            DECIMAL(14, 2),
    updated_at              BIGINT
);

CREATE TABLE IF NOT EXISTS market_outcomes (
    outcome_id      VARCHAR PRIMARY KEY,
    market_id       VARCHAR NOT NULL,
    label           VARCHAR NOT NULL,
    min_value       DECIMAL(14, 2),
    max_value       DECIMAL(14, 2),
    sort_order      INTEGER NOT NULL DEFAULT 0
);

-- One bet per (user, market). Snapshot columns are frozen at placement
CREATE TABLE IF NOT EXISTS bets (
    bet_id                      VARCHAR PRIMARY KEY,
    user_id                     VARCHAR NOT NULL,
    market_id                   VARCHAR NOT NULL,
    outcome_id                  VARCHAR NOT NULL,
    stake                       DECIMAL(12, 2) NOT NULL,
    placed_during_blind_period  BOOLEAN NOT NULL DEFAULT FALSE,
    popularity_ratio_at_bet     DECIMAL(5, 4) NOT NULL,
    is_contrarian               BOOLEAN NOT NULL DEFAULT FALSE,
    dynamic_multiplier          DECIMAL(5, 4) NOT NULL,
    actual_payout               DECIMAL(12, 2),
    created_at                  BIGINT NOT NULL,
    UNIQUE (user_id, market_id)
);

CREATE TABLE IF NOT EXISTS resolutions (
    market_id       VARCHAR PRIMARY KEY,
    resolved_by     VARCHAR NOT NULL,
    data_source     VARCHAR NOT NULL,
    raw_data        JSON,
    notes           VARCHAR,
    resolved_at     BIGINT NOT NULL
);

-- Append-only points ledger. A user's score is the sum over rows
CREATE TABLE IF NOT EXISTS trendsetter_events (
    event_id        BIGINT PRIMARY KEY DEFAULT nextval('trendsetter_event_seq'),
    user_id         VARCHAR NOT NULL,
    bet_id          VARCHAR NOT NULL,
    market_id       VARCHAR NOT NULL,
    event_type      VARCHAR NOT NULL,
    points          INTEGER NOT NULL,
    created_at      BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS taste_matches (
    user_a              VARCHAR NOT NULL,
    user_b              VARCHAR NOT NULL,
    score               DECIMAL(6, 4) NOT NULL,
    markets_in_common   INTEGER NOT NULL,
    last_updated        BIGINT NOT NULL,
    PRIMARY KEY (user_a, user_b)
);

"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Pass ":memory:" for a throwaway database."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """Run the block as one unit of work: commit on success, roll back on any error."""
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def now_ms() -> int:
    return int(time.time() * 1000)
