"""Market and market_outcomes persistence. Status/resolution fields are written via conditional updates."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from cinestake.models import Market, MarketStatus, Outcome
from cinestake.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_MARKET_COLUMNS = [
    "market_id",
    "title",
    "movie_title",
    "imdb_id",
    "release_date",
    "market_type",
    "category",
    "threshold",
    "status",
    "blind_period_ends_at",
    "lock_at",
    "resolution_at",
    "resolved_outcome_id",
    "actual_value",
]
_OUTCOME_COLUMNS = ["outcome_id", "market_id", "label", "min_value", "max_value", "sort_order"]


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def upsert_market(conn: DuckDBPyConnection, market: Market) -> None:
    """Insert or replace a market and its outcomes."""
    conn.execute(
        """
        INSERT INTO markets (market_id, title, movie_title, imdb_id, release_date, market_type, category,
                             threshold, status, blind_period_ends_at, lock_at, resolution_at,
                             resolved_outcome_id, actual_value, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, CAST(? AS DECIMAL(14, 2)), ?, ?, ?, ?, ?, CAST(? AS DECIMAL(14, 2)), ?)
        ON CONFLICT (market_id) DO UPDATE SET
            title = excluded.title,
            movie_title = excluded.movie_title,
            imdb_id = excluded.imdb_id,
            release_date = excluded.release_date,
            market_type = excluded.market_type,
            category = excluded.category,
            threshold = excluded.threshold,
            status = excluded.status,
            blind_period_ends_at = excluded.blind_period_ends_at,
            lock_at = excluded.lock_at,
            resolution_at = excluded.resolution_at,
            resolved_outcome_id = excluded.resolved_outcome_id,
            actual_value = excluded.actual_value,
            updated_at = excluded.updated_at
        """,
        [
            market.market_id,
            market.title or market.movie_title,
            market.movie_title or market.title,
            market.imdb_id,
            market.release_date,
            market.market_type.value,
            market.category.value,
            _dec(market.threshold),
            market.status.value,
            market.blind_period_ends_at,
            market.lock_at,
            market.resolution_at,
            market.resolved_outcome_id,
            _dec(market.actual_value),
            now_ms(),
        ],
    )
    for outcome in market.outcomes:
        upsert_outcome(conn, outcome)


def upsert_outcome(conn: DuckDBPyConnection, outcome: Outcome) -> None:
    conn.execute(
        """
        INSERT INTO market_outcomes (outcome_id, market_id, label, min_value, max_value, sort_order)
        VALUES (?, ?, ?, CAST(? AS DECIMAL(14, 2)), CAST(? AS DECIMAL(14, 2)), ?)
        ON CONFLICT (outcome_id) DO UPDATE SET
            label = excluded.label,
            min_value = excluded.min_value,
            max_value = excluded.max_value,
            sort_order = excluded.sort_order
        """,
        [
            outcome.outcome_id,
            outcome.market_id,
            outcome.label,
            _dec(outcome.min_value),
            _dec(outcome.max_value),
            outcome.sort_order,
        ],
    )


def _outcomes_for(conn: DuckDBPyConnection, market_ids: Iterable[str]) -> dict[str, list[Outcome]]:
    ids = list(market_ids)
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"""
        SELECT {", ".join(_OUTCOME_COLUMNS)} FROM market_outcomes
        WHERE market_id IN ({placeholders})
        ORDER BY sort_order, outcome_id
        """,
        ids,
    ).fetchall()
    result: dict[str, list[Outcome]] = {mid: [] for mid in ids}
    for r in rows:
        o = Outcome(**dict(zip(_OUTCOME_COLUMNS, r)))
        result[o.market_id].append(o)
    return result


def _rows_to_markets(conn: DuckDBPyConnection, rows: list[tuple]) -> list[Market]:
    records = [dict(zip(_MARKET_COLUMNS, r)) for r in rows]
    outcomes = _outcomes_for(conn, [rec["market_id"] for rec in records])
    return [Market(**rec, outcomes=outcomes.get(rec["market_id"], [])) for rec in records]


def get_market(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    """Load a market with its outcomes, or None."""
    rows = conn.execute(
        f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets WHERE market_id = ?",
        [market_id],
    ).fetchall()
    if not rows:
        return None
    return _rows_to_markets(conn, rows)[0]


def list_markets(conn: DuckDBPyConnection, statuses: Iterable[MarketStatus] | None = None) -> list[Market]:
    """List markets, optionally filtered by status, ordered by release date."""
    sql = f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets"
    params: list[str] = []
    if statuses is not None:
        values = [s.value for s in statuses]
        if not values:
            return []
        sql += f" WHERE status IN ({', '.join('?' for _ in values)})"
        params.extend(values)
    sql += " ORDER BY release_date NULLS LAST, market_id"
    return _rows_to_markets(conn, conn.execute(sql, params).fetchall())


def list_scan_candidates(conn: DuckDBPyConnection) -> list[Market]:
    """Locked or resolving markets with no resolved outcome yet."""
    rows = conn.execute(
        f"""
        SELECT {', '.join(_MARKET_COLUMNS)} FROM markets
        WHERE status IN ('locked', 'resolving') AND resolved_outcome_id IS NULL
        ORDER BY release_date NULLS LAST, market_id
        """
    ).fetchall()
    return _rows_to_markets(conn, rows)


def update_status(
    conn: DuckDBPyConnection,
    market_id: str,
    new_status: MarketStatus,
    from_statuses: Iterable[MarketStatus],
) -> bool:
    """Move status only if the current status is one of from_statuses. Returns True if a row changed."""
    allowed = [s.value for s in from_statuses]
    rows = conn.execute(
        f"""
        UPDATE markets SET status = ?, updated_at = ?
        WHERE market_id = ? AND status IN ({', '.join('?' for _ in allowed)})
        RETURNING market_id
        """,
        [new_status.value, now_ms(), market_id, *allowed],
    ).fetchall()
    return bool(rows)


def mark_resolved(
    conn: DuckDBPyConnection,
    market_id: str,
    outcome_id: str,
    actual_value: Decimal | None,
    from_statuses: Iterable[MarketStatus],
) -> bool:
    """Conditional update to resolved. Only one concurrent caller can win this."""
    allowed = [s.value for s in from_statuses]
    ts = now_ms()
    rows = conn.execute(
        f"""
        UPDATE markets
        SET status = 'resolved', resolved_outcome_id = ?, actual_value = CAST(? AS DECIMAL(14, 2)),
            resolution_at = ?, updated_at = ?
        WHERE market_id = ? AND status IN ({', '.join('?' for _ in allowed)})
        RETURNING market_id
        """,
        [outcome_id, _dec(actual_value), ts, ts, market_id, *allowed],
    ).fetchall()
    return bool(rows)


def revert_to_locked(conn: DuckDBPyConnection, market_id: str) -> bool:
    """Undo a resolution on the market row: status back to locked, resolved fields cleared."""
    rows = conn.execute(
        """
        UPDATE markets
        SET status = 'locked', resolved_outcome_id = NULL, actual_value = NULL, updated_at = ?
        WHERE market_id = ? AND status = 'resolved'
        RETURNING market_id
        """,
        [now_ms(), market_id],
    ).fetchall()
    return bool(rows)
