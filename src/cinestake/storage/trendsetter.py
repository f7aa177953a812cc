"""Trendsetter points ledger - append-only, event sourcing."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cinestake.models import TrendsetterEvent, TrendsetterEventType
from cinestake.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_event(conn: DuckDBPyConnection, event: TrendsetterEvent) -> int:
    """Append one ledger row and return its event_id. Rows are never updated or deleted."""
    row = conn.execute(
        """
        INSERT INTO trendsetter_events (user_id, bet_id, market_id, event_type, points, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING event_id
        """,
        [
            event.user_id,
            event.bet_id,
            event.market_id,
            event.event_type.value,
            event.points,
            event.created_at if event.created_at is not None else now_ms(),
        ],
    ).fetchone()
    return int(row[0])


def list_events(
    conn: DuckDBPyConnection,
    user_id: str | None = None,
    bet_id: str | None = None,
    limit: int | None = None,
) -> list[TrendsetterEvent]:
    """Events newest first, optionally filtered by user and/or bet."""
    conditions = ["1=1"]
    params: list[object] = []
    if user_id is not None:
        conditions.append("user_id = ?")
        params.append(user_id)
    if bet_id is not None:
        conditions.append("bet_id = ?")
        params.append(bet_id)
    sql = f"""
        SELECT event_id, user_id, bet_id, market_id, event_type, points, created_at
        FROM trendsetter_events
        WHERE {" AND ".join(conditions)}
        ORDER BY created_at DESC, event_id DESC
    """
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [
        TrendsetterEvent(
            event_id=r[0],
            user_id=r[1],
            bet_id=r[2],
            market_id=r[3],
            event_type=TrendsetterEventType(r[4]),
            points=r[5],
            created_at=r[6],
        )
        for r in rows
    ]


def points_by_type(conn: DuckDBPyConnection, user_id: str) -> dict[TrendsetterEventType, tuple[int, int]]:
    """event_type -> (event count, points) for a user."""
    rows = conn.execute(
        "SELECT event_type, COUNT(*), SUM(points) FROM trendsetter_events WHERE user_id = ? GROUP BY event_type",
        [user_id],
    ).fetchall()
    return {TrendsetterEventType(r[0]): (int(r[1]), int(r[2])) for r in rows}


def ranked_totals(conn: DuckDBPyConnection, limit: int | None = None) -> list[tuple[str, int]]:
    """(user_id, total points) ordered by points desc, user_id asc."""
    sql = """
        SELECT user_id, SUM(points) AS total
        FROM trendsetter_events
        GROUP BY user_id
        ORDER BY total DESC, user_id
    """
    params: list[object] = []
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return [(r[0], int(r[1])) for r in conn.execute(sql, params).fetchall()]
