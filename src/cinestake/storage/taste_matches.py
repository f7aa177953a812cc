"""Taste match persistence. Pairs are stored once, ordered so user_a < user_b."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from cinestake.models import TasteMatch
from cinestake.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def ordered_pair(user_1: str, user_2: str) -> tuple[str, str]:
    return (user_1, user_2) if user_1 < user_2 else (user_2, user_1)


def upsert_match(conn: DuckDBPyConnection, user_1: str, user_2: str, score: Decimal, markets_in_common: int) -> None:
    a, b = ordered_pair(user_1, user_2)
    conn.execute(
        """
        INSERT INTO taste_matches (user_a, user_b, score, markets_in_common, last_updated)
        VALUES (?, ?, CAST(? AS DECIMAL(6, 4)), ?, ?)
        ON CONFLICT (user_a, user_b) DO UPDATE SET
            score = excluded.score,
            markets_in_common = excluded.markets_in_common,
            last_updated = excluded.last_updated
        """,
        [a, b, str(score), markets_in_common, now_ms()],
    )


def delete_match(conn: DuckDBPyConnection, user_1: str, user_2: str) -> None:
    a, b = ordered_pair(user_1, user_2)
    conn.execute("DELETE FROM taste_matches WHERE user_a = ? AND user_b = ?", [a, b])


def get_match(conn: DuckDBPyConnection, user_1: str, user_2: str) -> TasteMatch | None:
    a, b = ordered_pair(user_1, user_2)
    row = conn.execute(
        "SELECT user_a, user_b, score, markets_in_common, last_updated FROM taste_matches WHERE user_a = ? AND user_b = ?",
        [a, b],
    ).fetchone()
    if not row:
        return None
    return TasteMatch(user_a=row[0], user_b=row[1], score=row[2], markets_in_common=row[3], last_updated=row[4])


def list_matches_for_user(conn: DuckDBPyConnection, user_id: str, limit: int = 20) -> list[TasteMatch]:
    rows = conn.execute(
        """
        SELECT user_a, user_b, score, markets_in_common, last_updated FROM taste_matches
        WHERE user_a = ? OR user_b = ?
        ORDER BY score DESC, markets_in_common DESC
        LIMIT ?
        """,
        [user_id, user_id, limit],
    ).fetchall()
    return [
        TasteMatch(user_a=r[0], user_b=r[1], score=r[2], markets_in_common=r[3], last_updated=r[4]) for r in rows
    ]


def count_matches(conn: DuckDBPyConnection) -> int:
    return int(conn.execute("SELECT COUNT(*) FROM taste_matches").fetchone()[0])
