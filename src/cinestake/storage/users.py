"""User balances. Amounts are DECIMAL(12, 2) on both sides of every update."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from cinestake.errors import NotFound
from cinestake.models import User
from cinestake.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def upsert_user(conn: DuckDBPyConnection, user: User) -> None:
    conn.execute(
        """
        INSERT INTO users (user_id, username, balance, created_at)
        VALUES (?, ?, CAST(? AS DECIMAL(12, 2)), ?)
        ON CONFLICT (user_id) DO UPDATE SET username = excluded.username, balance = excluded.balance
        """,
        [user.user_id, user.username or user.user_id, str(user.balance), now_ms()],
    )


def get_user(conn: DuckDBPyConnection, user_id: str) -> User | None:
    row = conn.execute(
        "SELECT user_id, username, balance FROM users WHERE user_id = ?", [user_id]
    ).fetchone()
    if not row:
        return None
    return User(user_id=row[0], username=row[1], balance=row[2])


def get_usernames(conn: DuckDBPyConnection, user_ids: list[str]) -> dict[str, str]:
    if not user_ids:
        return {}
    rows = conn.execute(
        f"SELECT user_id, username FROM users WHERE user_id IN ({', '.join('?' for _ in user_ids)})",
        user_ids,
    ).fetchall()
    return {r[0]: r[1] for r in rows}


def adjust_balance(conn: DuckDBPyConnection, user_id: str, delta: Decimal) -> Decimal:
    """Add delta (may be negative) to the user's balance; return the new balance."""
    row = conn.execute(
        """
        UPDATE users SET balance = balance + CAST(? AS DECIMAL(12, 2))
        WHERE user_id = ?
        RETURNING balance
        """,
        [str(delta), user_id],
    ).fetchone()
    if row is None:
        raise NotFound(f"User {user_id} not found")
    return row[0]
