"""Bet ledger persistence."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from cinestake.models import Bet, BetSnapshot

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_BET_SELECT = """
    SELECT bet_id, user_id, market_id, outcome_id, stake, placed_during_blind_period,
           popularity_ratio_at_bet, is_contrarian, dynamic_multiplier, actual_payout, created_at
    FROM bets
"""


def _row_to_bet(r: tuple) -> Bet:
    return Bet(
        bet_id=r[0],
        user_id=r[1],
        market_id=r[2],
        outcome_id=r[3],
        stake=r[4],
        snapshot=BetSnapshot(
            placed_during_blind_period=r[5],
            popularity_ratio=r[6],
            is_contrarian=r[7],
            dynamic_multiplier=r[8],
        ),
        actual_payout=r[9],
        created_at=r[10],
    )


def insert_bet(conn: DuckDBPyConnection, bet: Bet) -> None:
    snap = bet.snapshot
    conn.execute(
        """
        INSERT INTO bets (bet_id, user_id, market_id, outcome_id, stake, placed_during_blind_period,
                          popularity_ratio_at_bet, is_contrarian, dynamic_multiplier, created_at)
        VALUES (?, ?, ?, ?, CAST(? AS DECIMAL(12, 2)), ?, CAST(? AS DECIMAL(5, 4)), ?, CAST(? AS DECIMAL(5, 4)), ?)
        """,
        [
            bet.bet_id,
            bet.user_id,
            bet.market_id,
            bet.outcome_id,
            str(bet.stake),
            snap.placed_during_blind_period,
            str(snap.popularity_ratio),
            snap.is_contrarian,
            str(snap.dynamic_multiplier),
            bet.created_at,
        ],
    )


def get_bet(conn: DuckDBPyConnection, bet_id: str) -> Bet | None:
    row = conn.execute(_BET_SELECT + " WHERE bet_id = ?", [bet_id]).fetchone()
    return _row_to_bet(row) if row else None


def get_user_bet(conn: DuckDBPyConnection, user_id: str, market_id: str) -> Bet | None:
    row = conn.execute(_BET_SELECT + " WHERE user_id = ? AND market_id = ?", [user_id, market_id]).fetchone()
    return _row_to_bet(row) if row else None


def list_bets_for_market(conn: DuckDBPyConnection, market_id: str) -> list[Bet]:
    """All bets on a market in placement order."""
    rows = conn.execute(_BET_SELECT + " WHERE market_id = ? ORDER BY created_at, bet_id", [market_id]).fetchall()
    return [_row_to_bet(r) for r in rows]


def outcome_stakes(conn: DuckDBPyConnection, market_id: str) -> dict[str, tuple[Decimal, int]]:
    """outcome_id -> (total stake, bet count) for outcomes that have bets."""
    rows = conn.execute(
        "SELECT outcome_id, SUM(stake), COUNT(*) FROM bets WHERE market_id = ? GROUP BY outcome_id",
        [market_id],
    ).fetchall()
    return {r[0]: (Decimal(r[1]), int(r[2])) for r in rows}


def set_payout(conn: DuckDBPyConnection, bet_id: str, payout: Decimal) -> None:
    conn.execute(
        "UPDATE bets SET actual_payout = CAST(? AS DECIMAL(12, 2)) WHERE bet_id = ?",
        [str(payout), bet_id],
    )


def list_paid_bets(conn: DuckDBPyConnection, market_id: str) -> list[Bet]:
    rows = conn.execute(
        _BET_SELECT + " WHERE market_id = ? AND actual_payout IS NOT NULL ORDER BY created_at, bet_id",
        [market_id],
    ).fetchall()
    return [_row_to_bet(r) for r in rows]


def clear_payouts(conn: DuckDBPyConnection, market_id: str) -> None:
    conn.execute("UPDATE bets SET actual_payout = NULL WHERE market_id = ?", [market_id])


def list_bettor_ids(conn: DuckDBPyConnection, market_id: str | None = None) -> list[str]:
    """Distinct users who bet on market_id, or on any market when market_id is None."""
    if market_id is None:
        rows = conn.execute("SELECT DISTINCT user_id FROM bets ORDER BY user_id").fetchall()
    else:
        rows = conn.execute(
            "SELECT DISTINCT user_id FROM bets WHERE market_id = ? ORDER BY user_id", [market_id]
        ).fetchall()
    return [r[0] for r in rows]


def list_resolved_positions(conn: DuckDBPyConnection, user_ids: list[str]) -> dict[str, dict[str, tuple[str, bool]]]:
    """user_id -> {market_id: (outcome_id, is_contrarian)} over resolved markets only."""
    if not user_ids:
        return {}
    rows = conn.execute(
        f"""
        SELECT b.user_id, b.market_id, b.outcome_id, b.is_contrarian
        FROM bets b JOIN markets m ON b.market_id = m.market_id
        WHERE m.status = 'resolved' AND b.user_id IN ({', '.join('?' for _ in user_ids)})
        """,
        user_ids,
    ).fetchall()
    result: dict[str, dict[str, tuple[str, bool]]] = {uid: {} for uid in user_ids}
    for user_id, market_id, outcome_id, contrarian in rows:
        result[user_id][market_id] = (outcome_id, bool(contrarian))
    return result
