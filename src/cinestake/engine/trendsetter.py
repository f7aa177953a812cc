"""Trendsetter scoring - points for early and contrarian conviction.

Placement:  +1 blind_bet, +2 contrarian_bet
Resolution: +2 correct_blind, +5 correct_contrarian (winners only)

A bet can earn each event type once, so at most 10 points. The score is the
sum over the append-only ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from cinestake.models import Bet, TrendsetterEvent, TrendsetterEventType
from cinestake.storage.trendsetter import append_event, list_events, points_by_type, ranked_totals
from cinestake.storage.users import get_usernames

log = structlog.get_logger(__name__)

EVENT_POINTS: dict[TrendsetterEventType, int] = {
    TrendsetterEventType.BLIND_BET: 1,
    TrendsetterEventType.CONTRARIAN_BET: 2,
    TrendsetterEventType.CORRECT_BLIND: 2,
    TrendsetterEventType.CORRECT_CONTRARIAN: 5,
}
MAX_POINTS_PER_BET = 10


@dataclass(frozen=True)
class Badge:
    key: str
    name: str
    description: str
    event_types: tuple[TrendsetterEventType, ...]
    required: int


BADGES: tuple[Badge, ...] = (
    Badge("early_bird", "Early Bird", "Placed 10 blind period bets", (TrendsetterEventType.BLIND_BET,), 10),
    Badge("maverick", "Maverick", "Placed 10 contrarian bets", (TrendsetterEventType.CONTRARIAN_BET,), 10),
    Badge(
        "oracle",
        "Oracle",
        "20 correct blind or contrarian predictions",
        (TrendsetterEventType.CORRECT_BLIND, TrendsetterEventType.CORRECT_CONTRARIAN),
        20,
    ),
    Badge(
        "contrarian_legend",
        "Contrarian Legend",
        "25 correct contrarian predictions",
        (TrendsetterEventType.CORRECT_CONTRARIAN,),
        25,
    ),
    Badge("blind_faith", "Blind Faith", "15 correct blind predictions", (TrendsetterEventType.CORRECT_BLIND,), 15),
)


@dataclass
class TrendsetterScore:
    user_id: str
    total_points: int = 0
    blind_bets: int = 0
    contrarian_bets: int = 0
    correct_blind: int = 0
    correct_contrarian: int = 0
    points_by_type: dict[str, int] = field(default_factory=dict)
    badges: list[Badge] = field(default_factory=list)

    @property
    def correct_predictions(self) -> int:
        return self.correct_blind + self.correct_contrarian

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_points": self.total_points,
            "breakdown": {
                "blind_bets": self.blind_bets,
                "contrarian_bets": self.contrarian_bets,
                "correct_blind": self.correct_blind,
                "correct_contrarian": self.correct_contrarian,
            },
            "points_by_type": dict(self.points_by_type),
            "badges": [{"key": b.key, "name": b.name, "description": b.description} for b in self.badges],
        }


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    username: str
    total_points: int


def record_event(
    conn: Any,
    bet: Bet,
    event_type: TrendsetterEventType,
    created_at: int | None = None,
) -> TrendsetterEvent | None:
    """Append one event for a bet. Returns None if the bet already has this event
    type or is at the per-bet cap."""
    existing = list_events(conn, bet_id=bet.bet_id)
    if any(e.event_type == event_type for e in existing):
        log.debug("trendsetter_event_exists", bet_id=bet.bet_id, event_type=event_type.value)
        return None
    already = sum(e.points for e in existing)
    points = min(EVENT_POINTS[event_type], MAX_POINTS_PER_BET - already)
    if points <= 0:
        return None
    event = TrendsetterEvent(
        user_id=bet.user_id,
        bet_id=bet.bet_id,
        market_id=bet.market_id,
        event_type=event_type,
        points=points,
        created_at=created_at,
    )
    event.event_id = append_event(conn, event)
    return event


def award_placement_points(conn: Any, bet: Bet) -> list[TrendsetterEvent]:
    """Points for a newly placed bet from its frozen snapshot."""
    awarded = []
    if bet.snapshot.placed_during_blind_period:
        awarded.append(record_event(conn, bet, TrendsetterEventType.BLIND_BET, bet.created_at))
    if bet.snapshot.is_contrarian:
        awarded.append(record_event(conn, bet, TrendsetterEventType.CONTRARIAN_BET, bet.created_at))
    return [e for e in awarded if e is not None]


def award_resolution_points(conn: Any, bet: Bet, won: bool) -> list[TrendsetterEvent]:
    """Points for a winning bet that was blind and/or contrarian. Losers earn nothing."""
    if not won:
        return []
    awarded = []
    if bet.snapshot.placed_during_blind_period:
        awarded.append(record_event(conn, bet, TrendsetterEventType.CORRECT_BLIND))
    if bet.snapshot.is_contrarian:
        awarded.append(record_event(conn, bet, TrendsetterEventType.CORRECT_CONTRARIAN))
    return [e for e in awarded if e is not None]


def estimate_resolution_points(bet: Bet) -> int:
    """Points a winning bet would earn at resolution (for previews)."""
    points = 0
    if bet.snapshot.placed_during_blind_period:
        points += EVENT_POINTS[TrendsetterEventType.CORRECT_BLIND]
    if bet.snapshot.is_contrarian:
        points += EVENT_POINTS[TrendsetterEventType.CORRECT_CONTRARIAN]
    return points


def get_badges(counts: dict[TrendsetterEventType, int]) -> list[Badge]:
    """Badges earned for the given event counts."""
    earned = []
    for badge in BADGES:
        have = sum(counts.get(t, 0) for t in badge.event_types)
        if have >= badge.required:
            earned.append(badge)
    return earned


def calculate_score(conn: Any, user_id: str) -> TrendsetterScore:
    by_type = points_by_type(conn, user_id)
    counts = {t: c for t, (c, _) in by_type.items()}
    return TrendsetterScore(
        user_id=user_id,
        total_points=sum(p for _, p in by_type.values()),
        blind_bets=counts.get(TrendsetterEventType.BLIND_BET, 0),
        contrarian_bets=counts.get(TrendsetterEventType.CONTRARIAN_BET, 0),
        correct_blind=counts.get(TrendsetterEventType.CORRECT_BLIND, 0),
        correct_contrarian=counts.get(TrendsetterEventType.CORRECT_CONTRARIAN, 0),
        points_by_type={t.value: p for t, (_, p) in by_type.items()},
        badges=get_badges(counts),
    )


def get_leaderboard(conn: Any, limit: int = 10) -> list[LeaderboardEntry]:
    """Top users by total points. Ties share a rank."""
    totals = ranked_totals(conn, limit)
    names = get_usernames(conn, [uid for uid, _ in totals])
    entries = []
    prev_points: int | None = None
    rank = 0
    for position, (user_id, points) in enumerate(totals, start=1):
        if points != prev_points:
            rank = position
            prev_points = points
        entries.append(LeaderboardEntry(rank=rank, user_id=user_id, username=names.get(user_id, user_id), total_points=points))
    return entries


def get_user_rank(conn: Any, user_id: str) -> int | None:
    """1-based rank among users with any points, or None if the user has none."""
    totals = ranked_totals(conn)
    mine = next((p for uid, p in totals if uid == user_id), None)
    if mine is None:
        return None
    return 1 + sum(1 for _, p in totals if p > mine)


def get_recent_events(conn: Any, user_id: str, limit: int = 10) -> list[TrendsetterEvent]:
    return list_events(conn, user_id=user_id, limit=limit)
