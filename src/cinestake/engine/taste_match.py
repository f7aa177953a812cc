"""Taste matching - pairwise agreement over resolved markets both users bet on.

Per shared market: same outcome +1 (+2 if both bets were contrarian), different -1.
score = points / markets_in_common. A pair is kept only while score > 0.6 over at
least 3 shared markets; otherwise any stored record is removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

import structlog

from cinestake.engine.odds import RATIO_PLACES
from cinestake.storage.bets import list_bettor_ids, list_resolved_positions
from cinestake.storage.taste_matches import delete_match, list_matches_for_user, ordered_pair, upsert_match
from cinestake.storage.users import get_usernames

log = structlog.get_logger(__name__)

MIN_SCORE = Decimal("0.6")
MIN_MARKETS_IN_COMMON = 3
SAME_OUTCOME_POINTS = 1
SHARED_CONTRARIAN_POINTS = 2
DIFFERENT_OUTCOME_POINTS = -1

# market_id -> (outcome_id, is_contrarian)
Positions = Mapping[str, tuple[str, bool]]


@dataclass
class TasteMatchResult:
    user_a: str
    user_b: str
    score: Decimal
    markets_in_common: int

    @property
    def qualifies(self) -> bool:
        return self.markets_in_common >= MIN_MARKETS_IN_COMMON and self.score > MIN_SCORE


@dataclass
class UserMatch:
    """A stored match seen from one user's side."""

    user_id: str
    username: str
    score: Decimal
    markets_in_common: int
    match_percentage: int
    strength: str


def calculate_taste_match(user_1: str, positions_1: Positions, user_2: str, positions_2: Positions) -> TasteMatchResult:
    """Score two users over the markets both hold a position in. Score is exact, not rounded."""
    a, b = ordered_pair(user_1, user_2)
    shared = set(positions_1) & set(positions_2)
    points = 0
    for market_id in shared:
        outcome_1, contrarian_1 = positions_1[market_id]
        outcome_2, contrarian_2 = positions_2[market_id]
        if outcome_1 != outcome_2:
            points += DIFFERENT_OUTCOME_POINTS
        elif contrarian_1 and contrarian_2:
            points += SHARED_CONTRARIAN_POINTS
        else:
            points += SAME_OUTCOME_POINTS
    n = len(shared)
    score = Decimal(points) / Decimal(n) if n else Decimal(0)
    return TasteMatchResult(user_a=a, user_b=b, score=score, markets_in_common=n)


def save_taste_match(conn: Any, result: TasteMatchResult) -> bool:
    """Store a qualifying pair or delete a stale one. Returns True if stored."""
    if result.qualifies:
        score = result.score.quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)
        upsert_match(conn, result.user_a, result.user_b, score, result.markets_in_common)
        return True
    delete_match(conn, result.user_a, result.user_b)
    return False


def update_user_taste_matches(conn: Any, user_id: str, others: Iterable[str] | None = None) -> int:
    """Recompute user_id against every other bettor (or the given users). Returns pairs stored."""
    candidates = [u for u in (others if others is not None else list_bettor_ids(conn)) if u != user_id]
    positions = list_resolved_positions(conn, [user_id, *candidates])
    stored = 0
    for other in candidates:
        result = calculate_taste_match(user_id, positions[user_id], other, positions[other])
        if save_taste_match(conn, result):
            stored += 1
    return stored


def recalculate_for_market(conn: Any, market_id: str) -> int:
    """Full pairwise refresh for everyone who bet on a market. Returns pairs evaluated."""
    participants = list_bettor_ids(conn, market_id)
    everyone = list_bettor_ids(conn)
    positions = list_resolved_positions(conn, everyone)
    seen: set[tuple[str, str]] = set()
    stored = 0
    for user_id in participants:
        for other in everyone:
            if other == user_id:
                continue
            pair = ordered_pair(user_id, other)
            if pair in seen:
                continue
            seen.add(pair)
            result = calculate_taste_match(user_id, positions[user_id], other, positions[other])
            if save_taste_match(conn, result):
                stored += 1
    log.info("taste_matches_recalculated", market_id=market_id, pairs=len(seen), stored=stored)
    return len(seen)


def match_percentage(score: Decimal) -> int:
    """Map a score onto 0-100 for display."""
    pct = ((Decimal(score) + 1) * 50).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(max(Decimal(0), min(Decimal(100), pct)))


def match_strength(score: Decimal) -> str:
    if score > Decimal("1.5"):
        return "Exceptional"
    if score > Decimal("1.0"):
        return "Strong"
    if score > Decimal("0.8"):
        return "Good"
    if score > Decimal("0.6"):
        return "Moderate"
    if score > Decimal("0.3"):
        return "Weak"
    return "Poor"


def get_user_matches(conn: Any, user_id: str, limit: int = 20) -> list[UserMatch]:
    """Stored matches for a user, best first."""
    matches = list_matches_for_user(conn, user_id, limit)
    others = [m.user_b if m.user_a == user_id else m.user_a for m in matches]
    names = get_usernames(conn, others)
    return [
        UserMatch(
            user_id=other,
            username=names.get(other, other),
            score=m.score,
            markets_in_common=m.markets_in_common,
            match_percentage=match_percentage(m.score),
            strength=match_strength(m.score),
        )
        for other, m in zip(others, matches)
    ]
