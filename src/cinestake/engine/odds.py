"""Popularity-based dynamic multiplier and contrarian classification.

multiplier = 1 - 0.3 * (popularity_ratio - 0.5), bounded to [0.7, 1.3].
A position holding 80% of the pool pays 0.91x, one holding 20% pays 1.09x.
With k = 0.3 the formula only spans [0.85, 1.15] over p in [0, 1], so the
[0.7, 1.3] bounds never bind. They are kept as stated rather than retuned.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping

from cinestake.errors import InvalidInput
from cinestake.models import Market

PENALTY_COEFFICIENT = Decimal("0.3")
NEUTRAL_RATIO = Decimal("0.5")
MIN_MULTIPLIER = Decimal("0.7")
MAX_MULTIPLIER = Decimal("1.3")
CONTRARIAN_THRESHOLD = Decimal("0.35")
RATIO_PLACES = Decimal("0.0001")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Exact Decimal for a ratio/amount. Floats go through str() so 0.8 stays 0.8."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise InvalidInput(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise InvalidInput(f"Not a finite number: {value!r}")
    return result


def _checked_ratio(popularity_ratio: Decimal | float | int | str) -> Decimal:
    p = to_decimal(popularity_ratio)
    if p < 0 or p > 1:
        raise InvalidInput(f"Invalid popularity ratio: {p}. Must be between 0 and 1.")
    return p


def popularity_ratio(outcome_stake: Decimal, total_pool: Decimal) -> Decimal:
    """Share of the pool on one outcome, four places. Empty pool -> 0."""
    if total_pool <= 0:
        return Decimal("0.0000")
    return (to_decimal(outcome_stake) / to_decimal(total_pool)).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def calculate_multiplier(popularity_ratio: Decimal | float | int | str) -> Decimal:
    """Dynamic odds multiplier for a popularity ratio in [0, 1]."""
    p = _checked_ratio(popularity_ratio)
    unbounded = Decimal(1) - PENALTY_COEFFICIENT * (p - NEUTRAL_RATIO)
    return max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, unbounded)).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def is_contrarian(popularity_ratio: Decimal | float | int | str) -> bool:
    """Strictly below 35% of staked value. Exactly 0.35 is not contrarian."""
    return _checked_ratio(popularity_ratio) < CONTRARIAN_THRESHOLD


def value_indicator(multiplier: Decimal) -> str:
    if multiplier > Decimal("1.05"):
        return "good"
    if multiplier < Decimal("0.95"):
        return "poor"
    return "fair"


def format_multiplier(multiplier: Decimal) -> str:
    return f"{multiplier:.2f}x"


@dataclass
class OutcomeOdds:
    """Current odds for one outcome of an open market."""

    outcome_id: str
    label: str
    total_stake: Decimal
    bet_count: int
    popularity_ratio: Decimal
    multiplier: Decimal

    @property
    def effective_odds(self) -> str:
        return format_multiplier(self.multiplier)


def outcome_odds(market: Market, stakes: Mapping[str, tuple[Decimal, int]]) -> list[OutcomeOdds]:
    """Per-outcome odds from outcome_id -> (total stake, bet count)."""
    total_pool = sum((s for s, _ in stakes.values()), Decimal(0))
    result = []
    for outcome in market.outcomes:
        stake, count = stakes.get(outcome.outcome_id, (Decimal(0), 0))
        ratio = popularity_ratio(stake, total_pool)
        result.append(
            OutcomeOdds(
                outcome_id=outcome.outcome_id,
                label=outcome.label,
                total_stake=stake,
                bet_count=count,
                popularity_ratio=ratio,
                multiplier=calculate_multiplier(ratio),
            )
        )
    return result
