"""Market and Outcome - canonical entities."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class MarketStatus(str, Enum):
    PENDING = "pending"
    BLIND = "blind"
    OPEN = "open"
    LOCKED = "locked"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class MarketType(str, Enum):
    BINARY = "binary"
    RANGE_BRACKET = "range_bracket"


class MarketCategory(str, Enum):
    """Which external figure settles the market."""

    CRITIC_SCORE = "critic_score"
    BOX_OFFICE = "box_office"
    BOX_OFFICE_RANKING = "box_office_ranking"


BETTING_STATUSES = frozenset({MarketStatus.BLIND, MarketStatus.OPEN})
RESOLVABLE_STATUSES = frozenset({MarketStatus.LOCKED, MarketStatus.OPEN})


class Outcome(BaseModel):
    """Single outcome of a market. Range outcomes cover [min_value, max_value)."""

    outcome_id: str
    market_id: str
    label: str
    min_value: Decimal | None = None
    max_value: Decimal | None = None  # None = unbounded above
    sort_order: int = 0

    @property
    def is_yes(self) -> bool:
        return "yes" in self.label.lower()

    @property
    def is_no(self) -> bool:
        return "no" in self.label.lower().split()


class Market(BaseModel):
    """Movie prediction market."""

    market_id: str
    title: str = ""
    movie_title: str = ""
    imdb_id: str | None = None
    release_date: date | None = None
    market_type: MarketType = MarketType.BINARY
    category: MarketCategory = MarketCategory.CRITIC_SCORE
    threshold: Decimal | None = None
    status: MarketStatus = MarketStatus.PENDING
    blind_period_ends_at: int | None = None  # ms epoch
    lock_at: int | None = None  # ms epoch
    resolution_at: int | None = None  # ms epoch
    resolved_outcome_id: str | None = None
    actual_value: Decimal | None = None
    outcomes: list[Outcome] = Field(default_factory=list)

    def get_outcome(self, outcome_id: str) -> Outcome | None:
        for o in self.outcomes:
            if o.outcome_id == outcome_id:
                return o
        return None
