"""Provider contracts for the data that settles markets (critic scores, box office)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Generic, Protocol, TypeVar

V = TypeVar("V")


@dataclass
class ScoreReading:
    """A critic score with the review count that backs it."""

    identifier: str
    value: Decimal
    review_count: int | None
    source: str
    imdb_rating: Decimal | None = None
    metascore: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class OpeningWeekend:
    """Domestic opening weekend gross (USD) and weekend rank."""

    title: str
    release_date: date
    gross: Decimal
    rank: int
    source: str
    theater_count: int | None = None
    per_theater_average: Decimal | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class CriticScoreProvider(Protocol):
    """Returns None when no score exists yet; raises DataUnavailable when the source fails."""

    def get_score(self, identifier: str) -> ScoreReading | None: ...

    def get_score_by_title(self, title: str, year: int | None = None) -> ScoreReading | None: ...


class BoxOfficeProvider(Protocol):
    def get_opening_weekend(self, title: str, release_date: date) -> OpeningWeekend | None: ...


def validate_opening_weekend(data: OpeningWeekend) -> list[str]:
    """Human-readable problems with a box office figure; empty if valid."""
    errors = []
    if data.gross < 0:
        errors.append("Opening weekend gross cannot be negative")
    if data.rank < 1:
        errors.append("Rank must be at least 1")
    if data.theater_count is not None and data.theater_count < 0:
        errors.append("Theater count cannot be negative")
    if data.per_theater_average is not None and data.per_theater_average < 0:
        errors.append("Per-theater average cannot be negative")
    return errors


class TTLCache(Generic[V]):
    """Small in-memory cache; entries expire ttl seconds after being set."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> V | None:
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def __len__(self) -> int:
        return len(self._entries)
