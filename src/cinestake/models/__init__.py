"""Canonical schema (Pydantic) - Market, Outcome, Bet, ledgers."""

from cinestake.models.bet import Bet, BetSnapshot
from cinestake.models.ledger import (
    SYSTEM_RESOLVER,
    Resolution,
    TasteMatch,
    TrendsetterEvent,
    TrendsetterEventType,
    User,
)
from cinestake.models.market import (
    BETTING_STATUSES,
    RESOLVABLE_STATUSES,
    Market,
    MarketCategory,
    MarketStatus,
    MarketType,
    Outcome,
)

__all__ = [
    "Market",
    "MarketCategory",
    "MarketStatus",
    "MarketType",
    "Outcome",
    "BETTING_STATUSES",
    "RESOLVABLE_STATUSES",
    "Bet",
    "BetSnapshot",
    "User",
    "Resolution",
    "SYSTEM_RESOLVER",
    "TrendsetterEvent",
    "TrendsetterEventType",
    "TasteMatch",
]
