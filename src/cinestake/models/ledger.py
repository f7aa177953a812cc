"""User balance, Resolution record, trendsetter events and taste matches."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

SYSTEM_RESOLVER = "system"


class User(BaseModel):
    user_id: str
    username: str = ""
    balance: Decimal = Decimal("100.00")


class Resolution(BaseModel):
    """One per resolved market; removed only by cancellation."""

    market_id: str
    resolved_by: str = SYSTEM_RESOLVER
    data_source: str = "manual"
    raw_data: dict[str, Any] | None = None
    notes: str | None = None
    resolved_at: int | None = None  # ms epoch


class TrendsetterEventType(str, Enum):
    BLIND_BET = "blind_bet"
    CONTRARIAN_BET = "contrarian_bet"
    CORRECT_BLIND = "correct_blind"
    CORRECT_CONTRARIAN = "correct_contrarian"


class TrendsetterEvent(BaseModel):
    event_id: int | None = None
    user_id: str
    bet_id: str
    market_id: str
    event_type: TrendsetterEventType
    points: int
    created_at: int | None = None


class TasteMatch(BaseModel):
    """Symmetric pair, stored once with user_a < user_b."""

    user_a: str
    user_b: str
    score: Decimal
    markets_in_common: int = Field(..., ge=0)
    last_updated: int | None = None
