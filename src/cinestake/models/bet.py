"""Bet - a user's single position in a market."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class BetSnapshot(BaseModel):
    """Values captured when the bet was placed. Never recomputed at resolution."""

    model_config = ConfigDict(frozen=True)

    placed_during_blind_period: bool = False
    popularity_ratio: Decimal = Field(Decimal("0.5000"), ge=0, le=1)
    is_contrarian: bool = False
    dynamic_multiplier: Decimal = Decimal("1.0000")


class Bet(BaseModel):
    bet_id: str
    user_id: str
    market_id: str
    outcome_id: str
    stake: Decimal = Field(..., gt=0)
    snapshot: BetSnapshot = Field(default_factory=BetSnapshot)
    actual_payout: Decimal | None = None  # set once at resolution
    created_at: int | None = None  # ms epoch
