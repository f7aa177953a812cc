"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, already_resolved")


# --- Bets ---
class PlaceBetRequest(BaseModel):
    user_id: str
    market_id: str
    outcome_id: str
    stake: Decimal = Field(..., gt=0)


class BetResponse(BaseModel):
    bet_id: str
    user_id: str
    market_id: str
    outcome_id: str
    stake: Decimal
    placed_during_blind_period: bool
    popularity_ratio: Decimal
    is_contrarian: bool
    dynamic_multiplier: Decimal


# --- Resolution ---
class ResolveRequest(BaseModel):
    winning_outcome_id: str
    actual_value: Decimal | None = None
    resolved_by: str = "system"
    notes: str | None = None


class PayoutItem(BaseModel):
    bet_id: str
    user_id: str
    outcome_id: str
    stake: Decimal
    won: bool
    base_payout: Decimal
    dynamic_multiplier: Decimal
    contrarian_bonus: Decimal
    final_payout: Decimal
    was_blind_period_bet: bool
    was_contrarian: bool
    refunded: bool = False


class ResolutionResponse(BaseModel):
    market_id: str
    winning_outcome_id: str
    actual_value: Decimal | None = None
    resolved_by: str
    total_pool: Decimal
    total_payouts: Decimal
    winner_count: int
    loser_count: int
    refunded: bool
    trendsetter_points_awarded: int
    steps_completed: list[str]
    payouts: list[PayoutItem]


class ResolutionPreviewResponse(BaseModel):
    market_id: str
    winning_outcome_id: str
    winning_outcome_label: str
    total_pool: Decimal
    total_payouts: Decimal
    winner_count: int
    loser_count: int
    average_winner_payout: Decimal
    estimated_trendsetter_points: int
    refunded: bool
    payouts: list[PayoutItem]


class CancellationResponse(BaseModel):
    market_id: str
    bets_reversed: int
    total_reversed: Decimal


# --- Scanner ---
class ScanResultItem(BaseModel):
    market_id: str
    status: str
    reason: str | None = None
    winning_outcome_id: str | None = None
    actual_value: Decimal | None = None


class ScanReportResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    manual_required: int
    results: list[ScanResultItem]


class BoxOfficeEntryRequest(BaseModel):
    title: str
    release_date: date
    gross: Decimal = Field(..., ge=0)
    rank: int = Field(..., ge=1)
    theater_count: int | None = Field(None, ge=0)


# --- Users ---
class BadgeItem(BaseModel):
    key: str
    name: str
    description: str


class TrendsetterScoreResponse(BaseModel):
    user_id: str
    total_points: int
    rank: int | None = None
    breakdown: dict[str, int]
    points_by_type: dict[str, int] = Field(default_factory=dict)
    badges: list[BadgeItem] = Field(default_factory=list)
    recent_events: list[dict[str, Any]] = Field(default_factory=list)


class TasteMatchItem(BaseModel):
    user_id: str
    username: str
    score: Decimal
    markets_in_common: int
    match_percentage: int
    strength: str


class TasteMatchesResponse(BaseModel):
    user_id: str
    matches: list[TasteMatchItem]


class LeaderboardItem(BaseModel):
    rank: int
    user_id: str
    username: str
    total_points: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardItem]
