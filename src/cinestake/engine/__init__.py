"""Resolution and payout engine."""

from cinestake.engine.betting import place_bet
from cinestake.engine.odds import calculate_multiplier, is_contrarian
from cinestake.engine.payout import PayoutCalculation, PayoutSummary, calculate_payouts
from cinestake.engine.resolution import (
    CancellationResult,
    ResolutionOrchestrator,
    ResolutionPreview,
    ResolutionResult,
    ResolutionStep,
)
from cinestake.engine.scanner import AutoResolutionScanner, ScanOutcome, ScanReport, ScanStatus
from cinestake.engine.taste_match import get_user_matches
from cinestake.engine.trendsetter import TrendsetterScore, calculate_score

__all__ = [
    "place_bet",
    "calculate_multiplier",
    "is_contrarian",
    "PayoutCalculation",
    "PayoutSummary",
    "calculate_payouts",
    "CancellationResult",
    "ResolutionOrchestrator",
    "ResolutionPreview",
    "ResolutionResult",
    "ResolutionStep",
    "AutoResolutionScanner",
    "ScanOutcome",
    "ScanReport",
    "ScanStatus",
    "get_user_matches",
    "TrendsetterScore",
    "calculate_score",
]
