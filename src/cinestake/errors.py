"""Engine error taxonomy. Each error carries a machine-readable code for the API layer."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base for all resolution/payout engine errors."""

    code = "engine_error"

    def __init__(self, message: str, *, market_id: str | None = None):
        self.message = message
        self.market_id = market_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.market_id:
            return f"[{self.market_id}] {self.message}"
        return self.message


class NotFound(EngineError):
    """Market, outcome, bet or user does not exist."""

    code = "not_found"


class InvalidState(EngineError):
    """Operation not allowed in the market's current lifecycle stage."""

    code = "invalid_state"


class DuplicateBet(InvalidState):
    """User already holds a bet on this market."""

    code = "duplicate_bet"


class AlreadyResolved(EngineError):
    code = "already_resolved"


class InvalidInput(EngineError):
    """Out-of-range ratio, stake or value."""

    code = "invalid_input"


class InsufficientBalance(InvalidInput):
    code = "insufficient_balance"


class InsufficientConfidence(EngineError):
    """External data exists but its confidence signal is below the minimum."""

    code = "insufficient_confidence"

    def __init__(self, message: str, *, market_id: str | None = None, confidence: float | None = None):
        super().__init__(message, market_id=market_id)
        self.confidence = confidence


class DataUnavailable(EngineError):
    """External provider returned nothing or could not be reached."""

    code = "data_unavailable"


class ResolutionFanoutError(EngineError):
    """A resolution side effect failed after some steps were applied.

    ``result`` is the partial ResolutionResult; ``result.steps_completed`` lists
    what was applied before ``cause`` was raised.
    """

    code = "resolution_fanout_failed"

    def __init__(self, message: str, *, market_id: str, result: Any, cause: BaseException):
        super().__init__(message, market_id=market_id)
        self.result = result
        self.cause = cause
