"""Resolution orchestrator: settle a market, fan results out to the ledgers, undo it.

The conditional status update (locked/open -> resolved) is the serialization
point. Market status, the resolution row, per-bet payouts, balance credits and
trendsetter points commit together. Taste matches are recomputed after commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from cinestake.engine.payout import PayoutCalculation, PayoutSummary, calculate_payouts, to_money
from cinestake.engine.taste_match import recalculate_for_market
from cinestake.engine.trendsetter import award_resolution_points, estimate_resolution_points
from cinestake.errors import AlreadyResolved, InvalidState, NotFound, ResolutionFanoutError
from cinestake.models import RESOLVABLE_STATUSES, SYSTEM_RESOLVER, Market, MarketStatus, Resolution
from cinestake.storage.bets import clear_payouts, list_bets_for_market, list_paid_bets, set_payout
from cinestake.storage.db import now_ms, transaction
from cinestake.storage.markets import get_market, mark_resolved, revert_to_locked
from cinestake.storage.resolutions import delete_resolution, get_resolution, insert_resolution
from cinestake.storage.users import adjust_balance

log = structlog.get_logger(__name__)


class ResolutionStep(str, Enum):
    MARKET_RESOLVED = "market_resolved"
    RESOLUTION_RECORDED = "resolution_recorded"
    PAYOUTS_RECORDED = "payouts_recorded"
    BALANCES_CREDITED = "balances_credited"
    TRENDSETTER_AWARDED = "trendsetter_awarded"
    TASTE_MATCHES_UPDATED = "taste_matches_updated"


@dataclass
class ResolutionResult:
    market_id: str
    winning_outcome_id: str
    actual_value: Decimal | None
    resolved_by: str
    data_source: str
    total_pool: Decimal = Decimal("0.00")
    total_payouts: Decimal = Decimal("0.00")
    winner_count: int = 0
    loser_count: int = 0
    refunded: bool = False
    payouts: list[PayoutCalculation] = field(default_factory=list)
    trendsetter_points_awarded: int = 0
    taste_match_pairs_evaluated: int = 0
    steps_completed: list[ResolutionStep] = field(default_factory=list)
    failed_step: ResolutionStep | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "winning_outcome_id": self.winning_outcome_id,
            "actual_value": str(self.actual_value) if self.actual_value is not None else None,
            "resolved_by": self.resolved_by,
            "data_source": self.data_source,
            "total_pool": str(self.total_pool),
            "total_payouts": str(self.total_payouts),
            "winner_count": self.winner_count,
            "loser_count": self.loser_count,
            "refunded": self.refunded,
            "trendsetter_points_awarded": self.trendsetter_points_awarded,
            "taste_match_pairs_evaluated": self.taste_match_pairs_evaluated,
            "steps_completed": [s.value for s in self.steps_completed],
            "failed_step": self.failed_step.value if self.failed_step else None,
        }


@dataclass
class CancellationResult:
    market_id: str
    bets_reversed: int
    total_reversed: Decimal


@dataclass
class ResolutionPreview:
    market_id: str
    winning_outcome_id: str
    winning_outcome_label: str
    summary: PayoutSummary
    winner_count: int
    loser_count: int
    average_winner_payout: Decimal
    estimated_trendsetter_points: int


@dataclass
class ResolutionDetails:
    market: Market
    resolution: Resolution
    payouts: list[tuple[str, str, Decimal, Decimal]]  # (bet_id, user_id, stake, payout)


class ResolutionOrchestrator:
    """Resolve, cancel and preview market resolutions against one DuckDB connection."""

    def __init__(self, conn: Any):
        self.conn = conn

    def _load_market(self, market_id: str) -> Market:
        market = get_market(self.conn, market_id)
        if market is None:
            raise NotFound(f"Market {market_id} not found", market_id=market_id)
        return market

    def resolve(
        self,
        market_id: str,
        winning_outcome_id: str,
        actual_value: Decimal | None = None,
        resolved_by: str = SYSTEM_RESOLVER,
        *,
        data_source: str = "manual",
        raw_data: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> ResolutionResult:
        """Settle a market. Validation failures leave no trace.

        Raises NotFound, AlreadyResolved, InvalidState, or ResolutionFanoutError
        when a write fails; its ``result.steps_completed`` lists what stuck.
        """
        market = self._load_market(market_id)
        if market.status == MarketStatus.RESOLVED:
            raise AlreadyResolved(f"Market {market_id} is already resolved", market_id=market_id)
        if market.status not in RESOLVABLE_STATUSES:
            raise InvalidState(
                f"Market {market_id} cannot be resolved from status {market.status.value}", market_id=market_id
            )
        if market.get_outcome(winning_outcome_id) is None:
            raise NotFound(f"Outcome {winning_outcome_id} not found in market {market_id}", market_id=market_id)

        value = Decimal(str(actual_value)) if actual_value is not None else None
        result = ResolutionResult(
            market_id=market_id,
            winning_outcome_id=winning_outcome_id,
            actual_value=value,
            resolved_by=resolved_by,
            data_source=data_source,
        )
        pending: list[ResolutionStep] = []
        step = ResolutionStep.MARKET_RESOLVED
        try:
            with transaction(self.conn):
                if not mark_resolved(self.conn, market_id, winning_outcome_id, value, RESOLVABLE_STATUSES):
                    current = get_market(self.conn, market_id)
                    if current is not None and current.status == MarketStatus.RESOLVED:
                        raise AlreadyResolved(f"Market {market_id} is already resolved", market_id=market_id)
                    raise InvalidState(f"Market {market_id} changed status during resolution", market_id=market_id)
                pending.append(step)

                step = ResolutionStep.RESOLUTION_RECORDED
                insert_resolution(
                    self.conn,
                    Resolution(
                        market_id=market_id,
                        resolved_by=resolved_by,
                        data_source=data_source,
                        raw_data=raw_data,
                        notes=notes,
                        resolved_at=now_ms(),
                    ),
                )
                pending.append(step)

                step = ResolutionStep.PAYOUTS_RECORDED
                bets = list_bets_for_market(self.conn, market_id)
                summary = calculate_payouts(bets, winning_outcome_id)
                for calc in summary.calculations:
                    set_payout(self.conn, calc.bet_id, calc.final_payout)
                pending.append(step)

                step = ResolutionStep.BALANCES_CREDITED
                for calc in summary.calculations:
                    if calc.final_payout > 0:
                        adjust_balance(self.conn, calc.user_id, calc.final_payout)
                pending.append(step)

                step = ResolutionStep.TRENDSETTER_AWARDED
                points = 0
                for bet in bets:
                    calc = summary.for_bet(bet.bet_id)
                    for event in award_resolution_points(self.conn, bet, calc is not None and calc.won):
                        points += event.points
                pending.append(step)
        except (AlreadyResolved, InvalidState):
            raise
        except Exception as e:
            result.failed_step = step
            log.error("market_resolution_failed", market_id=market_id, step=step.value, error=str(e))
            raise ResolutionFanoutError(
                f"Resolution failed at {step.value}, nothing was applied", market_id=market_id, result=result, cause=e
            ) from e

        result.steps_completed = pending
        result.total_pool = summary.total_pool
        result.total_payouts = summary.total_payouts
        result.winner_count = summary.winner_count
        result.loser_count = len(summary.calculations) - summary.winner_count
        result.refunded = summary.refunded
        result.payouts = summary.calculations
        result.trendsetter_points_awarded = points
        log.info(
            "market_resolved",
            market_id=market_id,
            outcome_id=winning_outcome_id,
            resolved_by=resolved_by,
            total_pool=str(summary.total_pool),
            total_payouts=str(summary.total_payouts),
            winners=summary.winner_count,
            refunded=summary.refunded,
        )

        step = ResolutionStep.TASTE_MATCHES_UPDATED
        try:
            result.taste_match_pairs_evaluated = recalculate_for_market(self.conn, market_id)
        except Exception as e:
            result.failed_step = step
            log.error("taste_match_update_failed", market_id=market_id, error=str(e))
            raise ResolutionFanoutError(
                "Market resolved but taste matches were not updated", market_id=market_id, result=result, cause=e
            ) from e
        result.steps_completed.append(step)
        return result

    def cancel(self, market_id: str) -> CancellationResult:
        """Undo a resolution: take back credited payouts, drop the record, relock.

        Trendsetter events and taste matches are history and stay as they are.
        """
        market = self._load_market(market_id)
        if market.status != MarketStatus.RESOLVED:
            raise InvalidState(
                f"Market {market_id} is not resolved (status {market.status.value})", market_id=market_id
            )
        reversed_count = 0
        total = Decimal("0.00")
        with transaction(self.conn):
            for bet in list_paid_bets(self.conn, market_id):
                if bet.actual_payout and bet.actual_payout > 0:
                    adjust_balance(self.conn, bet.user_id, -bet.actual_payout)
                    reversed_count += 1
                    total += bet.actual_payout
            clear_payouts(self.conn, market_id)
            delete_resolution(self.conn, market_id)
            if not revert_to_locked(self.conn, market_id):
                raise InvalidState(f"Market {market_id} changed status during cancellation", market_id=market_id)
        log.info("resolution_cancelled", market_id=market_id, bets_reversed=reversed_count, total=str(total))
        return CancellationResult(market_id=market_id, bets_reversed=reversed_count, total_reversed=to_money(total))

    def preview(self, market_id: str, winning_outcome_id: str) -> ResolutionPreview:
        """What resolve() would pay out. Writes nothing."""
        market = self._load_market(market_id)
        outcome = market.get_outcome(winning_outcome_id)
        if outcome is None:
            raise NotFound(f"Outcome {winning_outcome_id} not found in market {market_id}", market_id=market_id)
        bets = list_bets_for_market(self.conn, market_id)
        summary = calculate_payouts(bets, winning_outcome_id)
        winners = [c for c in summary.calculations if c.won]
        winning_bets = [b for b in bets if b.outcome_id == winning_outcome_id]
        average = to_money(sum((c.final_payout for c in winners), Decimal(0)) / len(winners)) if winners else Decimal("0.00")
        return ResolutionPreview(
            market_id=market_id,
            winning_outcome_id=winning_outcome_id,
            winning_outcome_label=outcome.label,
            summary=summary,
            winner_count=len(winners),
            loser_count=len(summary.calculations) - len(winners),
            average_winner_payout=average,
            estimated_trendsetter_points=sum(estimate_resolution_points(b) for b in winning_bets),
        )

    def get_resolution_details(self, market_id: str) -> ResolutionDetails:
        market = self._load_market(market_id)
        resolution = get_resolution(self.conn, market_id)
        if resolution is None:
            raise NotFound(f"Market {market_id} has no resolution", market_id=market_id)
        payouts = [(b.bet_id, b.user_id, b.stake, b.actual_payout) for b in list_paid_bets(self.conn, market_id)]
        return ResolutionDetails(market=market, resolution=resolution, payouts=payouts)
