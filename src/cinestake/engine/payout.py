"""Pari-mutuel payout calculation with dynamic multiplier and contrarian bonus.

final payout = (stake / total winning stakes) * total pool * multiplier * contrarian bonus

The multiplier and bonus are not zero-sum, so the sum of winning payouts can
drift from the pool. Winners share the pool scaled by at most
MAX_MULTIPLIER * CONTRARIAN_BONUS and at least MIN_MULTIPLIER.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from cinestake.engine.odds import calculate_multiplier, is_contrarian, popularity_ratio, to_decimal
from cinestake.errors import InvalidInput
from cinestake.models import Bet

CONTRARIAN_BONUS = Decimal("1.25")
NO_BONUS = Decimal("1.00")
MONEY_PLACES = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class PayoutCalculation:
    """Payout for one bet."""

    bet_id: str
    user_id: str
    outcome_id: str
    stake: Decimal
    won: bool
    base_payout: Decimal
    dynamic_multiplier: Decimal
    contrarian_bonus: Decimal
    final_payout: Decimal
    was_blind_period_bet: bool = False
    was_contrarian: bool = False
    refunded: bool = False


@dataclass
class PayoutSummary:
    total_pool: Decimal = Decimal("0.00")
    total_winning_stakes: Decimal = Decimal("0.00")
    total_payouts: Decimal = Decimal("0.00")
    winner_count: int = 0
    refunded: bool = False
    calculations: list[PayoutCalculation] = field(default_factory=list)

    @property
    def pool_drift(self) -> Decimal:
        """Paid out minus staked. Nonzero whenever multipliers or bonuses apply."""
        return self.total_payouts - self.total_pool

    def for_bet(self, bet_id: str) -> PayoutCalculation | None:
        for c in self.calculations:
            if c.bet_id == bet_id:
                return c
        return None


def _refund(bet: Bet) -> PayoutCalculation:
    return PayoutCalculation(
        bet_id=bet.bet_id,
        user_id=bet.user_id,
        outcome_id=bet.outcome_id,
        stake=bet.stake,
        won=False,
        base_payout=bet.stake,
        dynamic_multiplier=Decimal("1.0000"),
        contrarian_bonus=NO_BONUS,
        final_payout=bet.stake,
        was_blind_period_bet=bet.snapshot.placed_during_blind_period,
        was_contrarian=bet.snapshot.is_contrarian,
        refunded=True,
    )


def _settle(bet: Bet, winning_outcome_id: str, total_pool: Decimal, total_winning: Decimal) -> PayoutCalculation:
    snap = bet.snapshot
    if bet.outcome_id != winning_outcome_id:
        return PayoutCalculation(
            bet_id=bet.bet_id,
            user_id=bet.user_id,
            outcome_id=bet.outcome_id,
            stake=bet.stake,
            won=False,
            base_payout=Decimal("0.00"),
            dynamic_multiplier=Decimal("1.0000"),
            contrarian_bonus=NO_BONUS,
            final_payout=Decimal("0.00"),
            was_blind_period_bet=snap.placed_during_blind_period,
            was_contrarian=snap.is_contrarian,
        )
    base = bet.stake / total_winning * total_pool
    # Frozen at placement, never recomputed from the current pool
    multiplier = snap.dynamic_multiplier
    bonus = CONTRARIAN_BONUS if snap.is_contrarian else NO_BONUS
    return PayoutCalculation(
        bet_id=bet.bet_id,
        user_id=bet.user_id,
        outcome_id=bet.outcome_id,
        stake=bet.stake,
        won=True,
        base_payout=to_money(base),
        dynamic_multiplier=multiplier,
        contrarian_bonus=bonus,
        final_payout=to_money(base * multiplier * bonus),
        was_blind_period_bet=snap.placed_during_blind_period,
        was_contrarian=snap.is_contrarian,
    )


def calculate_payouts(bets: Sequence[Bet], winning_outcome_id: str) -> PayoutSummary:
    """Payouts for every bet on a market given the winning outcome.

    If nobody picked the winning outcome, every stake is returned unchanged
    and no bet is flagged as won.
    """
    if not bets:
        return PayoutSummary()

    total_pool = sum((b.stake for b in bets), Decimal(0))
    total_winning = sum((b.stake for b in bets if b.outcome_id == winning_outcome_id), Decimal(0))

    if total_winning == 0:
        calculations = [_refund(b) for b in bets]
        return PayoutSummary(
            total_pool=total_pool,
            total_winning_stakes=Decimal("0.00"),
            total_payouts=sum((c.final_payout for c in calculations), Decimal(0)),
            winner_count=0,
            refunded=True,
            calculations=calculations,
        )

    calculations = [_settle(b, winning_outcome_id, total_pool, total_winning) for b in bets]
    return PayoutSummary(
        total_pool=total_pool,
        total_winning_stakes=total_winning,
        total_payouts=sum((c.final_payout for c in calculations), Decimal(0)),
        winner_count=sum(1 for c in calculations if c.won),
        calculations=calculations,
    )


@dataclass
class BetPreview:
    """What a hypothetical bet would pay if its outcome won and nobody else bet."""

    stake: Decimal
    popularity_ratio: Decimal
    dynamic_multiplier: Decimal
    is_contrarian: bool
    contrarian_bonus: Decimal
    base_payout: Decimal
    estimated_payout: Decimal
    max_payout: Decimal


def preview_bet_payout(bets: Sequence[Bet], outcome_id: str, stake: Decimal | float | str) -> BetPreview:
    amount = to_decimal(stake)
    if amount <= 0:
        raise InvalidInput(f"Invalid stake: {amount}. Must be positive.")
    current_pool = sum((b.stake for b in bets), Decimal(0))
    current_on_outcome = sum((b.stake for b in bets if b.outcome_id == outcome_id), Decimal(0))
    # Same ratio place_bet would freeze: the pool as it stands before this bet
    ratio = popularity_ratio(current_on_outcome, current_pool)
    pool = current_pool + amount
    outcome_total = current_on_outcome + amount
    multiplier = calculate_multiplier(ratio)
    contrarian = is_contrarian(ratio)
    bonus = CONTRARIAN_BONUS if contrarian else NO_BONUS
    base = amount / outcome_total * pool
    estimated = base * multiplier
    return BetPreview(
        stake=amount,
        popularity_ratio=ratio,
        dynamic_multiplier=multiplier,
        is_contrarian=contrarian,
        contrarian_bonus=bonus,
        base_payout=to_money(base),
        estimated_payout=to_money(estimated),
        max_payout=to_money(estimated * bonus),
    )


def format_payout_breakdown(calc: PayoutCalculation) -> str:
    if calc.refunded:
        return f"Refunded: T${calc.final_payout:.2f}"
    if not calc.won:
        return "Lost - No payout"
    parts = [
        f"Base: T${calc.base_payout:.2f}",
        f"Dynamic Multiplier: {calc.dynamic_multiplier:.2f}x",
    ]
    if calc.contrarian_bonus > NO_BONUS:
        parts.append(f"Contrarian Bonus: {calc.contrarian_bonus:.2f}x")
    parts.append(f"Final: T${calc.final_payout:.2f}")
    return " → ".join(parts)
