"""Bet placement. Freezes the popularity snapshot that resolution later pays out on."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

import structlog

from cinestake.engine.odds import calculate_multiplier, is_contrarian, popularity_ratio, to_decimal
from cinestake.engine.payout import to_money
from cinestake.engine.trendsetter import award_placement_points
from cinestake.errors import DuplicateBet, InsufficientBalance, InvalidInput, InvalidState, NotFound
from cinestake.models import BETTING_STATUSES, Bet, BetSnapshot, MarketStatus
from cinestake.storage.bets import get_user_bet, insert_bet, outcome_stakes
from cinestake.storage.db import now_ms, transaction
from cinestake.storage.markets import get_market
from cinestake.storage.users import adjust_balance, get_user

log = structlog.get_logger(__name__)

DEFAULT_MIN_STAKE = Decimal("1")
DEFAULT_MAX_STAKE = Decimal("50")


def place_bet(
    conn: Any,
    user_id: str,
    market_id: str,
    outcome_id: str,
    stake: Decimal | float | str,
    *,
    min_stake: Decimal = DEFAULT_MIN_STAKE,
    max_stake: Decimal = DEFAULT_MAX_STAKE,
    placed_at: int | None = None,
) -> Bet:
    """Place a user's single bet on a market.

    The popularity ratio is the outcome's share of the pool before this bet.
    An empty pool gives 0, so the first bet on a market is contrarian.
    """
    amount = to_money(to_decimal(stake))
    if amount < min_stake or amount > max_stake:
        raise InvalidInput(f"Stake must be between {min_stake} and {max_stake}, got {amount}", market_id=market_id)

    with transaction(conn):
        user = get_user(conn, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        market = get_market(conn, market_id)
        if market is None:
            raise NotFound(f"Market {market_id} not found", market_id=market_id)
        if market.status not in BETTING_STATUSES:
            raise InvalidState(f"Market is {market.status.value}, betting is closed", market_id=market_id)
        if market.get_outcome(outcome_id) is None:
            raise NotFound(f"Outcome {outcome_id} not found in market {market_id}", market_id=market_id)
        if get_user_bet(conn, user_id, market_id) is not None:
            raise DuplicateBet(f"User {user_id} already has a bet on this market", market_id=market_id)
        if user.balance < amount:
            raise InsufficientBalance(f"Balance {user.balance} is below stake {amount}", market_id=market_id)

        stakes = outcome_stakes(conn, market_id)
        pool = sum((s for s, _ in stakes.values()), Decimal(0))
        on_outcome = stakes.get(outcome_id, (Decimal(0), 0))[0]
        ratio = popularity_ratio(on_outcome, pool)

        bet = Bet(
            bet_id=str(uuid.uuid4()),
            user_id=user_id,
            market_id=market_id,
            outcome_id=outcome_id,
            stake=amount,
            snapshot=BetSnapshot(
                placed_during_blind_period=market.status == MarketStatus.BLIND,
                popularity_ratio=ratio,
                is_contrarian=is_contrarian(ratio),
                dynamic_multiplier=calculate_multiplier(ratio),
            ),
            created_at=placed_at if placed_at is not None else now_ms(),
        )
        insert_bet(conn, bet)
        adjust_balance(conn, user_id, -amount)
        award_placement_points(conn, bet)

    log.info(
        "bet_placed",
        bet_id=bet.bet_id,
        user_id=user_id,
        market_id=market_id,
        outcome_id=outcome_id,
        stake=str(amount),
        popularity_ratio=str(bet.snapshot.popularity_ratio),
        contrarian=bet.snapshot.is_contrarian,
        blind=bet.snapshot.placed_during_blind_period,
    )
    return bet
