"""Pari-mutuel payout calculation."""

from decimal import Decimal

import pytest

from cinestake.engine.odds import MAX_MULTIPLIER, MIN_MULTIPLIER, calculate_multiplier
from cinestake.engine.payout import (
    CONTRARIAN_BONUS,
    calculate_payouts,
    format_payout_breakdown,
    preview_bet_payout,
)
from cinestake.errors import InvalidInput
from cinestake.models import Bet, BetSnapshot


def _bet(bet_id, outcome, stake, ratio="0.5", contrarian=False, blind=False, user=None):
    r = Decimal(ratio)
    return Bet(
        bet_id=bet_id,
        user_id=user or f"u-{bet_id}",
        market_id="m1",
        outcome_id=outcome,
        stake=Decimal(stake),
        snapshot=BetSnapshot(
            placed_during_blind_period=blind,
            popularity_ratio=r,
            is_contrarian=contrarian,
            dynamic_multiplier=calculate_multiplier(r),
        ),
    )


def test_pool_of_100_pays_91_to_popular_winner():
    bets = [_bet("a", "yes", "80", ratio="0.8"), _bet("b", "no", "20", ratio="0.2", contrarian=True)]
    summary = calculate_payouts(bets, "yes")
    winner = summary.for_bet("a")
    loser = summary.for_bet("b")
    assert summary.total_pool == Decimal("100")
    assert summary.total_winning_stakes == Decimal("80")
    assert winner.won is True
    assert winner.base_payout == Decimal("100.00")
    assert winner.final_payout == Decimal("91.00")
    assert loser.won is False
    assert loser.final_payout == Decimal("0.00")
    assert summary.winner_count == 1
    assert summary.total_payouts == Decimal("91.00")


def test_contrarian_winner_gets_bonus():
    bets = [_bet("a", "yes", "10", ratio="0.2", contrarian=True), _bet("b", "no", "40", ratio="0.8")]
    calc = calculate_payouts(bets, "yes").for_bet("a")
    # 50 * 1.09 * 1.25 = 68.125, rounded half up
    assert calc.contrarian_bonus == CONTRARIAN_BONUS
    assert calc.final_payout == Decimal("68.13")
    assert calc.was_contrarian is True


def test_winners_split_pool_by_stake():
    bets = [
        _bet("a", "yes", "30"),
        _bet("b", "yes", "10"),
        _bet("c", "no", "60"),
    ]
    summary = calculate_payouts(bets, "yes")
    assert summary.for_bet("a").base_payout == Decimal("75.00")
    assert summary.for_bet("b").base_payout == Decimal("25.00")
    # frozen ratio 0.5 -> multiplier 1.0
    assert summary.total_payouts == Decimal("100.00")


def test_full_refund_when_nobody_picked_winner():
    bets = [_bet("a", "no", "25"), _bet("b", "no", "15", contrarian=True, ratio="0.3")]
    summary = calculate_payouts(bets, "yes")
    assert summary.refunded is True
    assert summary.winner_count == 0
    for bet in bets:
        calc = summary.for_bet(bet.bet_id)
        assert calc.won is False
        assert calc.final_payout == bet.stake
    assert summary.total_payouts == summary.total_pool


def test_empty_market_has_empty_summary():
    summary = calculate_payouts([], "yes")
    assert summary.calculations == []
    assert summary.total_pool == Decimal("0")


@pytest.mark.parametrize(
    "ratios",
    [
        ["0.9", "0.1"],
        ["0.5", "0.5"],
        ["0.2", "0.2", "0.6"],
        ["1.0"],
    ],
)
def test_payout_drift_is_bounded(ratios):
    bets = [
        _bet(f"w{i}", "yes", "10", ratio=r, contrarian=Decimal(r) < Decimal("0.35"))
        for i, r in enumerate(ratios)
    ]
    bets.append(_bet("l", "no", "20"))
    summary = calculate_payouts(bets, "yes")
    pool = summary.total_pool
    assert pool * MIN_MULTIPLIER <= summary.total_payouts <= pool * MAX_MULTIPLIER * CONTRARIAN_BONUS


def test_multiplier_is_taken_from_snapshot_not_current_pool():
    frozen = Bet(
        bet_id="a",
        user_id="u1",
        market_id="m1",
        outcome_id="yes",
        stake=Decimal("50"),
        snapshot=BetSnapshot(popularity_ratio=Decimal("1"), dynamic_multiplier=Decimal("0.85")),
    )
    summary = calculate_payouts([frozen, _bet("b", "no", "50")], "yes")
    assert summary.for_bet("a").dynamic_multiplier == Decimal("0.85")
    assert summary.for_bet("a").final_payout == Decimal("85.00")


def test_preview_bet_payout_freezes_pre_bet_ratio():
    existing = [_bet("a", "yes", "60"), _bet("b", "no", "20")]
    preview = preview_bet_payout(existing, "no", "20")
    # ratio from the current pool: 20 / 80
    assert preview.popularity_ratio == Decimal("0.25")
    assert preview.dynamic_multiplier == Decimal("1.075")
    assert preview.is_contrarian is True
    # base: 20 / 40 * 100 = 50.00; * 1.075 = 53.75; * 1.25 = 67.19
    assert preview.base_payout == Decimal("50.00")
    assert preview.estimated_payout == Decimal("53.75")
    assert preview.max_payout == Decimal("67.19")

    first = preview_bet_payout([], "yes", "10")
    assert first.popularity_ratio == Decimal("0")
    assert first.is_contrarian is True
    assert first.base_payout == Decimal("10.00")
    with pytest.raises(InvalidInput):
        preview_bet_payout(existing, "no", "0")


def test_format_payout_breakdown():
    bets = [_bet("a", "yes", "10", ratio="0.2", contrarian=True), _bet("b", "no", "40", ratio="0.8")]
    summary = calculate_payouts(bets, "yes")
    text = format_payout_breakdown(summary.for_bet("a"))
    assert "Dynamic Multiplier: 1.09x" in text
    assert "Contrarian Bonus: 1.25x" in text
    assert text.endswith("Final: T$68.13")
    assert format_payout_breakdown(summary.for_bet("b")) == "Lost - No payout"
    refund = calculate_payouts([_bet("c", "no", "5")], "yes").for_bet("c")
    assert format_payout_breakdown(refund) == "Refunded: T$5.00"
