"""
backend/tests/test_market_rules.py

Purpose:
    Grading of moneyline/spread/total bets and parlay reduction.
"""

from __future__ import annotations

import pytest

from wagerledger.errors import SettlementError
from wagerledger.models.bet import BetResult
from wagerledger.models.settlement import GameResult, GameStatus
from wagerledger.services.market_rules import (
    REDUCTION_RECOMBINE,
    credit_for,
    evaluate_bet,
    evaluate_moneyline,
    evaluate_spread,
    evaluate_total,
    resolve_parlay,
)

W, L, P, V = BetResult.WIN, BetResult.LOSS, BetResult.PUSH, BetResult.VOID


def _game(home=24, away=20, status=GameStatus.completed):
    return GameResult(
        game_id="g1", home_team="Chiefs", away_team="Raiders",
        home_score=home, away_score=away, status=status,
    )


def test_moneyline_by_team_name_and_side():
    game = _game(24, 20)
    assert evaluate_moneyline("Chiefs", game) == W
    assert evaluate_moneyline("away", game) == L
    assert evaluate_moneyline("Raiders", _game(20, 20)) == P


def test_moneyline_unknown_selection_is_an_error():
    with pytest.raises(SettlementError):
        evaluate_moneyline("Broncos", _game())


def test_spread_home_favourite_covers():
    assert evaluate_spread("Chiefs", -3.5, _game(24, 20)) == W
    assert evaluate_spread("Raiders", 3.5, _game(24, 20)) == L
    assert evaluate_spread("Chiefs", -4, _game(24, 20)) == P


def test_total_over_under_and_push():
    assert evaluate_total("over", 45.5, _game(26, 20)) == W
    assert evaluate_total("under", 45.5, _game(26, 20)) == L
    assert evaluate_total("over", 45, _game(25, 20)) == P


def test_cancelled_or_postponed_game_voids_any_market():
    bet = {"market_type": "spread", "selection": "Chiefs", "line": -3.5}
    assert evaluate_bet(bet, _game(None, None, GameStatus.cancelled)) == V
    assert evaluate_bet(bet, _game(None, None, GameStatus.postponed)) == V


def test_completed_game_without_score_is_an_error():
    with pytest.raises(SettlementError):
        evaluate_bet({"market_type": "moneyline", "selection": "Chiefs"}, _game(None, None))


def test_credit_for_straight_results():
    assert credit_for(W, 100, 250) == 250
    assert credit_for(P, 100, 250) == 100
    assert credit_for(V, 100, 250) == 100
    assert credit_for(L, 100, 250) == 0


def test_parlay_all_won_pays_full():
    resolution = resolve_parlay([W, W], [150, -110], 10, 47.73)
    assert resolution.result == W
    assert resolution.payout == 47.73
    assert resolution.reduced_odds is None


def test_parlay_any_loss_loses():
    resolution = resolve_parlay([W, L, V], [150, 150, 150], 10, 156.25)
    assert resolution.result == L
    assert resolution.payout == 0.0


def test_parlay_void_leg_scales_linearly():
    resolution = resolve_parlay([W, V, W], [150, 150, 150], 10, 156.25)
    assert resolution.result == W
    assert resolution.active_legs == 2
    assert resolution.payout == round(156.25 * 2 / 3, 2)
    assert resolution.reduced_odds == 525


def test_parlay_void_leg_recombines_surviving_odds():
    resolution = resolve_parlay([W, P, W], [150, 150, 150], 10, 156.25, REDUCTION_RECOMBINE)
    assert resolution.payout == 62.5


def test_parlay_with_no_active_legs_refunds():
    resolution = resolve_parlay([P, V], [150, -110], 10, 47.73)
    assert resolution.result == V
    assert resolution.payout == 10
    assert resolution.active_legs == 0
