"""
backend/wagerledger/services/market_rules.py

Purpose:
    Grade a bet against a final score, and resolve a parlay from its legs'
    results. No I/O: settlement feeds documents in and persists the outcome.

Dependencies:
    - wagerledger.services.odds
"""

from dataclasses import dataclass
from typing import Optional

from wagerledger.errors import SettlementError
from wagerledger.models.bet import BetResult, MarketType
from wagerledger.models.settlement import GameResult, GameStatus
from wagerledger.services.odds import american_to_decimal, decimal_to_american

REDUCTION_LINEAR = "linear"
REDUCTION_RECOMBINE = "recombine"


def _side(selection: str, game: GameResult) -> str:
    """Map a selection to "home" or "away" by team name or literal side."""
    normalized = selection.strip().lower()
    if normalized in ("home", game.home_team.strip().lower()):
        return "home"
    if normalized in ("away", game.away_team.strip().lower()):
        return "away"
    raise SettlementError(
        f"Selection {selection!r} matches neither {game.home_team!r} nor {game.away_team!r}"
    )


def _compare(value: float) -> BetResult:
    if value > 0:
        return BetResult.WIN
    if value < 0:
        return BetResult.LOSS
    return BetResult.PUSH


def evaluate_moneyline(selection: str, game: GameResult) -> BetResult:
    diff = game.home_score - game.away_score
    if diff == 0:
        return BetResult.PUSH
    return _compare(diff if _side(selection, game) == "home" else -diff)


def evaluate_spread(selection: str, line: float, game: GameResult) -> BetResult:
    diff = game.home_score - game.away_score
    side_diff = diff if _side(selection, game) == "home" else -diff
    return _compare(side_diff + line)


def evaluate_total(selection: str, line: float, game: GameResult) -> BetResult:
    total = game.home_score + game.away_score
    if selection.strip().lower() == "over":
        return _compare(total - line)
    return _compare(line - total)


def evaluate_bet(bet: dict, game: GameResult) -> BetResult:
    """Grade one bet document against a game result."""
    if game.status in (GameStatus.cancelled, GameStatus.postponed):
        return BetResult.VOID
    if game.home_score is None or game.away_score is None:
        raise SettlementError(f"Game {game.game_id} completed without a final score")

    market = MarketType(bet["market_type"])
    if market == MarketType.moneyline:
        return evaluate_moneyline(bet["selection"], game)
    if market == MarketType.spread:
        return evaluate_spread(bet["selection"], float(bet["line"]), game)
    return evaluate_total(bet["selection"], float(bet["line"]), game)


def credit_for(result: BetResult, stake: float, potential_payout: float) -> float:
    """Amount returned to the bankroll for a straight bet."""
    if result == BetResult.WIN:
        return potential_payout
    if result in (BetResult.PUSH, BetResult.VOID):
        return stake
    return 0.0


@dataclass
class ParlayResolution:
    result: BetResult
    payout: float
    active_legs: int
    reduced_odds: Optional[int] = None


def resolve_parlay(
    leg_results: list[BetResult],
    leg_odds: list[int],
    stake: float,
    potential_payout: float,
    policy: str = REDUCTION_LINEAR,
) -> ParlayResolution:
    """Resolve a parlay once every leg has a result.

    Any lost leg loses the slip. Pushed or voided legs drop out: with none
    left the stake is refunded, otherwise the slip wins at reduced odds.
    """
    total = len(leg_results)
    if BetResult.LOSS in leg_results:
        return ParlayResolution(BetResult.LOSS, 0.0, total)

    active = [odds for result, odds in zip(leg_results, leg_odds) if result == BetResult.WIN]
    if not active:
        return ParlayResolution(BetResult.VOID, round(stake, 2), 0)
    if len(active) == total:
        return ParlayResolution(BetResult.WIN, round(potential_payout, 2), total)

    reduced_decimal = 1.0
    for odds in active:
        reduced_decimal *= american_to_decimal(odds)
    reduced_odds = decimal_to_american(reduced_decimal) if reduced_decimal > 1 else None

    if policy == REDUCTION_RECOMBINE:
        payout = stake * reduced_decimal
    else:
        payout = potential_payout * len(active) / total
    return ParlayResolution(BetResult.WIN, round(payout, 2), len(active), reduced_odds)
