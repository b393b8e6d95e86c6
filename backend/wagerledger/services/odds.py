"""
backend/wagerledger/services/odds.py

Purpose:
    American/decimal odds conversion and payout arithmetic. Pure functions,
    shared by validation, placement, slip previews and settlement.
"""

from math import prod


def american_to_decimal(odds: int) -> float:
    """+150 -> 2.5, -110 -> 1.909..."""
    if odds > 0:
        return 1 + odds / 100
    return 1 + 100 / abs(odds)


def decimal_to_american(decimal_odds: float) -> int:
    if decimal_odds >= 2:
        return round((decimal_odds - 1) * 100)
    return round(-100 / (decimal_odds - 1))


def calculate_payout(stake: float, odds: int) -> float:
    """Total return (stake included), rounded to cents."""
    return round(stake * american_to_decimal(odds), 2)


def combine_parlay_odds(odds: list[int]) -> tuple[float, int]:
    """Product of the legs' decimal odds, plus the American equivalent."""
    decimal_odds = prod(american_to_decimal(o) for o in odds)
    return decimal_odds, decimal_to_american(decimal_odds)


def calculate_parlay_payout(stake: float, odds: list[int]) -> float:
    decimal_odds, _ = combine_parlay_odds(odds)
    return round(stake * decimal_odds, 2)


def implied_probability(odds: int) -> float:
    """Implied win probability in percent."""
    if odds > 0:
        return round(100 / (odds + 100) * 100, 2)
    return round(abs(odds) / (abs(odds) + 100) * 100, 2)


def calculate_roi(total_won: float, total_lost: float, total_wagered: float) -> float:
    if not total_wagered:
        return 0.0
    return round((total_won - total_lost) / total_wagered * 100, 2)


def split_stake(stake: float, legs: int) -> list[float]:
    """Even split to cents; the last leg absorbs the rounding remainder."""
    share = round(stake / legs, 2)
    shares = [share] * (legs - 1)
    shares.append(round(stake - share * (legs - 1), 2))
    return shares
