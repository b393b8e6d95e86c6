"""
backend/tests/test_odds_math.py

Purpose:
    Odds conversion, payout arithmetic and the season/week calendar.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wagerledger.services.odds import (
    american_to_decimal,
    calculate_parlay_payout,
    calculate_payout,
    calculate_roi,
    combine_parlay_odds,
    decimal_to_american,
    implied_probability,
    split_stake,
)
from wagerledger.services.season_calendar import SeasonCalendar


def test_american_to_decimal_positive_and_negative():
    assert american_to_decimal(150) == pytest.approx(2.5)
    assert american_to_decimal(-110) == pytest.approx(1.90909, rel=1e-4)
    assert american_to_decimal(100) == pytest.approx(2.0)


def test_decimal_to_american_boundaries():
    assert decimal_to_american(2.5) == 150
    assert decimal_to_american(2.0) == 100
    assert decimal_to_american(1.5) == -200


def test_single_payouts_include_stake():
    assert calculate_payout(100, 150) == 250.00
    assert calculate_payout(110, -110) == 210.00


def test_two_leg_parlay_odds():
    decimal_odds, american = combine_parlay_odds([150, -110])
    assert decimal_odds == pytest.approx(4.7727, rel=1e-4)
    assert american == 377
    assert calculate_parlay_payout(10, [150, -110]) == 47.73


def test_implied_probability():
    assert implied_probability(100) == 50.0
    assert implied_probability(-200) == pytest.approx(66.67)


def test_roi_handles_zero_wagered():
    assert calculate_roi(0, 0, 0) == 0.0
    assert calculate_roi(150, 100, 250) == 20.0


def test_split_stake_puts_remainder_on_last_leg():
    shares = split_stake(100, 3)
    assert shares == [33.33, 33.33, 33.34]
    assert round(sum(shares), 2) == 100


def test_calendar_season_rolls_over_in_september():
    calendar = SeasonCalendar(start_month=9, weeks=18)
    assert calendar.season_for(datetime(2025, 8, 31, tzinfo=timezone.utc)) == 2024
    assert calendar.season_for(datetime(2025, 9, 1, tzinfo=timezone.utc)) == 2025


def test_calendar_week_is_clamped():
    calendar = SeasonCalendar(start_month=9, weeks=18)
    assert calendar.week_for(datetime(2025, 9, 1, tzinfo=timezone.utc)) == 1
    assert calendar.week_for(datetime(2025, 9, 8, tzinfo=timezone.utc)) == 2
    assert calendar.week_for(datetime(2026, 3, 1, tzinfo=timezone.utc)) == 18


def test_absolute_week_is_monotonic_across_seasons():
    calendar = SeasonCalendar()
    assert calendar.absolute_week(2025, 1) > calendar.absolute_week(2024, 18)
