"""Pure bet validation: no I/O. Callers load bankroll and open bets first."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from wagerledger.errors import LedgerValidationError, ValidationCode
from wagerledger.models.bet import BetRequest
from wagerledger.utils import ensure_utc, round_money, utcnow


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[ValidationCode] = None
    message: Optional[str] = None

    def raise_for_error(self, invalid_legs: Optional[list[int]] = None) -> None:
        if not self.valid:
            raise LedgerValidationError(self.error, self.message, invalid_legs=invalid_legs)


@dataclass
class ParlayValidationResult(ValidationResult):
    invalid_legs: list[int] = field(default_factory=list)

    def raise_for_error(self, invalid_legs: Optional[list[int]] = None) -> None:
        super().raise_for_error(invalid_legs or self.invalid_legs)


_OK = ValidationResult(True)


def _fail(code: ValidationCode, message: str) -> ValidationResult:
    return ValidationResult(False, code, message)


@dataclass(frozen=True)
class BetLimits:
    min_bet: float = 1.0
    max_bet: float = 500.0
    max_weekly_bets: int = 100
    min_parlay_legs: int = 2
    max_parlay_legs: int = 10


class BetValidator:
    def __init__(self, limits: BetLimits):
        self.limits = limits

    def check_stake(self, stake: float, balance: float) -> ValidationResult:
        if stake < self.limits.min_bet:
            return _fail(ValidationCode.INVALID_STAKE, f"Minimum bet is {self.limits.min_bet:g} units.")
        if stake > self.limits.max_bet:
            return _fail(ValidationCode.INVALID_STAKE, f"Maximum bet is {self.limits.max_bet:g} units.")
        if round(stake, 2) != stake:
            return _fail(ValidationCode.INVALID_STAKE, "Stake must be in whole cents.")
        if stake > round_money(balance):
            return _fail(
                ValidationCode.INSUFFICIENT_FUNDS,
                f"Insufficient balance: {balance:.2f} available, {stake:.2f} requested.",
            )
        return _OK

    @staticmethod
    def check_odds(odds: Optional[int]) -> ValidationResult:
        if odds is None or odds == 0 or -100 < odds < 100:
            return _fail(ValidationCode.INVALID_ODDS, f"Invalid American odds: {odds}.")
        return _OK

    @staticmethod
    def check_event_time(event_date: datetime, now: datetime) -> ValidationResult:
        if ensure_utc(event_date) <= now:
            return _fail(ValidationCode.GAME_ALREADY_STARTED, "Game has already started.")
        return _OK

    @staticmethod
    def check_duplicate(request: BetRequest, open_bets: list[dict]) -> ValidationResult:
        for bet in open_bets:
            if (
                bet["game_id"] == request.game_id
                and bet["market_type"] == request.market_type.value
                and bet["selection"].lower() == request.selection.lower()
            ):
                return _fail(ValidationCode.DUPLICATE_BET, "You already have a pending bet on this selection.")
        return _OK

    def check_weekly_limit(self, bankroll: dict) -> ValidationResult:
        if bankroll.get("total_bets", 0) >= self.limits.max_weekly_bets:
            return _fail(
                ValidationCode.MAX_BETS_EXCEEDED,
                f"Weekly limit of {self.limits.max_weekly_bets} bets reached.",
            )
        return _OK

    def _check_selection(
        self, request: BetRequest, open_bets: list[dict], now: datetime,
    ) -> ValidationResult:
        for result in (
            self.check_odds(request.odds),
            self.check_event_time(request.event_date, now),
            self.check_duplicate(request, open_bets),
        ):
            if not result.valid:
                return result
        return _OK

    def validate_bet(
        self,
        request: BetRequest,
        bankroll: dict,
        open_bets: list[dict],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        now = now or utcnow()
        result = self.check_stake(request.stake, bankroll["current_balance"])
        if not result.valid:
            return result
        result = self._check_selection(request, open_bets, now)
        if not result.valid:
            return result
        return self.check_weekly_limit(bankroll)

    def validate_parlay(
        self,
        selections: list[BetRequest],
        stake: float,
        bankroll: dict,
        open_bets: Optional[list[dict]] = None,
        now: Optional[datetime] = None,
    ) -> ParlayValidationResult:
        now = now or utcnow()
        open_bets = open_bets or []
        count = len(selections)
        if count < self.limits.min_parlay_legs:
            return ParlayValidationResult(
                False, ValidationCode.NOT_ENOUGH_LEGS,
                f"A parlay needs at least {self.limits.min_parlay_legs} selections.",
            )
        if count > self.limits.max_parlay_legs:
            return ParlayValidationResult(
                False, ValidationCode.MAX_LEGS_EXCEEDED,
                f"A parlay allows at most {self.limits.max_parlay_legs} selections.",
            )

        result = self.check_stake(stake, bankroll["current_balance"])
        if not result.valid:
            return ParlayValidationResult(False, result.error, result.message)

        invalid_legs: list[int] = []
        first_error: Optional[ValidationResult] = None
        seen_games: set[str] = set()
        for index, selection in enumerate(selections):
            if selection.game_id in seen_games:
                leg_result = _fail(ValidationCode.SAME_GAME_PARLAY, "Parlay legs must be on different games.")
            else:
                leg_result = self._check_selection(selection, open_bets, now)
            seen_games.add(selection.game_id)
            if not leg_result.valid:
                invalid_legs.append(index)
                first_error = first_error or leg_result

        if first_error:
            return ParlayValidationResult(False, first_error.error, first_error.message, invalid_legs)

        result = self.check_weekly_limit(bankroll)
        if not result.valid:
            return ParlayValidationResult(False, result.error, result.message)
        return ParlayValidationResult(True)
