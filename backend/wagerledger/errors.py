"""
backend/wagerledger/errors.py

Purpose:
    Domain exceptions raised by the ledger services. The FastAPI app maps each
    class to an HTTP status in main.py; settlement collects them per bet.
"""

from enum import Enum
from typing import Optional


class ValidationCode(str, Enum):
    INVALID_STAKE = "INVALID_STAKE"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_ODDS = "INVALID_ODDS"
    GAME_ALREADY_STARTED = "GAME_ALREADY_STARTED"
    DUPLICATE_BET = "DUPLICATE_BET"
    MAX_BETS_EXCEEDED = "MAX_BETS_EXCEEDED"
    NOT_ENOUGH_LEGS = "NOT_ENOUGH_LEGS"
    MAX_LEGS_EXCEEDED = "MAX_LEGS_EXCEEDED"
    SAME_GAME_PARLAY = "SAME_GAME_PARLAY"
    NOT_CANCELLABLE = "NOT_CANCELLABLE"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    EMPTY_BET_SLIP = "EMPTY_BET_SLIP"


class LedgerError(Exception):
    status_code = 500
    code = "LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class LedgerValidationError(LedgerError):
    """A business rule rejected the request. Never retried."""

    status_code = 400

    def __init__(
        self,
        code: ValidationCode,
        message: str,
        invalid_legs: Optional[list[int]] = None,
    ):
        super().__init__(message)
        self.code = code.value
        self.validation_code = code
        self.invalid_legs = invalid_legs or []

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.invalid_legs:
            body["invalid_legs"] = self.invalid_legs
        return body


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class TransactionError(LedgerError):
    """The transaction was aborted and rolled back; safe to retry."""

    status_code = 503
    code = "TRANSACTION_FAILED"


class SettlementError(LedgerError):
    code = "SETTLEMENT_FAILED"
