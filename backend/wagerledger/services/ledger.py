"""
backend/wagerledger/services/ledger.py

Purpose:
    Builds the ledger's service graph once per process. The FastAPI lifespan,
    the rollover worker and the CLI tools all construct services through
    build_ledger so that every caller shares one configuration.

Dependencies:
    - wagerledger.config
"""

from dataclasses import dataclass

from wagerledger.config import Settings
from wagerledger.services.audit_service import AuditService
from wagerledger.services.bankroll_cache import BankrollCache
from wagerledger.services.bankroll_service import BankrollService
from wagerledger.services.bet_placement_service import BetPlacementService
from wagerledger.services.bet_slip_service import BetSlipService
from wagerledger.services.bet_validator import BetLimits, BetValidator
from wagerledger.services.season_calendar import SeasonCalendar
from wagerledger.services.settlement_service import SettlementService


@dataclass
class Ledger:
    db: object
    calendar: SeasonCalendar
    bankrolls: BankrollService
    cache: BankrollCache
    validator: BetValidator
    placement: BetPlacementService
    bet_slips: BetSlipService
    settlement: SettlementService
    audit: AuditService


def build_ledger(client, db, settings: Settings) -> Ledger:
    calendar = SeasonCalendar(start_month=settings.SEASON_START_MONTH, weeks=settings.SEASON_WEEKS)
    audit = AuditService(db)
    cache = BankrollCache(db, settings.BANKROLL_CACHE_TTL_SECONDS)
    bankrolls = BankrollService(
        db,
        calendar,
        weekly_bankroll=settings.WEEKLY_BANKROLL,
        archive_after_weeks=settings.BANKROLL_ARCHIVE_AFTER_WEEKS,
    )
    validator = BetValidator(BetLimits(
        min_bet=settings.MIN_BET,
        max_bet=settings.MAX_BET,
        max_weekly_bets=settings.MAX_WEEKLY_BETS,
        min_parlay_legs=settings.MIN_PARLAY_LEGS,
        max_parlay_legs=settings.MAX_PARLAY_LEGS,
    ))
    placement = BetPlacementService(client, db, bankrolls, validator, cache, audit)
    return Ledger(
        db=db,
        calendar=calendar,
        bankrolls=bankrolls,
        cache=cache,
        validator=validator,
        placement=placement,
        bet_slips=BetSlipService(db, placement, settings.BET_SLIP_TTL_SECONDS),
        settlement=SettlementService(
            client,
            db,
            bankrolls,
            cache,
            audit,
            batch_size=settings.SETTLEMENT_BATCH_SIZE,
            reduction_policy=settings.PARLAY_REDUCTION_POLICY,
        ),
        audit=audit,
    )
