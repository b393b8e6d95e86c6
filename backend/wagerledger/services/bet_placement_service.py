"""
backend/wagerledger/services/bet_placement_service.py

Purpose:
    Places straight bets and parlays, and cancels them before kickoff. Each
    operation runs in one MongoDB transaction: bankroll get-or-create,
    validation against in-transaction reads, bet insert and the guarded
    bankroll debit commit or roll back together.

Dependencies:
    - motor (sessions / transactions)
    - wagerledger.services.bankroll_service
    - wagerledger.services.bet_validator
"""

import logging
import uuid
from typing import Optional

from pymongo import ReturnDocument

from wagerledger.database import run_in_transaction
from wagerledger.errors import LedgerValidationError, NotFoundError, ValidationCode
from wagerledger.models.bet import (
    OPEN_STATUSES,
    BetMetadata,
    BetRequest,
    BetStatus,
    BetType,
)
from wagerledger.services.audit_service import AuditService
from wagerledger.services.bankroll_cache import BankrollCache
from wagerledger.services.bankroll_service import BankrollService
from wagerledger.services.bet_validator import BetValidator
from wagerledger.services.odds import calculate_payout, combine_parlay_odds, split_stake
from wagerledger.utils import ensure_utc, to_object_id, utcnow

logger = logging.getLogger("wagerledger.bet_placement")


def _bet_doc(
    request: BetRequest,
    *,
    user_id: str,
    bankroll_id: str,
    stake: float,
    potential_payout: float,
    metadata: BetMetadata,
    bet_slip_id: Optional[str] = None,
) -> dict:
    now = metadata.placed_at
    return {
        "user_id": user_id,
        "league_id": request.league_id,
        "bankroll_id": bankroll_id,
        "bet_slip_id": bet_slip_id,
        "game_id": request.game_id,
        "event_date": request.event_date,
        "bet_type": (BetType.parlay if bet_slip_id else BetType.straight).value,
        "market_type": request.market_type.value,
        "selection": request.selection,
        "line": request.line,
        "odds": request.odds,
        "stake": stake,
        "potential_payout": potential_payout,
        "actual_payout": None,
        "status": BetStatus.pending.value,
        "result": None,
        "settled_at": None,
        "home_team": request.home_team,
        "away_team": request.away_team,
        "metadata": metadata.model_dump(),
        "created_at": now,
        "updated_at": now,
    }


class BetPlacementService:
    def __init__(
        self,
        client,
        db,
        bankrolls: BankrollService,
        validator: BetValidator,
        cache: BankrollCache,
        audit: AuditService,
    ):
        self.client = client
        self.db = db
        self.bankrolls = bankrolls
        self.validator = validator
        self.cache = cache
        self.audit = audit

    async def _open_bets(self, user_id: str, league_id: str, game_ids: list[str], session) -> list[dict]:
        return await self.db.bets.find(
            {
                "user_id": user_id,
                "league_id": league_id,
                "game_id": {"$in": game_ids},
                "status": {"$in": list(OPEN_STATUSES)},
            },
            session=session,
        ).to_list(length=None)

    async def place_single_bet(self, request: BetRequest) -> tuple[dict, str]:
        """Place a straight bet. Returns (bet document, transaction id)."""
        transaction_id = uuid.uuid4().hex
        user_id = request.user_id

        async def _place(session):
            now = utcnow()
            bankroll = await self.bankrolls.initialize_weekly_bankroll(
                user_id, request.league_id, session=session,
            )
            open_bets = await self._open_bets(user_id, request.league_id, [request.game_id], session)
            self.validator.validate_bet(request, bankroll, open_bets, now).raise_for_error()

            bankroll_id = str(bankroll["_id"])
            doc = _bet_doc(
                request,
                user_id=user_id,
                bankroll_id=bankroll_id,
                stake=request.stake,
                potential_payout=calculate_payout(request.stake, request.odds),
                metadata=BetMetadata(transaction_id=transaction_id, placed_at=now),
            )
            result = await self.db.bets.insert_one(doc, session=session)
            doc["_id"] = result.inserted_id
            await self.bankrolls.record_bet_placement(bankroll_id, request.stake, session=session)
            return doc

        bet = await run_in_transaction(self.client, _place, label=f"place_bet:{transaction_id}")
        await self.cache.invalidate(user_id=user_id, league_id=request.league_id)
        await self.audit.log(
            actor_id=user_id,
            target_id=str(bet["_id"]),
            action="BET_PLACED",
            metadata={"transaction_id": transaction_id, "stake": bet["stake"], "odds": bet["odds"]},
        )
        logger.info(
            "Bet placed: tx=%s user=%s game=%s market=%s stake=%.2f odds=%d",
            transaction_id, user_id, bet["game_id"], bet["market_type"], bet["stake"], bet["odds"],
        )
        return bet, transaction_id

    async def place_parlay_bet(
        self,
        user_id: str,
        league_id: str,
        selections: list[BetRequest],
        stake: float,
    ) -> tuple[dict, list[dict], str]:
        """Place a parlay: one bet slip, one leg per selection, one debit.

        Returns (bet slip document, leg documents, transaction id).
        """
        transaction_id = uuid.uuid4().hex

        async def _place(session):
            now = utcnow()
            bankroll = await self.bankrolls.initialize_weekly_bankroll(user_id, league_id, session=session)
            open_bets = await self._open_bets(user_id, league_id, [s.game_id for s in selections], session)
            self.validator.validate_parlay(selections, stake, bankroll, open_bets, now).raise_for_error()
            decimal_odds, american_odds = combine_parlay_odds([s.odds for s in selections])
            potential_payout = round(stake * decimal_odds, 2)

            bankroll_id = str(bankroll["_id"])
            slip = {
                "user_id": user_id,
                "league_id": league_id,
                "bankroll_id": bankroll_id,
                "leg_count": len(selections),
                "total_stake": stake,
                "total_odds": american_odds,
                "decimal_odds": round(decimal_odds, 4),
                "potential_payout": potential_payout,
                "actual_payout": None,
                "reduced_odds": None,
                "active_legs": None,
                "status": BetStatus.pending.value,
                "result": None,
                "settled_at": None,
                "transaction_id": transaction_id,
                "created_at": now,
                "updated_at": now,
            }
            result = await self.db.bet_slips.insert_one(slip, session=session)
            slip["_id"] = result.inserted_id
            slip_id = str(result.inserted_id)

            legs = []
            stakes = split_stake(stake, len(selections))
            payouts = split_stake(potential_payout, len(selections))
            for index, selection in enumerate(selections):
                leg_request = selection.model_copy(update={"league_id": league_id})
                legs.append(_bet_doc(
                    leg_request,
                    user_id=user_id,
                    bankroll_id=bankroll_id,
                    stake=stakes[index],
                    potential_payout=payouts[index],
                    bet_slip_id=slip_id,
                    metadata=BetMetadata(
                        transaction_id=transaction_id,
                        placed_at=now,
                        parlay_leg=index + 1,
                        total_legs=len(selections),
                    ),
                ))
            inserted = await self.db.bets.insert_many(legs, session=session)
            for leg, leg_id in zip(legs, inserted.inserted_ids):
                leg["_id"] = leg_id

            # The whole parlay counts as one bet against the bankroll
            await self.bankrolls.record_bet_placement(bankroll_id, stake, session=session)
            return slip, legs

        slip, legs = await run_in_transaction(self.client, _place, label=f"place_parlay:{transaction_id}")
        await self.cache.invalidate(user_id=user_id, league_id=league_id)
        await self.audit.log(
            actor_id=user_id,
            target_id=str(slip["_id"]),
            action="PARLAY_PLACED",
            metadata={"transaction_id": transaction_id, "stake": stake, "legs": len(legs)},
        )
        logger.info(
            "Parlay placed: tx=%s user=%s legs=%d stake=%.2f odds=%+d payout=%.2f",
            transaction_id, user_id, len(legs), stake, slip["total_odds"], slip["potential_payout"],
        )
        return slip, legs, transaction_id

    async def cancel_bet(self, bet_id: str, user_id: str) -> dict:
        """Cancel a pending straight bet before its game starts; full refund."""
        oid = to_object_id(bet_id, "Bet")
        bet = await self.db.bets.find_one({"_id": oid, "user_id": user_id})
        if not bet:
            raise NotFoundError(f"Bet {bet_id} not found.")
        if bet.get("bet_slip_id"):
            raise LedgerValidationError(
                ValidationCode.NOT_CANCELLABLE,
                "Parlay legs cannot be cancelled individually; cancel the bet slip.",
            )
        self._assert_cancellable(bet["status"], bet["event_date"])

        async def _cancel(session):
            now = utcnow()
            cancelled = await self.db.bets.find_one_and_update(
                {
                    "_id": oid,
                    "user_id": user_id,
                    "status": BetStatus.pending.value,
                    "event_date": {"$gt": now},
                },
                {"$set": {
                    "status": BetStatus.cancelled.value,
                    "metadata.cancelled_at": now,
                    "updated_at": now,
                }},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not cancelled:
                raise LedgerValidationError(ValidationCode.NOT_CANCELLABLE, "Bet can no longer be cancelled.")
            await self.bankrolls.record_bet_cancellation(cancelled["bankroll_id"], cancelled["stake"], session=session)
            return cancelled

        cancelled = await run_in_transaction(self.client, _cancel, label=f"cancel_bet:{bet_id}")
        await self.cache.invalidate(user_id=user_id, league_id=cancelled["league_id"])
        await self.audit.log(
            actor_id=user_id, target_id=bet_id, action="BET_CANCELLED",
            metadata={"refund": cancelled["stake"]},
        )
        logger.info("Bet cancelled: bet=%s user=%s refund=%.2f", bet_id, user_id, cancelled["stake"])
        return cancelled

    async def cancel_bet_slip(self, slip_id: str, user_id: str) -> dict:
        """Cancel a whole parlay while none of its games has started."""
        oid = to_object_id(slip_id, "Bet slip")
        slip = await self.db.bet_slips.find_one({"_id": oid, "user_id": user_id})
        if not slip:
            raise NotFoundError(f"Bet slip {slip_id} not found.")
        legs = await self.db.bets.find({"bet_slip_id": slip_id}).to_list(length=None)
        self._assert_cancellable(slip["status"], min(leg["event_date"] for leg in legs))
        for leg in legs:
            self._assert_cancellable(leg["status"], leg["event_date"])

        async def _cancel(session):
            now = utcnow()
            cancelled = await self.db.bet_slips.find_one_and_update(
                {"_id": oid, "user_id": user_id, "status": BetStatus.pending.value},
                {"$set": {"status": BetStatus.cancelled.value, "updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not cancelled:
                raise LedgerValidationError(ValidationCode.NOT_CANCELLABLE, "Bet slip can no longer be cancelled.")
            result = await self.db.bets.update_many(
                {"bet_slip_id": slip_id, "status": BetStatus.pending.value, "event_date": {"$gt": now}},
                {"$set": {
                    "status": BetStatus.cancelled.value,
                    "metadata.cancelled_at": now,
                    "updated_at": now,
                }},
                session=session,
            )
            if result.modified_count != cancelled["leg_count"]:
                raise LedgerValidationError(ValidationCode.NOT_CANCELLABLE, "A parlay leg has already started.")
            await self.bankrolls.record_bet_cancellation(
                cancelled["bankroll_id"], cancelled["total_stake"], session=session,
            )
            return cancelled

        cancelled = await run_in_transaction(self.client, _cancel, label=f"cancel_slip:{slip_id}")
        await self.cache.invalidate(user_id=user_id, league_id=cancelled["league_id"])
        await self.audit.log(
            actor_id=user_id, target_id=slip_id, action="PARLAY_CANCELLED",
            metadata={"refund": cancelled["total_stake"]},
        )
        logger.info("Parlay cancelled: slip=%s user=%s refund=%.2f", slip_id, user_id, cancelled["total_stake"])
        return cancelled

    @staticmethod
    def _assert_cancellable(status: str, event_date) -> None:
        if status != BetStatus.pending.value:
            raise LedgerValidationError(ValidationCode.NOT_CANCELLABLE, f"Bet is {status} and cannot be cancelled.")
        if ensure_utc(event_date) <= utcnow():
            raise LedgerValidationError(ValidationCode.GAME_ALREADY_STARTED, "Game has already started.")

    # ---------- Queries ----------

    async def get_bet(self, bet_id: str, user_id: str) -> dict:
        bet = await self.db.bets.find_one({"_id": to_object_id(bet_id, "Bet"), "user_id": user_id})
        if not bet:
            raise NotFoundError(f"Bet {bet_id} not found.")
        return bet

    async def get_bet_slip_with_legs(self, slip_id: str, user_id: str) -> tuple[dict, list[dict]]:
        slip = await self.db.bet_slips.find_one({"_id": to_object_id(slip_id, "Bet slip"), "user_id": user_id})
        if not slip:
            raise NotFoundError(f"Bet slip {slip_id} not found.")
        legs = await self.db.bets.find({"bet_slip_id": slip_id}).sort("metadata.parlay_leg", 1).to_list(length=None)
        return slip, legs

    async def get_active_bets(self, user_id: str, league_id: Optional[str] = None) -> list[dict]:
        query = {"user_id": user_id, "status": {"$in": list(OPEN_STATUSES)}}
        if league_id:
            query["league_id"] = league_id
        return await self.db.bets.find(query).sort("event_date", 1).to_list(length=500)

    async def get_bet_history(
        self,
        user_id: str,
        league_id: Optional[str] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> list[dict]:
        query = {"user_id": user_id, "status": {"$nin": list(OPEN_STATUSES)}}
        if league_id:
            query["league_id"] = league_id
        return await self.db.bets.find(query).sort("created_at", -1).skip(skip).to_list(length=limit)
