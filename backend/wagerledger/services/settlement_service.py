"""
backend/wagerledger/services/settlement_service.py

Purpose:
    Settles open bets against final game results. Straight bets and parlay
    slips are independent settlement units; each unit commits in its own
    transaction, units run concurrently in small batches, and a failing unit
    is reported without affecting the rest of the batch.

    Every status transition is guarded on the bet (or slip) still being open,
    so re-running a batch after a crash or retry settles nothing twice.

Dependencies:
    - motor (sessions / transactions)
    - wagerledger.services.market_rules
    - wagerledger.services.bankroll_service
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from pymongo import ReturnDocument

from wagerledger.database import run_in_transaction
from wagerledger.errors import LedgerValidationError, NotFoundError, ValidationCode
from wagerledger.models.bet import OPEN_STATUSES, RESULT_TO_STATUS, BetResult, BetStatus
from wagerledger.models.settlement import (
    GameResult,
    SettledBet,
    SettledBy,
    SettlementErrorEntry,
    SettlementReport,
)
from wagerledger.services.audit_service import SYSTEM_ACTOR, AuditService
from wagerledger.services.bankroll_cache import BankrollCache
from wagerledger.services.bankroll_service import BankrollService
from wagerledger.services.market_rules import (
    REDUCTION_LINEAR,
    credit_for,
    evaluate_bet,
    resolve_parlay,
)
from wagerledger.services.odds import split_stake
from wagerledger.utils import to_object_id, utcnow

logger = logging.getLogger("wagerledger.settlement")

_OPEN = {"$in": list(OPEN_STATUSES)}


def _settlement_doc(
    bet: dict,
    *,
    payout: float,
    result: BetResult,
    settled_by: SettledBy,
    notes: Optional[str],
    game_score: Optional[dict],
    settled_at,
) -> dict:
    return {
        "bet_id": str(bet["_id"]),
        "bet_slip_id": bet.get("bet_slip_id"),
        "user_id": bet["user_id"],
        "league_id": bet["league_id"],
        "bankroll_id": bet["bankroll_id"],
        "game_id": bet["game_id"],
        "stake": bet["stake"],
        "payout": payout,
        "result": result.value,
        "game_score": game_score,
        "settled_by": settled_by.value,
        "notes": notes,
        "settled_at": settled_at,
    }


class SettlementService:
    def __init__(
        self,
        client,
        db,
        bankrolls: BankrollService,
        cache: BankrollCache,
        audit: AuditService,
        *,
        batch_size: int = 10,
        reduction_policy: str = REDUCTION_LINEAR,
    ):
        self.client = client
        self.db = db
        self.bankrolls = bankrolls
        self.cache = cache
        self.audit = audit
        self.batch_size = max(1, batch_size)
        self.reduction_policy = reduction_policy

    # ---------- Batch entry point ----------

    async def settle_completed_games(self, results: list[GameResult]) -> SettlementReport:
        games = {r.game_id: r for r in results}
        report = SettlementReport()
        if not games:
            return report

        open_bets = await self.db.bets.find(
            {"game_id": {"$in": list(games)}, "status": _OPEN}
        ).to_list(length=None)

        units: list[tuple[dict, Callable[[], Awaitable[Optional[SettledBet]]]]] = []
        slip_ids: list[str] = []
        for bet in open_bets:
            slip_id = bet.get("bet_slip_id")
            if slip_id:
                if slip_id not in slip_ids:
                    slip_ids.append(slip_id)
                continue
            units.append((
                {"bet_id": str(bet["_id"])},
                lambda bet=bet: self._settle_straight(bet, games[bet["game_id"]]),
            ))
        for slip_id in slip_ids:
            units.append((
                {"bet_slip_id": slip_id},
                lambda slip_id=slip_id: self._settle_parlay(slip_id, games),
            ))

        logger.info(
            "Settlement batch: games=%d straight=%d parlays=%d",
            len(games), len(units) - len(slip_ids), len(slip_ids),
        )
        for start in range(0, len(units), self.batch_size):
            chunk = units[start:start + self.batch_size]
            outcomes = await asyncio.gather(*(self._run_unit(key, unit) for key, unit in chunk))
            for settled, error in outcomes:
                if settled:
                    report.settled_bets.append(settled)
                if error:
                    report.errors.append(error)

        report.settled_count = len(report.settled_bets)
        logger.info(
            "Settlement complete: settled=%d errors=%d",
            report.settled_count, len(report.errors),
        )
        return report

    async def _run_unit(
        self, key: dict, unit: Callable[[], Awaitable[Optional[SettledBet]]],
    ) -> tuple[Optional[SettledBet], Optional[SettlementErrorEntry]]:
        try:
            return await unit(), None
        except Exception as exc:
            # Reported per unit; a re-run of the batch retries it
            logger.exception("Settlement failed for %s", key)
            return None, SettlementErrorEntry(**key, error=str(exc))

    # ---------- Straight bets ----------

    async def _settle_straight(
        self,
        bet: dict,
        game: Optional[GameResult],
        *,
        result: Optional[BetResult] = None,
        settled_by: SettledBy = SettledBy.AUTO,
        notes: Optional[str] = None,
    ) -> Optional[SettledBet]:
        if result is None:
            result = evaluate_bet(bet, game)
        credit = credit_for(result, bet["stake"], bet["potential_payout"])
        game_score = game.score_snapshot() if game else None

        async def _settle(session):
            now = utcnow()
            update = {
                "status": RESULT_TO_STATUS[result].value,
                "result": result.value,
                "actual_payout": credit,
                "settled_at": now,
                "updated_at": now,
                "metadata.game_score": game_score,
            }
            if settled_by == SettledBy.MANUAL:
                update["metadata.manual_settlement"] = True
                update["metadata.notes"] = notes
            settled = await self.db.bets.find_one_and_update(
                {"_id": bet["_id"], "status": _OPEN},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not settled:
                return None
            await self.bankrolls.record_bet_settlement(
                bet["bankroll_id"], bet["stake"], credit, result, session=session,
            )
            await self.db.settlements.insert_one(
                _settlement_doc(
                    bet, payout=credit, result=result, settled_by=settled_by,
                    notes=notes, game_score=game_score, settled_at=now,
                ),
                session=session,
            )
            return settled

        settled = await run_in_transaction(self.client, _settle, label=f"settle_bet:{bet['_id']}")
        if settled is None:
            logger.debug("Bet %s already settled, skipping", bet["_id"])
            return None

        await self.cache.invalidate(user_id=bet["user_id"], league_id=bet["league_id"])
        logger.info(
            "Bet settled: bet=%s result=%s stake=%.2f credit=%.2f by=%s",
            bet["_id"], result.value, bet["stake"], credit, settled_by.value,
        )
        return SettledBet(bet_id=str(bet["_id"]), result=result, payout=credit)

    # ---------- Parlays ----------

    async def _settle_parlay(
        self,
        slip_id: str,
        games: dict[str, GameResult],
        *,
        overrides: Optional[dict[str, BetResult]] = None,
        settled_by: SettledBy = SettledBy.AUTO,
        notes: Optional[str] = None,
    ) -> Optional[SettledBet]:
        """Grade the slip's legs covered by ``games`` or ``overrides``.

        The slip itself resolves, and the bankroll is credited, only once every
        leg carries a result. Until then graded legs wait on the slip.
        """
        oid = to_object_id(slip_id, "Bet slip")
        overrides = overrides or {}

        async def _settle(session):
            now = utcnow()
            slip = await self.db.bet_slips.find_one({"_id": oid, "status": _OPEN}, session=session)
            if not slip:
                return None
            legs = await self.db.bets.find(
                {"bet_slip_id": slip_id}, session=session,
            ).sort("metadata.parlay_leg", 1).to_list(length=None)

            for index, leg in enumerate(legs):
                if leg["status"] not in OPEN_STATUSES:
                    continue
                leg_id = str(leg["_id"])
                game = games.get(leg["game_id"])
                if leg_id not in overrides and game is None:
                    continue
                result = overrides.get(leg_id) or evaluate_bet(leg, game)
                update = {
                    "status": RESULT_TO_STATUS[result].value,
                    "result": result.value,
                    "settled_at": now,
                    "updated_at": now,
                    "metadata.game_score": game.score_snapshot() if game else None,
                }
                if leg_id in overrides:
                    update["metadata.manual_settlement"] = True
                    update["metadata.notes"] = notes
                graded = await self.db.bets.find_one_and_update(
                    {"_id": leg["_id"], "status": _OPEN},
                    {"$set": update},
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
                if graded:
                    legs[index] = graded

            if any(leg.get("result") is None for leg in legs):
                return None

            resolution = resolve_parlay(
                [BetResult(leg["result"]) for leg in legs],
                [leg["odds"] for leg in legs],
                slip["total_stake"],
                slip["potential_payout"],
                self.reduction_policy,
            )
            resolved = await self.db.bet_slips.find_one_and_update(
                {"_id": oid, "status": _OPEN},
                {"$set": {
                    "status": RESULT_TO_STATUS[resolution.result].value,
                    "result": resolution.result.value,
                    "actual_payout": resolution.payout,
                    "reduced_odds": resolution.reduced_odds,
                    "active_legs": resolution.active_legs,
                    "settled_at": now,
                    "updated_at": now,
                }},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not resolved:
                return None

            # Per-leg payout shares are informational; the bankroll moves once
            shares = split_stake(resolution.payout, len(legs)) if resolution.payout else [0.0] * len(legs)
            for leg, share in zip(legs, shares):
                await self.db.bets.update_one(
                    {"_id": leg["_id"]},
                    {"$set": {"actual_payout": share, "updated_at": now}},
                    session=session,
                )
                await self.db.settlements.insert_one(
                    _settlement_doc(
                        leg,
                        payout=share,
                        result=BetResult(leg["result"]),
                        settled_by=settled_by,
                        notes=notes,
                        game_score=leg.get("metadata", {}).get("game_score"),
                        settled_at=now,
                    ),
                    session=session,
                )
            await self.bankrolls.record_bet_settlement(
                slip["bankroll_id"], slip["total_stake"], resolution.payout, resolution.result,
                session=session,
            )
            return resolved

        resolved = await run_in_transaction(self.client, _settle, label=f"settle_parlay:{slip_id}")
        if resolved is None:
            logger.debug("Parlay %s not resolved in this pass", slip_id)
            return None

        await self.cache.invalidate(user_id=resolved["user_id"], league_id=resolved["league_id"])
        logger.info(
            "Parlay settled: slip=%s result=%s active_legs=%d/%d credit=%.2f",
            slip_id, resolved["result"], resolved["active_legs"], resolved["leg_count"],
            resolved["actual_payout"],
        )
        return SettledBet(
            bet_slip_id=slip_id,
            result=BetResult(resolved["result"]),
            payout=resolved["actual_payout"],
        )

    # ---------- Admin operations ----------

    async def manually_settle_bet(
        self,
        bet_id: str,
        result: BetResult,
        notes: Optional[str] = None,
        actor_id: str = SYSTEM_ACTOR,
    ) -> dict:
        """Force a result onto an open bet or parlay leg.

        Straight bets are credited as in automatic settlement. A parlay leg is
        only graded; its slip resolves once the last leg has a result.
        """
        result = BetResult(result)
        oid = to_object_id(bet_id, "Bet")
        bet = await self.db.bets.find_one({"_id": oid})
        if not bet:
            raise NotFoundError(f"Bet {bet_id} not found.")
        if bet["status"] not in OPEN_STATUSES:
            raise LedgerValidationError(ValidationCode.ALREADY_SETTLED, f"Bet is already {bet['status']}.")

        if bet.get("bet_slip_id"):
            await self._settle_parlay(
                bet["bet_slip_id"], {},
                overrides={bet_id: result}, settled_by=SettledBy.MANUAL, notes=notes,
            )
            updated = await self.db.bets.find_one({"_id": oid})
            graded_here = (
                updated["status"] not in OPEN_STATUSES
                and updated.get("result") == result.value
                and updated.get("metadata", {}).get("manual_settlement") is True
            )
            if not graded_here:
                raise LedgerValidationError(ValidationCode.ALREADY_SETTLED, "Bet was settled concurrently.")
        else:
            settled = await self._settle_straight(bet, None, result=result, settled_by=SettledBy.MANUAL, notes=notes)
            if settled is None:
                raise LedgerValidationError(ValidationCode.ALREADY_SETTLED, "Bet was settled concurrently.")
            updated = await self.db.bets.find_one({"_id": oid})

        await self.audit.log(
            actor_id=actor_id,
            target_id=bet_id,
            action="BET_SETTLED_MANUAL",
            metadata={"result": result.value, "notes": notes, "bet_slip_id": bet.get("bet_slip_id")},
        )
        logger.warning("Manual settlement: bet=%s result=%s actor=%s", bet_id, result.value, actor_id)
        return updated

    async def mark_games_live(self, game_ids: list[str]) -> int:
        """Move pending bets on started games to LIVE."""
        if not game_ids:
            return 0
        result = await self.db.bets.update_many(
            {"game_id": {"$in": list(game_ids)}, "status": BetStatus.pending.value},
            {"$set": {"status": BetStatus.live.value, "updated_at": utcnow()}},
        )
        if result.modified_count:
            logger.info("Marked %d bets live across %d games", result.modified_count, len(game_ids))
        return result.modified_count
