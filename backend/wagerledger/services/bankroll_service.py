"""
backend/wagerledger/services/bankroll_service.py

Purpose:
    Weekly bankroll engine. The only code that mutates a bankroll balance;
    every mutation is a single guarded find_one_and_update run inside the
    caller's transaction session.

Dependencies:
    - motor / pymongo
    - wagerledger.services.season_calendar
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument

from wagerledger.errors import LedgerValidationError, NotFoundError, ValidationCode
from wagerledger.models.bankroll import BankrollStatus, BettingStats
from wagerledger.models.bet import BetResult, BetStatus, BetType
from wagerledger.services.odds import calculate_roi
from wagerledger.services.season_calendar import SeasonCalendar
from wagerledger.utils import ensure_utc, round_money, to_object_id, utcnow

logger = logging.getLogger("wagerledger.bankroll_service")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_MONEY_FIELDS = ("current_balance", "total_wagered", "total_won", "total_lost", "total_refunded")
# Half a cent: absorbs binary float drift in $inc on cent amounts
_CENT_TOLERANCE = 0.005

_RESULT_COUNTER = {
    BetResult.WIN: "won_bets",
    BetResult.LOSS: "lost_bets",
    BetResult.PUSH: "push_bets",
    BetResult.VOID: "void_bets",
}


class BankrollService:
    def __init__(
        self,
        db,
        calendar: SeasonCalendar,
        *,
        weekly_bankroll: float = 1000.0,
        archive_after_weeks: int = 12,
    ):
        self.db = db
        self.calendar = calendar
        self.weekly_bankroll = float(weekly_bankroll)
        self.archive_after_weeks = archive_after_weeks

    async def initialize_weekly_bankroll(
        self,
        user_id: str,
        league_id: str,
        week: Optional[int] = None,
        season: Optional[int] = None,
        session=None,
    ) -> dict:
        """Get or create the bankroll for a week. Never resets an existing one."""
        if season is None:
            season = self.calendar.season_for()
        if week is None:
            week = self.calendar.week_for()

        now = utcnow()
        bankroll = await self.db.bankrolls.find_one_and_update(
            {"user_id": user_id, "league_id": league_id, "season": season, "week": week},
            {
                "$setOnInsert": {
                    "week_index": self.calendar.absolute_week(season, week),
                    "starting_balance": self.weekly_bankroll,
                    "current_balance": self.weekly_bankroll,
                    "total_bets": 0,
                    "pending_bets": 0,
                    "won_bets": 0,
                    "lost_bets": 0,
                    "push_bets": 0,
                    "void_bets": 0,
                    "total_wagered": 0.0,
                    "total_won": 0.0,
                    "total_lost": 0.0,
                    "total_refunded": 0.0,
                    "status": BankrollStatus.active.value,
                    "created_at": now,
                    "updated_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        logger.debug(
            "Bankroll ready: user=%s league=%s season=%d week=%d balance=%.2f",
            user_id, league_id, season, week, bankroll["current_balance"],
        )
        return bankroll

    async def get_bankroll(
        self,
        user_id: str,
        league_id: str,
        week: Optional[int] = None,
        season: Optional[int] = None,
        session=None,
    ) -> Optional[dict]:
        if season is None:
            season = self.calendar.season_for()
        if week is None:
            week = self.calendar.week_for()
        return await self.db.bankrolls.find_one(
            {"user_id": user_id, "league_id": league_id, "season": season, "week": week},
            session=session,
        )

    async def get_current_bankroll(self, user_id: str, league_id: str) -> dict:
        """Current week's bankroll, created lazily on first read."""
        return await self.initialize_weekly_bankroll(user_id, league_id)

    async def get_by_id(self, bankroll_id: str, session=None) -> dict:
        bankroll = await self.db.bankrolls.find_one({"_id": to_object_id(bankroll_id, "Bankroll")}, session=session)
        if not bankroll:
            raise NotFoundError(f"Bankroll {bankroll_id} not found.")
        return bankroll

    async def _snap_to_cents(self, bankroll: dict, session=None) -> dict:
        """Rewrite money fields that drifted off whole cents after an $inc.

        Guarded on the values just read, so a concurrent mutation is never
        overwritten; its own follow-up rounds the newer values.
        """
        drifted = {
            field: bankroll[field]
            for field in _MONEY_FIELDS
            if isinstance(bankroll.get(field), float) and bankroll[field] != round_money(bankroll[field])
        }
        if not drifted:
            return bankroll
        rounded = {field: round_money(value) for field, value in drifted.items()}
        await self.db.bankrolls.update_one(
            {"_id": bankroll["_id"], **drifted},
            {"$set": rounded},
            session=session,
        )
        bankroll.update(rounded)
        return bankroll

    async def record_bet_placement(self, bankroll_id: str, stake: float, session=None) -> dict:
        """Debit a stake. Guarded so the balance can never go negative."""
        bankroll = await self.db.bankrolls.find_one_and_update(
            {
                "_id": to_object_id(bankroll_id, "Bankroll"),
                "current_balance": {"$gte": stake - _CENT_TOLERANCE},
                "status": BankrollStatus.active.value,
            },
            {
                "$inc": {
                    "current_balance": -stake,
                    "pending_bets": 1,
                    "total_bets": 1,
                    "total_wagered": stake,
                },
                "$set": {"updated_at": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not bankroll:
            raise LedgerValidationError(
                ValidationCode.INSUFFICIENT_FUNDS,
                "Insufficient bankroll balance or bankroll is closed.",
            )
        return await self._snap_to_cents(bankroll, session)

    async def record_bet_settlement(
        self,
        bankroll_id: str,
        stake: float,
        credit: float,
        result: BetResult,
        session=None,
    ) -> dict:
        """Apply one settled bet (or parlay) to the bankroll.

        ``credit`` is the amount returned: full payout on a win, the stake on
        push/void, the reduced payout on a degraded parlay, zero on a loss.
        """
        result = BetResult(result)
        credit = round_money(credit)
        inc = {
            "current_balance": credit,
            "pending_bets": -1,
            _RESULT_COUNTER[result]: 1,
        }
        if result == BetResult.WIN:
            inc["total_won"] = round_money(credit - stake)
        elif result == BetResult.LOSS:
            inc["total_lost"] = stake
        else:
            inc["total_refunded"] = credit

        # Completed weeks still accept settlements for bets placed during them
        bankroll = await self.db.bankrolls.find_one_and_update(
            {"_id": to_object_id(bankroll_id, "Bankroll")},
            {"$inc": inc, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not bankroll:
            raise NotFoundError(f"Bankroll {bankroll_id} not found.")
        return await self._snap_to_cents(bankroll, session)

    async def record_bet_cancellation(self, bankroll_id: str, stake: float, session=None) -> dict:
        """Reverse a placement: the bet never counted."""
        bankroll = await self.db.bankrolls.find_one_and_update(
            {"_id": to_object_id(bankroll_id, "Bankroll"), "pending_bets": {"$gte": 1}},
            {
                "$inc": {
                    "current_balance": stake,
                    "pending_bets": -1,
                    "total_bets": -1,
                    "total_wagered": -stake,
                },
                "$set": {"updated_at": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not bankroll:
            raise NotFoundError(f"Bankroll {bankroll_id} not found.")
        return await self._snap_to_cents(bankroll, session)

    async def reset_weekly_bankrolls(self, now: Optional[datetime] = None) -> int:
        """Close every still-active bankroll from an earlier week."""
        season, week = self.calendar.current(now)
        stamp = now or utcnow()
        result = await self.db.bankrolls.update_many(
            {
                "week_index": {"$lt": self.calendar.absolute_week(season, week)},
                "status": BankrollStatus.active.value,
            },
            {"$set": {"status": BankrollStatus.completed.value, "completed_at": stamp, "updated_at": stamp}},
        )
        if result.modified_count:
            logger.info("Weekly reset: %d bankrolls completed", result.modified_count)
        return result.modified_count

    async def archive_old_bankrolls(self, now: Optional[datetime] = None) -> int:
        season, week = self.calendar.current(now)
        cutoff = self.calendar.absolute_week(season, week) - self.archive_after_weeks
        stamp = now or utcnow()
        result = await self.db.bankrolls.update_many(
            {
                "week_index": {"$lt": cutoff},
                "status": {"$ne": BankrollStatus.archived.value},
            },
            {"$set": {"status": BankrollStatus.archived.value, "archived_at": stamp, "updated_at": stamp}},
        )
        if result.modified_count:
            logger.info("Archived %d bankrolls older than %d weeks", result.modified_count, self.archive_after_weeks)
        return result.modified_count

    async def get_history(
        self, user_id: str, league_id: str, season: Optional[int] = None, limit: int = 52,
    ) -> list[dict]:
        query = {"user_id": user_id, "league_id": league_id}
        if season is not None:
            query["season"] = season
        return await self.db.bankrolls.find(query).sort("week_index", -1).to_list(length=limit)

    async def get_stats(self, user_id: str, league_id: str, season: Optional[int] = None) -> BettingStats:
        bankrolls = await self.get_history(user_id, league_id, season, limit=1000)
        stats = BettingStats(weeks_played=len(bankrolls))
        for b in bankrolls:
            stats.total_bets += b.get("total_bets", 0)
            stats.won_bets += b.get("won_bets", 0)
            stats.lost_bets += b.get("lost_bets", 0)
            stats.push_bets += b.get("push_bets", 0)
            stats.void_bets += b.get("void_bets", 0)
            stats.total_wagered += b.get("total_wagered", 0.0)
            stats.total_won += b.get("total_won", 0.0)
            stats.total_lost += b.get("total_lost", 0.0)

        decided = stats.won_bets + stats.lost_bets
        stats.win_rate = round(stats.won_bets / decided * 100, 2) if decided else 0.0
        stats.roi = calculate_roi(stats.total_won, stats.total_lost, stats.total_wagered)
        stats.total_wagered = round_money(stats.total_wagered)
        stats.total_won = round_money(stats.total_won)
        stats.total_lost = round_money(stats.total_lost)

        # Streaks and extremes over settled straight bets and parlay slips
        query = {
            "user_id": user_id,
            "league_id": league_id,
            "status": {"$in": [BetStatus.won.value, BetStatus.lost.value]},
        }
        straight = await self.db.bets.find(
            {**query, "bet_type": BetType.straight.value}
        ).sort("settled_at", -1).to_list(length=500)
        slips = await self.db.bet_slips.find(query).sort("settled_at", -1).to_list(length=500)

        settled = []
        for doc in straight:
            settled.append((doc.get("settled_at"), doc["status"], doc.get("actual_payout") or 0.0, doc["stake"]))
        for doc in slips:
            settled.append((doc.get("settled_at"), doc["status"], doc.get("actual_payout") or 0.0, doc["total_stake"]))
        settled.sort(key=lambda row: ensure_utc(row[0]) if row[0] else _EPOCH, reverse=True)

        for _, status, payout, stake in settled:
            if status == BetStatus.won.value:
                stats.best_win = max(stats.best_win, round_money(payout - stake))
            else:
                stats.worst_loss = max(stats.worst_loss, round_money(stake))

        if settled:
            first = settled[0][1]
            streak = 0
            for _, status, _, _ in settled:
                if status != first:
                    break
                streak += 1
            stats.current_streak = streak if first == BetStatus.won.value else -streak
        return stats
