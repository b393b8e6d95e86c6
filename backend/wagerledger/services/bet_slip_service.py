"""
backend/wagerledger/services/bet_slip_service.py

Purpose:
    Staging area for a bettor's not-yet-submitted selections. Entries live in
    the bet_slip_drafts collection under key ``betslip:{user_id}`` and expire
    through a TTL index; they carry no financial weight until submitted.

Dependencies:
    - motor
    - wagerledger.services.bet_placement_service
"""

import logging
from datetime import timedelta

from wagerledger.errors import LedgerValidationError, ValidationCode
from wagerledger.models.bet import BetRequest, SlipMode, SlipPayoutPreview, StagedSelection
from wagerledger.services.bet_placement_service import BetPlacementService
from wagerledger.services.odds import calculate_payout, combine_parlay_odds
from wagerledger.utils import ensure_utc, round_money, utcnow

logger = logging.getLogger("wagerledger.bet_slip")


def build_bet_slip_key(user_id: str) -> str:
    return f"betslip:{user_id}"


class BetSlipService:
    def __init__(self, db, placement: BetPlacementService, ttl_seconds: int = 3600):
        self.db = db
        self.placement = placement
        self.ttl_seconds = ttl_seconds

    async def get_bet_slip(self, user_id: str) -> list[StagedSelection]:
        doc = await self.db.bet_slip_drafts.find_one({"_id": build_bet_slip_key(user_id)})
        if not doc:
            return []
        # The TTL monitor runs once a minute; treat expired entries as gone
        if ensure_utc(doc["expires_at"]) <= utcnow():
            return []
        return [StagedSelection.model_validate(s) for s in doc.get("selections", [])]

    async def _save(self, user_id: str, selections: list[StagedSelection]) -> None:
        now = utcnow()
        await self.db.bet_slip_drafts.update_one(
            {"_id": build_bet_slip_key(user_id)},
            {
                "$set": {
                    "selections": [s.model_dump(mode="json") for s in selections],
                    "updated_at": now,
                    "expires_at": now + timedelta(seconds=self.ttl_seconds),
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )

    async def add_to_bet_slip(self, user_id: str, selection: StagedSelection) -> list[StagedSelection]:
        """Add a selection, replacing any earlier pick on the same game.

        Submission places the slip as a parlay, which allows one leg per game.
        """
        selections = await self.get_bet_slip(user_id)
        selections = [s for s in selections if s.game_id != selection.game_id]
        selections.append(selection)
        await self._save(user_id, selections)
        return selections

    async def remove_from_bet_slip(self, user_id: str, game_id: str, market_type: str) -> list[StagedSelection]:
        selections = await self.get_bet_slip(user_id)
        remaining = [
            s for s in selections
            if not (s.game_id == game_id and s.market_type.value == market_type)
        ]
        if remaining:
            await self._save(user_id, remaining)
        else:
            await self.clear_bet_slip(user_id)
        return remaining

    async def clear_bet_slip(self, user_id: str) -> None:
        await self.db.bet_slip_drafts.delete_one({"_id": build_bet_slip_key(user_id)})

    @staticmethod
    def calculate_bet_slip_payout(
        selections: list[StagedSelection], stake: float, mode: SlipMode,
    ) -> SlipPayoutPreview:
        """Preview payout: ``stake`` per selection (single) or once (parlay)."""
        if not selections:
            return SlipPayoutPreview(mode=mode, stake=stake, total_stake=0.0, potential_payout=0.0, selections=0)
        if mode == SlipMode.parlay:
            decimal_odds, american_odds = combine_parlay_odds([s.odds for s in selections])
            return SlipPayoutPreview(
                mode=mode,
                stake=stake,
                total_stake=stake,
                potential_payout=round(stake * decimal_odds, 2),
                decimal_odds=round(decimal_odds, 4),
                american_odds=american_odds,
                selections=len(selections),
            )
        return SlipPayoutPreview(
            mode=mode,
            stake=stake,
            total_stake=round_money(stake * len(selections)),
            potential_payout=round_money(sum(calculate_payout(stake, s.odds) for s in selections)),
            selections=len(selections),
        )

    async def submit_bet_slip(self, user_id: str, league_id: str, stake: float) -> tuple[dict, list[dict], str]:
        """Place the staged selections as a parlay, then clear the staging entry."""
        selections = await self.get_bet_slip(user_id)
        if not selections:
            raise LedgerValidationError(ValidationCode.EMPTY_BET_SLIP, "Your bet slip is empty.")
        requests = [
            BetRequest(user_id=user_id, league_id=league_id, stake=0.0, **s.model_dump())
            for s in selections
        ]
        slip, legs, transaction_id = await self.placement.place_parlay_bet(user_id, league_id, requests, stake)
        await self.clear_bet_slip(user_id)
        logger.info("Bet slip submitted: user=%s legs=%d tx=%s", user_id, len(legs), transaction_id)
        return slip, legs, transaction_id
