"""Admin endpoints: feed game results, manual settlement, live marking, rollover."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wagerledger.dependencies import get_ledger
from wagerledger.models.bet import BetResponse
from wagerledger.models.settlement import GameResult, ManualSettleRequest, SettlementReport
from wagerledger.services.auth_service import get_admin_user
from wagerledger.services.ledger import Ledger
from wagerledger.workers.bankroll_rollover import run_rollover

logger = logging.getLogger("wagerledger.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


class SettleGamesRequest(BaseModel):
    results: list[GameResult] = Field(..., min_length=1)


class LiveGamesRequest(BaseModel):
    game_ids: list[str] = Field(..., min_length=1)


@router.post("/settlement/games", response_model=SettlementReport)
async def settle_games(
    body: SettleGamesRequest,
    admin=Depends(get_admin_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Settle every open bet on the given final results. Safe to re-run."""
    logger.info("Settlement triggered by admin=%s games=%d", admin["_id"], len(body.results))
    return await ledger.settlement.settle_completed_games(body.results)


@router.post("/bets/{bet_id}/settle", response_model=BetResponse)
async def settle_bet_manually(
    bet_id: str,
    body: ManualSettleRequest,
    admin=Depends(get_admin_user),
    ledger: Ledger = Depends(get_ledger),
):
    bet = await ledger.settlement.manually_settle_bet(bet_id, body.result, body.notes, actor_id=admin["_id"])
    return BetResponse.from_doc(bet)


@router.post("/games/live")
async def mark_games_live(
    body: LiveGamesRequest,
    admin=Depends(get_admin_user),
    ledger: Ledger = Depends(get_ledger),
):
    updated = await ledger.settlement.mark_games_live(body.game_ids)
    return {"updated": updated}


@router.post("/bankrolls/rollover")
async def rollover_bankrolls(
    admin=Depends(get_admin_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Run the weekly reset and archive immediately, ignoring the last-run marker."""
    return await run_rollover(ledger, force=True)
