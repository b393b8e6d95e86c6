"""Bankroll endpoints: current week balance, weekly history and stats."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from wagerledger.dependencies import get_ledger
from wagerledger.models.bankroll import BankrollResponse, BettingStats
from wagerledger.services.auth_service import get_current_user
from wagerledger.services.ledger import Ledger

router = APIRouter(prefix="/api/betting/bankroll", tags=["bankroll"])


@router.get("", response_model=BankrollResponse)
async def get_bankroll(
    league_id: str = Query(..., description="League id"),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Current week's bankroll (lazy-creates on first read)."""
    user_id = user["_id"]
    cached = await ledger.cache.get(user_id=user_id, league_id=league_id)
    if cached:
        return BankrollResponse.model_validate(cached)

    bankroll = await ledger.bankrolls.get_current_bankroll(user_id, league_id)
    response = BankrollResponse.from_doc(bankroll)
    await ledger.cache.set(user_id=user_id, league_id=league_id, payload=response.model_dump(mode="json"))
    return response


@router.get("/history", response_model=list[BankrollResponse])
async def get_bankroll_history(
    league_id: str = Query(...),
    season: Optional[int] = Query(None),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    bankrolls = await ledger.bankrolls.get_history(user["_id"], league_id, season)
    return [BankrollResponse.from_doc(b) for b in bankrolls]


@router.get("/stats", response_model=BettingStats)
async def get_betting_stats(
    league_id: str = Query(...),
    season: Optional[int] = Query(None),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    return await ledger.bankrolls.get_stats(user["_id"], league_id, season)
