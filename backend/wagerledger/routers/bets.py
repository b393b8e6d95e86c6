"""Bet endpoints: place, list, inspect and cancel straight bets and parlays."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from wagerledger.dependencies import get_ledger
from wagerledger.models.bet import (
    BetRequest,
    BetResponse,
    BetSlipResponse,
    ParlayRequest,
    PlaceBetResponse,
    PlaceParlayResponse,
)
from wagerledger.services.auth_service import get_current_user
from wagerledger.services.ledger import Ledger

router = APIRouter(prefix="/api/betting", tags=["betting"])


@router.post("/bets", response_model=PlaceBetResponse, status_code=status.HTTP_201_CREATED)
async def place_bet(
    body: BetRequest,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Place a straight bet against this week's bankroll."""
    request = body.model_copy(update={"user_id": user["_id"]})
    bet, transaction_id = await ledger.placement.place_single_bet(request)
    return PlaceBetResponse(bet=BetResponse.from_doc(bet), transaction_id=transaction_id)


@router.get("/bets", response_model=list[BetResponse])
async def list_bets(
    league_id: Optional[str] = Query(None),
    state: str = Query("active", alias="status", pattern="^(active|history)$"),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    if state == "active":
        bets = await ledger.placement.get_active_bets(user["_id"], league_id)
    else:
        bets = await ledger.placement.get_bet_history(user["_id"], league_id, limit=limit, skip=skip)
    return [BetResponse.from_doc(b) for b in bets]


@router.get("/bets/{bet_id}", response_model=BetResponse)
async def get_bet(
    bet_id: str,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    return BetResponse.from_doc(await ledger.placement.get_bet(bet_id, user["_id"]))


@router.delete("/bets/{bet_id}", response_model=BetResponse)
async def cancel_bet(
    bet_id: str,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Cancel a pending straight bet before kickoff. The stake is refunded."""
    return BetResponse.from_doc(await ledger.placement.cancel_bet(bet_id, user["_id"]))


@router.post("/bets/parlay", response_model=PlaceParlayResponse, status_code=status.HTTP_201_CREATED)
async def place_parlay(
    body: ParlayRequest,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    selections = [
        s.model_copy(update={"user_id": user["_id"], "league_id": body.league_id})
        for s in body.selections
    ]
    slip, legs, transaction_id = await ledger.placement.place_parlay_bet(
        user["_id"], body.league_id, selections, body.stake,
    )
    return PlaceParlayResponse(bet_slip=BetSlipResponse.from_doc(slip, legs), transaction_id=transaction_id)


@router.get("/slips/{slip_id}", response_model=BetSlipResponse)
async def get_bet_slip(
    slip_id: str,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    slip, legs = await ledger.placement.get_bet_slip_with_legs(slip_id, user["_id"])
    return BetSlipResponse.from_doc(slip, legs)


@router.delete("/slips/{slip_id}", response_model=BetSlipResponse)
async def cancel_bet_slip(
    slip_id: str,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Cancel a whole parlay while none of its games has started."""
    await ledger.placement.cancel_bet_slip(slip_id, user["_id"])
    slip, legs = await ledger.placement.get_bet_slip_with_legs(slip_id, user["_id"])
    return BetSlipResponse.from_doc(slip, legs)
