"""Bet slip staging endpoints: collect selections before submitting a parlay."""

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from wagerledger.dependencies import get_ledger
from wagerledger.models.bet import (
    BetSlipResponse,
    MarketType,
    PlaceParlayResponse,
    SlipMode,
    SlipPayoutPreview,
    StagedSelection,
)
from wagerledger.services.auth_service import get_current_user
from wagerledger.services.ledger import Ledger

router = APIRouter(prefix="/api/betting/slip", tags=["bet-slip"])


class StagedSlipResponse(BaseModel):
    selections: list[StagedSelection]
    preview: SlipPayoutPreview


class SubmitSlipRequest(BaseModel):
    league_id: str
    stake: float


@router.get("", response_model=StagedSlipResponse)
async def get_slip(
    stake: float = Query(10.0, gt=0),
    mode: SlipMode = Query(SlipMode.parlay, alias="type"),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    selections = await ledger.bet_slips.get_bet_slip(user["_id"])
    return StagedSlipResponse(
        selections=selections,
        preview=ledger.bet_slips.calculate_bet_slip_payout(selections, stake, mode),
    )


@router.post("", response_model=list[StagedSelection])
async def add_selection(
    body: StagedSelection,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    return await ledger.bet_slips.add_to_bet_slip(user["_id"], body)


@router.delete("/selection", response_model=list[StagedSelection])
async def remove_selection(
    game_id: str = Query(...),
    market_type: MarketType = Query(...),
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    return await ledger.bet_slips.remove_from_bet_slip(user["_id"], game_id, market_type.value)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_slip(
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    await ledger.bet_slips.clear_bet_slip(user["_id"])


@router.post("/submit", response_model=PlaceParlayResponse, status_code=status.HTTP_201_CREATED)
async def submit_slip(
    body: SubmitSlipRequest,
    user=Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Place the staged selections as one parlay."""
    slip, legs, transaction_id = await ledger.bet_slips.submit_bet_slip(user["_id"], body.league_id, body.stake)
    return PlaceParlayResponse(bet_slip=BetSlipResponse.from_doc(slip, legs), transaction_id=transaction_id)
