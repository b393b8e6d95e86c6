"""
backend/tests/test_bet_placement_service.py

Purpose:
    Transactional placement of straight bets and parlays, cancellation
    before kickoff, rollback on failure, and bet queries.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from pymongo.errors import OperationFailure

from wagerledger.errors import LedgerValidationError, TransactionError
from wagerledger.utils import utcnow


async def _bankroll(ledger, user_id="user-1"):
    return await ledger.bankrolls.get_current_bankroll(user_id, "nfl")


@pytest.mark.asyncio
async def test_place_single_bet_debits_bankroll(ledger, db, make_bet):
    bet, transaction_id = await ledger.placement.place_single_bet(make_bet(stake=100, odds=150))

    assert bet["status"] == "pending"
    assert bet["potential_payout"] == 250.0
    assert bet["metadata"]["transaction_id"] == transaction_id
    assert bet["metadata"]["schema_version"] == 1

    bankroll = await _bankroll(ledger)
    assert bankroll["current_balance"] == 900
    assert bankroll["pending_bets"] == 1
    assert bet["bankroll_id"] == str(bankroll["_id"])

    audit = db.audit_logs.docs
    assert audit[-1]["action"] == "BET_PLACED"
    assert audit[-1]["metadata"]["transaction_id"] == transaction_id


@pytest.mark.asyncio
async def test_rejected_bet_leaves_no_trace(ledger, db, make_bet):
    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.place_single_bet(make_bet(stake=1500))
    assert exc.value.code == "INVALID_STAKE"
    assert db.bets.docs == []
    # The lazily created bankroll rolled back with the transaction
    assert db.bankrolls.docs == []


@pytest.mark.asyncio
async def test_insufficient_funds(ledger, make_bet):
    for game in ("g1", "g2"):
        await ledger.placement.place_single_bet(make_bet(game_id=game, stake=500))
    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.place_single_bet(make_bet(game_id="g3", stake=1))
    assert exc.value.code == "INSUFFICIENT_FUNDS"


@pytest.mark.asyncio
async def test_cent_stakes_can_drain_balance_exactly(ledger, make_bet):
    for game, stake in (("g1", 1.10), ("g2", 250.55), ("g3", 250.55)):
        await ledger.placement.place_single_bet(make_bet(game_id=game, stake=stake))
    assert (await _bankroll(ledger))["current_balance"] == 497.8

    await ledger.placement.place_single_bet(make_bet(game_id="g4", stake=497.80))
    bankroll = await _bankroll(ledger)
    assert bankroll["current_balance"] == 0
    assert bankroll["total_wagered"] == 1000


@pytest.mark.asyncio
async def test_duplicate_selection_rejected(ledger, make_bet):
    await ledger.placement.place_single_bet(make_bet())
    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.place_single_bet(make_bet())
    assert exc.value.code == "DUPLICATE_BET"


@pytest.mark.asyncio
async def test_database_failure_rolls_back_bet_insert(ledger, db, make_bet):
    def _fail(op, query):
        if op == "find_one_and_update" and "current_balance" in query:
            return OperationFailure("write conflict")
        return None

    await _bankroll(ledger)
    db.bankrolls.fail_on = _fail
    with pytest.raises(TransactionError):
        await ledger.placement.place_single_bet(make_bet())
    assert db.bets.docs == []
    db.bankrolls.fail_on = None
    assert (await _bankroll(ledger))["current_balance"] == 1000


@pytest.mark.asyncio
async def test_place_parlay_splits_stake_and_debits_once(ledger, make_bet):
    selections = [
        make_bet(game_id="g1", odds=150),
        make_bet(game_id="g2", odds=-110, selection="Broncos", home_team="Broncos", away_team="Jets"),
        make_bet(game_id="g3", odds=200, selection="Bills", home_team="Bills", away_team="Dolphins"),
    ]
    slip, legs, transaction_id = await ledger.placement.place_parlay_bet("user-1", "nfl", selections, 100)

    assert slip["leg_count"] == 3
    assert slip["total_odds"] > 0
    assert slip["potential_payout"] == round(100 * 2.5 * (1 + 100 / 110) * 3.0, 2)
    assert [leg["stake"] for leg in legs] == [33.33, 33.33, 33.34]
    assert all(leg["bet_slip_id"] == str(slip["_id"]) for leg in legs)
    assert [leg["metadata"]["parlay_leg"] for leg in legs] == [1, 2, 3]
    assert all(leg["metadata"]["transaction_id"] == transaction_id for leg in legs)

    bankroll = await _bankroll(ledger)
    assert bankroll["current_balance"] == 900
    assert bankroll["total_bets"] == 1
    assert bankroll["pending_bets"] == 1


@pytest.mark.asyncio
async def test_parlay_with_invalid_leg_reports_index(ledger, db, make_bet):
    selections = [make_bet(game_id="g1"), make_bet(game_id="g2", odds=0)]
    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.place_parlay_bet("user-1", "nfl", selections, 10)
    assert exc.value.invalid_legs == [1]
    assert db.bet_slips.docs == []


@pytest.mark.asyncio
async def test_cancel_refunds_pending_bet(ledger, db, make_bet):
    bet, _ = await ledger.placement.place_single_bet(make_bet(stake=75))
    cancelled = await ledger.placement.cancel_bet(str(bet["_id"]), "user-1")

    assert cancelled["status"] == "cancelled"
    assert cancelled["metadata"]["cancelled_at"] is not None
    bankroll = await _bankroll(ledger)
    assert bankroll["current_balance"] == 1000
    assert bankroll["pending_bets"] == 0
    assert bankroll["total_wagered"] == 0


@pytest.mark.asyncio
async def test_cancel_after_start_fails_and_keeps_balance(ledger, db, make_bet):
    bet, _ = await ledger.placement.place_single_bet(make_bet(stake=75))
    db.bets.docs[0]["event_date"] = utcnow() - timedelta(minutes=5)

    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.cancel_bet(str(bet["_id"]), "user-1")
    assert exc.value.code == "GAME_ALREADY_STARTED"
    assert (await _bankroll(ledger))["current_balance"] == 925
    assert db.bets.docs[0]["status"] == "pending"


@pytest.mark.asyncio
async def test_cancel_rejects_parlay_leg_and_other_users(ledger, make_bet):
    _, legs, _ = await ledger.placement.place_parlay_bet(
        "user-1", "nfl", [make_bet(game_id="g1"), make_bet(game_id="g2")], 20,
    )
    with pytest.raises(LedgerValidationError) as exc:
        await ledger.placement.cancel_bet(str(legs[0]["_id"]), "user-1")
    assert exc.value.code == "NOT_CANCELLABLE"

    bet, _ = await ledger.placement.place_single_bet(make_bet(game_id="g9"))
    with pytest.raises(Exception) as exc:
        await ledger.placement.cancel_bet(str(bet["_id"]), "someone-else")
    assert getattr(exc.value, "status_code", None) == 404


@pytest.mark.asyncio
async def test_cancel_bet_slip_refunds_total_stake(ledger, db, make_bet):
    slip, _, _ = await ledger.placement.place_parlay_bet(
        "user-1", "nfl", [make_bet(game_id="g1"), make_bet(game_id="g2")], 50,
    )
    cancelled = await ledger.placement.cancel_bet_slip(str(slip["_id"]), "user-1")

    assert cancelled["status"] == "cancelled"
    assert {leg["status"] for leg in db.bets.docs} == {"cancelled"}
    bankroll = await _bankroll(ledger)
    assert bankroll["current_balance"] == 1000
    assert bankroll["total_bets"] == 0


@pytest.mark.asyncio
async def test_active_and_history_queries(ledger, db, make_bet):
    first, _ = await ledger.placement.place_single_bet(make_bet(game_id="g1"))
    await ledger.placement.place_single_bet(make_bet(game_id="g2"))
    await ledger.placement.cancel_bet(str(first["_id"]), "user-1")

    active = await ledger.placement.get_active_bets("user-1", "nfl")
    history = await ledger.placement.get_bet_history("user-1", "nfl")
    assert [b["game_id"] for b in active] == ["g2"]
    assert [b["game_id"] for b in history] == ["g1"]
