"""Bet, parlay and staging-slip models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MarketType(str, Enum):
    moneyline = "moneyline"
    spread = "spread"
    total = "total"


class BetType(str, Enum):
    straight = "straight"
    parlay = "parlay"


class BetStatus(str, Enum):
    pending = "pending"
    live = "live"
    won = "won"
    lost = "lost"
    push = "push"
    void = "void"
    cancelled = "cancelled"


OPEN_STATUSES = (BetStatus.pending.value, BetStatus.live.value)


class BetResult(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    PUSH = "PUSH"
    VOID = "VOID"


RESULT_TO_STATUS = {
    BetResult.WIN: BetStatus.won,
    BetResult.LOSS: BetStatus.lost,
    BetResult.PUSH: BetStatus.push,
    BetResult.VOID: BetStatus.void,
}


class MarketSelection(BaseModel):
    """One pick on one market of one game."""
    game_id: str
    event_date: datetime
    market_type: MarketType
    selection: str = Field(..., min_length=1, max_length=100)
    line: Optional[float] = None
    odds: int
    home_team: Optional[str] = None
    away_team: Optional[str] = None

    @model_validator(mode="after")
    def _check_market_shape(self):
        if self.market_type in (MarketType.spread, MarketType.total) and self.line is None:
            raise ValueError(f"{self.market_type.value} bets require a line")
        if self.market_type == MarketType.total and self.selection.lower() not in ("over", "under"):
            raise ValueError("total bets must select 'over' or 'under'")
        return self


class BetRequest(MarketSelection):
    """A single selection as submitted by the bettor."""
    user_id: str = ""  # filled from the access token by the router
    league_id: str
    stake: float = 0.0


class ParlayRequest(BaseModel):
    league_id: str
    stake: float
    selections: list[BetRequest] = Field(..., min_length=1)


class BetMetadata(BaseModel):
    """Closed, versioned metadata stored on every bet."""
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1
    transaction_id: str
    placed_at: datetime
    parlay_leg: Optional[int] = None
    total_legs: Optional[int] = None
    game_score: Optional[dict] = None
    cancelled_at: Optional[datetime] = None
    manual_settlement: bool = False
    notes: Optional[str] = None


class BetInDB(BaseModel):
    user_id: str
    league_id: str
    bankroll_id: str
    bet_slip_id: Optional[str] = None
    game_id: str
    event_date: datetime
    bet_type: BetType
    market_type: MarketType
    selection: str
    line: Optional[float] = None
    odds: int
    stake: float
    potential_payout: float
    actual_payout: Optional[float] = None
    status: BetStatus = BetStatus.pending
    result: Optional[BetResult] = None
    settled_at: Optional[datetime] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    metadata: BetMetadata
    created_at: datetime
    updated_at: datetime


class BetResponse(BaseModel):
    id: str
    league_id: str
    bet_slip_id: Optional[str] = None
    game_id: str
    event_date: datetime
    bet_type: BetType
    market_type: MarketType
    selection: str
    line: Optional[float] = None
    odds: int
    stake: float
    potential_payout: float
    actual_payout: Optional[float] = None
    status: BetStatus
    result: Optional[BetResult] = None
    settled_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_doc(cls, doc: dict) -> "BetResponse":
        return cls(
            id=str(doc["_id"]),
            league_id=doc["league_id"],
            bet_slip_id=doc.get("bet_slip_id"),
            game_id=doc["game_id"],
            event_date=doc["event_date"],
            bet_type=doc["bet_type"],
            market_type=doc["market_type"],
            selection=doc["selection"],
            line=doc.get("line"),
            odds=doc["odds"],
            stake=doc["stake"],
            potential_payout=doc["potential_payout"],
            actual_payout=doc.get("actual_payout"),
            status=doc["status"],
            result=doc.get("result"),
            settled_at=doc.get("settled_at"),
            created_at=doc["created_at"],
        )


class BetSlipInDB(BaseModel):
    """A submitted parlay. Its legs live in the bets collection."""
    user_id: str
    league_id: str
    bankroll_id: str
    leg_count: int
    total_stake: float
    total_odds: int
    decimal_odds: float
    potential_payout: float
    actual_payout: Optional[float] = None
    reduced_odds: Optional[int] = None
    active_legs: Optional[int] = None
    status: BetStatus = BetStatus.pending
    result: Optional[BetResult] = None
    settled_at: Optional[datetime] = None
    transaction_id: str
    created_at: datetime
    updated_at: datetime


class BetSlipResponse(BaseModel):
    id: str
    league_id: str
    leg_count: int
    total_stake: float
    total_odds: int
    decimal_odds: float
    potential_payout: float
    actual_payout: Optional[float] = None
    reduced_odds: Optional[int] = None
    active_legs: Optional[int] = None
    status: BetStatus
    result: Optional[BetResult] = None
    settled_at: Optional[datetime] = None
    legs: list[BetResponse] = []

    @classmethod
    def from_doc(cls, doc: dict, legs: Optional[list[dict]] = None) -> "BetSlipResponse":
        return cls(
            id=str(doc["_id"]),
            league_id=doc["league_id"],
            leg_count=doc["leg_count"],
            total_stake=doc["total_stake"],
            total_odds=doc["total_odds"],
            decimal_odds=doc["decimal_odds"],
            potential_payout=doc["potential_payout"],
            actual_payout=doc.get("actual_payout"),
            reduced_odds=doc.get("reduced_odds"),
            active_legs=doc.get("active_legs"),
            status=doc["status"],
            result=doc.get("result"),
            settled_at=doc.get("settled_at"),
            legs=[BetResponse.from_doc(leg) for leg in (legs or [])],
        )


class PlaceBetResponse(BaseModel):
    bet: BetResponse
    transaction_id: str


class PlaceParlayResponse(BaseModel):
    bet_slip: BetSlipResponse
    transaction_id: str


# ---------- Staging slip (not yet submitted) ----------

class SlipMode(str, Enum):
    single = "single"
    parlay = "parlay"


class StagedSelection(MarketSelection):
    @field_validator("odds")
    @classmethod
    def _check_odds(cls, value: int) -> int:
        if -100 < value < 100:
            raise ValueError("American odds must be <= -100 or >= +100")
        return value


class SlipPayoutPreview(BaseModel):
    mode: SlipMode
    stake: float
    total_stake: float
    potential_payout: float
    decimal_odds: Optional[float] = None
    american_odds: Optional[int] = None
    selections: int
