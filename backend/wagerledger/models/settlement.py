"""Settlement models: game results in, immutable settlement rows out."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from wagerledger.models.bet import BetResult


class GameStatus(str, Enum):
    completed = "completed"
    cancelled = "cancelled"
    postponed = "postponed"


class GameResult(BaseModel):
    """Normalized result from the external score feed."""
    game_id: str
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: GameStatus = GameStatus.completed
    completed_at: Optional[datetime] = None

    def score_snapshot(self) -> dict:
        return {
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status.value,
        }


class SettledBy(str, Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class SettlementInDB(BaseModel):
    """Append-only proof that a bet was settled. Unique per bet_id."""
    bet_id: str
    bet_slip_id: Optional[str] = None
    user_id: str
    league_id: str
    bankroll_id: str
    game_id: str
    stake: float
    payout: float
    result: BetResult
    game_score: Optional[dict] = None
    settled_by: SettledBy = SettledBy.AUTO
    notes: Optional[str] = None
    settled_at: datetime


class SettledBet(BaseModel):
    bet_id: Optional[str] = None
    bet_slip_id: Optional[str] = None
    result: BetResult
    payout: float


class SettlementErrorEntry(BaseModel):
    bet_id: Optional[str] = None
    bet_slip_id: Optional[str] = None
    error: str


class SettlementReport(BaseModel):
    settled_count: int = 0
    settled_bets: list[SettledBet] = []
    errors: list[SettlementErrorEntry] = []


class ManualSettleRequest(BaseModel):
    result: BetResult
    notes: Optional[str] = None
