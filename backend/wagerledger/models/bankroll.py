"""Weekly bankroll models: per user, league, season and week."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from wagerledger.services.odds import calculate_roi


class BankrollStatus(str, Enum):
    active = "active"
    completed = "completed"
    archived = "archived"


class BankrollInDB(BaseModel):
    """One virtual balance per (user, league, season, week)."""
    user_id: str
    league_id: str
    season: int
    week: int
    week_index: int  # season * SEASON_WEEKS + week, monotonic across seasons
    starting_balance: float
    current_balance: float
    total_bets: int = 0
    pending_bets: int = 0
    won_bets: int = 0
    lost_bets: int = 0
    push_bets: int = 0
    void_bets: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0  # profit from winning bets
    total_lost: float = 0.0  # stakes lost
    total_refunded: float = 0.0
    status: BankrollStatus = BankrollStatus.active
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None


class BankrollResponse(BaseModel):
    """Bankroll returned to the client, with derived P/L and ROI."""
    id: str
    league_id: str
    season: int
    week: int
    starting_balance: float
    current_balance: float
    total_bets: int
    pending_bets: int
    won_bets: int
    lost_bets: int
    push_bets: int
    void_bets: int
    total_wagered: float
    total_won: float
    total_lost: float
    profit_loss: float
    roi: float
    status: BankrollStatus

    @classmethod
    def from_doc(cls, doc: dict) -> "BankrollResponse":
        return cls(
            id=str(doc["_id"]),
            league_id=doc["league_id"],
            season=doc["season"],
            week=doc["week"],
            starting_balance=doc["starting_balance"],
            current_balance=round(doc["current_balance"], 2),
            total_bets=doc.get("total_bets", 0),
            pending_bets=doc.get("pending_bets", 0),
            won_bets=doc.get("won_bets", 0),
            lost_bets=doc.get("lost_bets", 0),
            push_bets=doc.get("push_bets", 0),
            void_bets=doc.get("void_bets", 0),
            total_wagered=round(doc.get("total_wagered", 0.0), 2),
            total_won=round(doc.get("total_won", 0.0), 2),
            total_lost=round(doc.get("total_lost", 0.0), 2),
            profit_loss=round(doc["current_balance"] - doc["starting_balance"], 2),
            roi=calculate_roi(
                doc.get("total_won", 0.0),
                doc.get("total_lost", 0.0),
                doc.get("total_wagered", 0.0),
            ),
            status=doc["status"],
        )


class BettingStats(BaseModel):
    """Aggregate over a user's bankrolls in a league."""
    weeks_played: int = 0
    total_bets: int = 0
    won_bets: int = 0
    lost_bets: int = 0
    push_bets: int = 0
    void_bets: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0
    total_lost: float = 0.0
    win_rate: float = 0.0
    roi: float = 0.0
    best_win: float = 0.0
    worst_loss: float = 0.0
    current_streak: int = 0  # positive = wins, negative = losses
