"""
backend/wagerledger/config.py

Purpose:
    Central settings loading for the wagering ledger.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "wagerledger"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after token expiry
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    LOG_LEVEL: str = "INFO"

    # Weekly bankroll
    WEEKLY_BANKROLL: float = 1000.0
    BANKROLL_ARCHIVE_AFTER_WEEKS: int = 12
    BANKROLL_CACHE_TTL_SECONDS: int = 300
    SEASON_START_MONTH: int = 9
    SEASON_WEEKS: int = 18

    # Bet limits
    MIN_BET: float = 1.0
    MAX_BET: float = 500.0
    MAX_WEEKLY_BETS: int = 100
    MIN_PARLAY_LEGS: int = 2
    MAX_PARLAY_LEGS: int = 10
    BET_SLIP_TTL_SECONDS: int = 3600

    # Settlement
    SETTLEMENT_BATCH_SIZE: int = 10
    PARLAY_REDUCTION_POLICY: str = "linear"  # "linear" | "recombine"

    # Weekly rollover job (Tuesday 03:00 UTC)
    ROLLOVER_ENABLED: bool = True

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
