"""
backend/wagerledger/database.py

Purpose:
    MongoDB connection bootstrap, index management and the multi-document
    transaction helper used by every balance-mutating service call.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - wagerledger.config
"""

import logging
from typing import Any, Awaitable, Callable

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from wagerledger.config import settings
from wagerledger.errors import LedgerError, TransactionError

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("wagerledger.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await ensure_indexes(db)


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    # Bankrolls: one per user/league/season/week
    await database.bankrolls.create_index(
        [("user_id", 1), ("league_id", 1), ("season", 1), ("week", 1)],
        unique=True,
    )
    await database.bankrolls.create_index([("status", 1), ("season", 1), ("week", 1)])

    # Bets
    await database.bets.create_index([("game_id", 1), ("status", 1)])
    await database.bets.create_index("bet_slip_id", sparse=True)
    await database.bets.create_index([("user_id", 1), ("league_id", 1), ("status", 1)])
    await database.bets.create_index([("user_id", 1), ("created_at", -1)])

    # Bet slips (parlays)
    await database.bet_slips.create_index([("user_id", 1), ("league_id", 1), ("status", 1)])

    # Settlements: append-only, exactly one per bet
    await database.settlements.create_index("bet_id", unique=True)
    await database.settlements.create_index([("bet_slip_id", 1)], sparse=True)
    await database.settlements.create_index([("user_id", 1), ("settled_at", -1)])

    # Short-lived stores
    await database.bet_slip_drafts.create_index("expires_at", expireAfterSeconds=0)
    await database.bankroll_cache.create_index("expires_at", expireAfterSeconds=0)

    # Audit: insert-only
    await database.audit_logs.create_index([("target_id", 1), ("timestamp", -1)])
    await database.audit_logs.create_index([("action", 1), ("timestamp", -1)])

    logger.info("Database indexes ensured")


async def run_in_transaction(
    mongo_client: AsyncIOMotorClient,
    callback: Callable[[Any], Awaitable[Any]],
    *,
    label: str,
) -> Any:
    """Run ``callback(session)`` inside a multi-document transaction.

    The driver retries the whole callback on TransientTransactionError and the
    commit on UnknownTransactionCommitResult. Domain errors abort the
    transaction and propagate unchanged; driver errors surface as
    TransactionError after rollback.
    """
    try:
        async with await mongo_client.start_session() as session:
            return await session.with_transaction(callback)
    except LedgerError:
        raise
    except PyMongoError as exc:
        logger.error("Transaction %s aborted: %s", label, exc)
        raise TransactionError(f"Transaction {label} failed and was rolled back.") from exc
