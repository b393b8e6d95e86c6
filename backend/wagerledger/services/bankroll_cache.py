"""
backend/wagerledger/services/bankroll_cache.py

Purpose:
    Read cache for bankroll views served to bettors. Backed by MongoDB with a
    TTL index so every worker process sees invalidations made by the others.
    Entries are dropped after each committed balance mutation.

Dependencies:
    - motor
    - wagerledger.utils
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from wagerledger.utils import ensure_utc, utcnow

_COLLECTION = "bankroll_cache"


def build_bankroll_cache_key(*, user_id: str, league_id: str, view: str = "current") -> str:
    return f"bankroll:{view}:{user_id}:{league_id}"


class BankrollCache:
    def __init__(self, db, ttl_seconds: int):
        self._collection = getattr(db, _COLLECTION)
        self._ttl = max(1, int(ttl_seconds))

    async def get(self, *, user_id: str, league_id: str, view: str = "current") -> dict[str, Any] | None:
        key = build_bankroll_cache_key(user_id=user_id, league_id=league_id, view=view)
        doc = await self._collection.find_one({"_id": key})
        if not isinstance(doc, dict):
            return None
        expires_at = doc.get("expires_at")
        if expires_at is None or ensure_utc(expires_at) <= utcnow():
            return None
        payload = doc.get("payload")
        return payload if isinstance(payload, dict) else None

    async def set(
        self, *, user_id: str, league_id: str, payload: dict[str, Any], view: str = "current",
    ) -> None:
        now = utcnow()
        await self._collection.update_one(
            {"_id": build_bankroll_cache_key(user_id=user_id, league_id=league_id, view=view)},
            {
                "$set": {
                    "user_id": user_id,
                    "league_id": league_id,
                    "payload": payload,
                    "updated_at": now,
                    "expires_at": now + timedelta(seconds=self._ttl),
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )

    async def invalidate(self, *, user_id: str, league_id: str) -> int:
        result = await self._collection.delete_many({"user_id": user_id, "league_id": league_id})
        return int(result.deleted_count or 0)
