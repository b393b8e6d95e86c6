"""Run markers for scheduled ledger jobs, kept in the ``worker_state`` collection.

A marker survives restarts and is shared by every process, so a job fired
twice in the same window (redeploy, second replica) runs once.
"""

from datetime import datetime, timedelta
from typing import Optional

from wagerledger.utils import ensure_utc, utcnow


class WorkerState:
    def __init__(self, db, job_id: str):
        self.db = db
        self.job_id = job_id

    async def last_run(self) -> Optional[datetime]:
        doc = await self.db.worker_state.find_one({"_id": self.job_id})
        if not doc or not doc.get("synced_at"):
            return None
        return ensure_utc(doc["synced_at"])

    async def mark_run(self, summary: Optional[dict] = None) -> None:
        await self.db.worker_state.update_one(
            {"_id": self.job_id},
            {"$set": {"synced_at": utcnow(), "last_summary": summary or {}}},
            upsert=True,
        )

    async def ran_within(self, window: timedelta) -> bool:
        last = await self.last_run()
        return last is not None and utcnow() - last < window
