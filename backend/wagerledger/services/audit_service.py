"""Immutable audit logging for ledger operations.

All audit entries are insert-only. This module intentionally exposes NO
update or delete operations on the audit_logs collection. Entries are
written after the ledger transaction commits.
"""

import logging
from typing import Optional

from wagerledger.utils import utcnow

logger = logging.getLogger("wagerledger.audit")

SYSTEM_ACTOR = "SYSTEM"


class AuditService:
    def __init__(self, db):
        self.db = db

    async def log(
        self,
        *,
        actor_id: str,
        target_id: str,
        action: str,
        metadata: Optional[dict] = None,
    ) -> None:
        """Write an immutable audit record.

        Args:
            actor_id: Who performed the action (User-ID or "SYSTEM").
            target_id: What was affected (Bet-ID, BetSlip-ID, Bankroll-ID).
            action: Action identifier, e.g. "BET_PLACED", "BET_SETTLED_MANUAL".
            metadata: Extra context; placements carry the transaction_id.
        """
        doc = {
            "timestamp": utcnow(),
            "actor_id": actor_id,
            "target_id": target_id,
            "action": action,
            "metadata": metadata or {},
        }
        try:
            await self.db.audit_logs.insert_one(doc)
        except Exception:
            # Ledger change is already committed at this point
            logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
