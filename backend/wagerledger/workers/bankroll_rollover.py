"""Weekly bankroll rollover: close last week's bankrolls, archive old ones.

Scheduled Tuesday 03:00 UTC. The run marker (20h window) keeps a restart or a
second process from repeating the run.
"""

import logging
from datetime import timedelta

from wagerledger.services.ledger import Ledger
from wagerledger.workers._state import WorkerState

logger = logging.getLogger("wagerledger.bankroll_rollover")

STATE_KEY = "bankroll_rollover"
RUN_WINDOW = timedelta(hours=20)


async def run_rollover(ledger: Ledger, *, force: bool = False) -> dict:
    state = WorkerState(ledger.db, STATE_KEY)
    if not force and await state.ran_within(RUN_WINDOW):
        logger.debug("Bankroll rollover ran within %s, skipping", RUN_WINDOW)
        return {"skipped": True, "completed": 0, "archived": 0}

    completed = await ledger.bankrolls.reset_weekly_bankrolls()
    archived = await ledger.bankrolls.archive_old_bankrolls()
    await state.mark_run({"completed": completed, "archived": archived, "forced": force})

    logger.info("Bankroll rollover complete: completed=%d archived=%d forced=%s", completed, archived, force)
    return {"skipped": False, "completed": completed, "archived": archived}
