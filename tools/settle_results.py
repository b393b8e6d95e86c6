"""
Settle results: feed a batch of final game results into the ledger.

Reads a JSON file holding either a list of results or {"results": [...]},
each shaped like:
    {"game_id": "...", "home_team": "...", "away_team": "...",
     "home_score": 24, "away_score": 20, "status": "completed"}

Re-running the same file is safe: bets that are already settled are skipped.

Usage:
    python -m tools.settle_results --file results/week7.json
    python -m tools.settle_results --file results/week7.json --dry-run
    python -m tools.settle_results --rollover
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections import Counter
from pathlib import Path

# Add backend to Python path so we can import wagerledger modules
sys.path.insert(0, "backend")

# Default to local MongoDB when not set
if "MONGO_URI" not in os.environ:
    os.environ["MONGO_URI"] = "mongodb://localhost:27017/?replicaSet=rs0"
# Tokens are never issued from the CLI
os.environ.setdefault("JWT_SECRET", "cli-no-tokens")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("settle_results")


def load_results(path: Path) -> list:
    from wagerledger.models.settlement import GameResult

    payload = json.loads(path.read_text())
    if isinstance(payload, dict):
        payload = payload.get("results", [])
    return [GameResult.model_validate(item) for item in payload]


async def run(file: Path | None, dry_run: bool, rollover: bool) -> int:
    import wagerledger.database as _db
    from wagerledger.config import settings
    from wagerledger.models.bet import OPEN_STATUSES
    from wagerledger.services.ledger import build_ledger
    from wagerledger.workers.bankroll_rollover import run_rollover

    await _db.connect_db()
    try:
        ledger = build_ledger(_db.client, _db.db, settings)
        exit_code = 0

        if file:
            results = load_results(file)
            log.info("Loaded %d results from %s", len(results), file)
            if dry_run:
                open_bets = await _db.db.bets.find(
                    {"game_id": {"$in": [r.game_id for r in results]}, "status": {"$in": list(OPEN_STATUSES)}},
                    {"game_id": 1},
                ).to_list(length=None)
                per_game = Counter(b["game_id"] for b in open_bets)
                for result in results:
                    log.info("  %s: %d open bets", result.game_id, per_game.get(result.game_id, 0))
                log.info("Dry run, nothing settled")
            else:
                report = await ledger.settlement.settle_completed_games(results)
                log.info("Settled %d bets/parlays", report.settled_count)
                for error in report.errors:
                    log.error("  %s: %s", error.bet_id or error.bet_slip_id, error.error)
                if report.errors:
                    exit_code = 1

        if rollover:
            summary = await run_rollover(ledger, force=True)
            log.info("Rollover: completed=%d archived=%d", summary["completed"], summary["archived"])
        return exit_code
    finally:
        await _db.close_db()


def main():
    parser = argparse.ArgumentParser(description="Settle a batch of game results")
    parser.add_argument("--file", type=Path, default=None, help="JSON file of game results")
    parser.add_argument("--dry-run", action="store_true", help="Count open bets per game, settle nothing")
    parser.add_argument("--rollover", action="store_true", help="Run the weekly bankroll reset + archive")
    args = parser.parse_args()

    if not args.file and not args.rollover:
        parser.error("nothing to do: pass --file and/or --rollover")

    sys.exit(asyncio.run(run(args.file, args.dry_run, args.rollover)))


if __name__ == "__main__":
    main()
