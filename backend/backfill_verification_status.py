"""
One-time backfill: legacy auto_verified visits that match the pending proxy
become pending_review. Same effect as alembic revision 0002_backfill_pending.

Usage (from backend/):
    python backfill_verification_status.py            # apply
    python backfill_verification_status.py --revert   # undo for rows still pending
"""
import asyncio
import sys
import os

# Add the current directory to sys.path to allow importing 'tripdesk'
sys.path.append(os.getcwd())

import structlog

from tripdesk.core.logging import setup_logging
from tripdesk.db.session import AsyncSessionLocal
from tripdesk.services.visit_service import backfill_pending_status, revert_pending_backfill

logger = structlog.get_logger()


async def run_backfill(revert: bool = False) -> int:
    async with AsyncSessionLocal() as session:
        if revert:
            return await revert_pending_backfill(session)
        return await backfill_pending_status(session)


if __name__ == "__main__":
    setup_logging()
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    revert = "--revert" in sys.argv[1:]
    count = asyncio.run(run_backfill(revert))
    if revert:
        print(f"Reverted {count} trip visit(s) to auto_verified")
    else:
        print(f"Backfilled {count} trip visit(s) to pending_review")
