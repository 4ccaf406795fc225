#!/usr/bin/env python3
"""
Daily stock jobs, meant to be run from cron shortly after midnight UTC.

1. Flag batches whose expiry date has been reached.
2. Generate the ledger for the previous UTC day (or a given range).

Both steps are idempotent: re-running them for the same day gives the same rows.

Usage:
  python3 scripts/run_daily_jobs.py
  python3 scripts/run_daily_jobs.py --start 2024-03-01 --end 2024-03-10
  python3 scripts/run_daily_jobs.py --skip-expiry --start 2024-03-10
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.core.config import settings
from src.core.database.session import async_session
from src.core.exceptions import AppException
from src.modules.batches.service import BatchService
from src.modules.ledger.service import LedgerService

logger = logging.getLogger("daily_jobs")


async def run(start: date | None, end: date | None, skip_expiry: bool) -> None:
    async with async_session() as session:
        if not skip_expiry:
            expired = await BatchService(session).mark_expired_batches()
            print(f"Expired batches flagged: {expired}")

        ledger = LedgerService(session)
        if start is None:
            entries = await ledger.generate_daily_ledger_for_previous_day()
        else:
            entries = await ledger.generate_ledger_for_date_range(start, end or start)
        print(f"Ledger entries generated: {entries}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Expiry sweep and daily ledger generation")
    parser.add_argument("--start", type=date.fromisoformat, default=None, help="First ledger day (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, default=None, help="Last ledger day, inclusive")
    parser.add_argument("--skip-expiry", action="store_true", help="Only generate the ledger")
    args = parser.parse_args()

    if args.end is not None and args.start is None:
        print("ERROR: --end needs --start")
        sys.exit(1)

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run(args.start, args.end, args.skip_expiry))
    except AppException as exc:
        logger.error("Daily jobs failed: %s", exc.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
