"""Cron entry point: re-check every due covenant.

    python -m scripts.check_due_covenants                 # all active orgs, today
    python -m scripts.check_due_covenants --org acme --as-of 2026-03-31
"""

import argparse
import asyncio
from datetime import date

from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal, engine
from app.jobs.covenant_sweep import run_due_sweep


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the due-covenant compliance sweep")
    parser.add_argument("--org", action="append", dest="org_ids", help="Limit to this org id (repeatable)")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="Treat this date as today")
    return parser.parse_args()


async def main() -> int:
    args = _parse_args()
    configure_logging()
    try:
        report = await run_due_sweep(AsyncSessionLocal, as_of=args.as_of, org_ids=args.org_ids)
    finally:
        await engine.dispose()
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
