"""
backend/scripts/refresh_week_results.py

Purpose:
    Fetch one or more NFL weeks from the results provider into the results
    cache and persist them.

Usage:
    cd backend && python -m scripts.refresh_week_results --week 5
    cd backend && python -m scripts.refresh_week_results --week 3 --week 4 --until-final
"""

from __future__ import annotations

import argparse
import asyncio
import json

import survivor.database as _db
from survivor.middleware.logging import setup_logging
from survivor.providers.espn import espn_provider
from survivor.services import survivor_service
from survivor.services.results_cache import load_cache_from_db
from survivor.services.results_refresher import current_week


async def _run(weeks: list[int], until_final: bool) -> int:
    await _db.connect_db()
    try:
        await load_cache_from_db(survivor_service.results_cache)
        refresher = survivor_service.refresher
        if until_final:
            outcomes = await refresher.refresh_until_final(weeks, poll_interval=30.0)
        else:
            outcomes = {w: await refresher.refresh_week(w, force=True) for w in weeks}
        print(json.dumps({str(w): o.as_dict() for w, o in outcomes.items()}, indent=2))
        return 1 if any(o.error for o in outcomes.values()) else 0
    finally:
        await espn_provider.aclose()
        await _db.close_db()


async def main() -> int:
    parser = argparse.ArgumentParser(description="Refresh NFL week results into the results cache.")
    parser.add_argument("--week", type=int, action="append", help="Week to refresh (repeatable). Default: current week.")
    parser.add_argument("--until-final", action="store_true", help="Poll within the configured budget until final.")
    args = parser.parse_args()

    weeks = args.week or [current_week()]
    if any(not 1 <= w <= 18 for w in weeks):
        parser.error("weeks must be within 1-18")

    setup_logging()
    return await _run(weeks, bool(args.until_final))


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
