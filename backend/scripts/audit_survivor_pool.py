"""
backend/scripts/audit_survivor_pool.py

Purpose:
    Run the survivor integrity audit for one pool and print the report.
    Read-only by default; --execute applies auto-corrections (regressions
    still go to the review queue).

Usage:
    cd backend && python -m scripts.audit_survivor_pool --dry-run
    cd backend && python -m scripts.audit_survivor_pool --execute --through-week 6
"""

from __future__ import annotations

import argparse
import asyncio
import json

import survivor.database as _db
from survivor.config import settings
from survivor.middleware.logging import setup_logging
from survivor.services import survivor_service
from survivor.services.results_cache import load_cache_from_db


async def _run(pool_id: str, execute: bool, through_week: int | None) -> int:
    await _db.connect_db()
    try:
        await load_cache_from_db(survivor_service.results_cache)
        members = await survivor_service.repository.list_members(pool_id)
        report = await survivor_service.auditor.audit_pool(
            members,
            survivor_service.results_cache,
            pool_id=pool_id,
            through_week=through_week,
            auto_correct=execute,
            persist_report=execute,
        )
        print(json.dumps(
            {
                "ok": True,
                "mode": "execute" if execute else "dry-run",
                "pool_id": pool_id,
                "summary": report.summary(),
                "discrepancies": [e.model_dump(mode="json") for e in report.discrepancies],
                "review_queue": [e.user_id for e in report.review_queue],
            },
            indent=2,
        ))
        return 1 if report.review_queue else 0
    finally:
        await _db.close_db()


async def main() -> int:
    parser = argparse.ArgumentParser(description="Audit persisted survivor statuses against recomputed ones.")
    parser.add_argument("--pool-id", default=settings.POOL_ID)
    parser.add_argument("--through-week", type=int, default=None, help="Latest week whose pick deadline passed.")
    parser.add_argument("--dry-run", action="store_true", help="Report only (default behavior).")
    parser.add_argument("--execute", action="store_true", help="Apply auto-corrections and persist the report.")
    args = parser.parse_args()

    setup_logging()
    return await _run(args.pool_id, bool(args.execute), args.through_week)


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
