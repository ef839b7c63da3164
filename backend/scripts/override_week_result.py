"""
backend/scripts/override_week_result.py

Purpose:
    Pin (or clear) a manual result for one team/week in the results cache.
    Provider refreshes never replace a manual override. Audit-logged.

Usage:
    cd backend && python -m scripts.override_week_result --week 1 --team Bengals --winner "Cleveland Browns" --score 17-24
    cd backend && python -m scripts.override_week_result --week 1 --team Bengals --clear
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json

import survivor.database as _db
from survivor.middleware.logging import setup_logging
from survivor.services import survivor_service
from survivor.services.audit_service import log_audit
from survivor.services.results_cache import load_cache_from_db, persist_week


async def _run(args: argparse.Namespace) -> int:
    actor = f"cli:{getpass.getuser()}"
    await _db.connect_db()
    try:
        cache = survivor_service.results_cache
        await load_cache_from_db(cache)

        if args.clear:
            cleared = cache.clear_manual_override(args.team, args.week)
            if not cleared:
                print(json.dumps({"ok": False, "reason": "no_override"}))
                return 1
            await persist_week(cache, args.week)
            await log_audit(actor_id=actor, target_id=f"{args.team}:{args.week}", action="RESULT_OVERRIDE_CLEARED")
            print(json.dumps({"ok": True, "cleared": True}))
            return 0

        game = cache.set_manual_override(args.team, args.week, args.winner, args.score, opponent=args.opponent)
        await persist_week(cache, args.week)
        await log_audit(
            actor_id=actor, target_id=f"{game.home_team}:{args.week}", action="RESULT_OVERRIDE_SET",
            metadata={"game": game.model_dump(mode="json")},
        )
        print(json.dumps({"ok": True, "game": game.model_dump(mode="json")}, indent=2))
        return 0
    finally:
        await _db.close_db()


async def main() -> int:
    parser = argparse.ArgumentParser(description="Set or clear a manual NFL result override.")
    parser.add_argument("--week", type=int, required=True)
    parser.add_argument("--team", required=True)
    parser.add_argument("--winner", help="Winning team name or TIE.")
    parser.add_argument("--score", help="Home-away score, e.g. 24-10.")
    parser.add_argument("--opponent", help="Opponent when the week is not cached yet.")
    parser.add_argument("--clear", action="store_true", help="Remove the override instead of setting one.")
    args = parser.parse_args()

    if not args.clear and not args.winner:
        parser.error("--winner is required unless --clear is given")

    setup_logging()
    return await _run(args)


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
