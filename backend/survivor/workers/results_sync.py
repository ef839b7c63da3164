"""Refresh NFL week results from the provider into the results cache."""

import logging
from datetime import timedelta

from survivor.config import settings
from survivor.services import survivor_service
from survivor.services.results_refresher import current_week
from survivor.workers._state import recently_synced, set_synced

logger = logging.getLogger("survivor.results_sync")

STATE_KEY = "results_sync"


def _open_weeks(through: int) -> list[int]:
    """Current week plus every earlier week the cache does not hold as final."""
    cache = survivor_service.results_cache
    return [w for w in range(1, through + 1) if w == through or not cache.is_week_final(w)]


async def sync_results() -> dict:
    """Fetch the current and any unfinished earlier weeks within the polling budget.

    Smart sleep: skips when run recently and every week up to now is final.
    """
    week = current_week()
    weeks = _open_weeks(week)
    interval = timedelta(minutes=settings.RESULTS_SYNC_INTERVAL_MINUTES)
    if await recently_synced(STATE_KEY, interval / 2) and all(
        survivor_service.results_cache.is_week_final(w) for w in weeks
    ):
        logger.debug("Smart sleep: weeks 1-%d already final", week)
        return {"skipped": True, "week": week}

    outcomes = await survivor_service.refresher.refresh_until_final(weeks)
    failed = sorted(w for w, o in outcomes.items() if o.error)
    still_open = sorted(w for w, o in outcomes.items() if not o.final)
    if failed:
        logger.warning("Results sync: provider failed for weeks %s", failed)
    logger.info("Results sync: weeks=%s open=%s", weeks, still_open)

    await set_synced(STATE_KEY, week=week, failed_weeks=failed, open_weeks=still_open)
    return {
        "skipped": False,
        "week": week,
        "weeks": {w: o.as_dict() for w, o in outcomes.items()},
    }
