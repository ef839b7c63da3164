"""Re-derive every survivor member's status after results change."""

import logging
from datetime import timedelta

from survivor.config import settings
from survivor.services import survivor_service
from survivor.workers._state import get_synced_at, recently_synced, set_synced

logger = logging.getLogger("survivor.survivor_resolver")

STATE_KEY = "survivor_resolver"


async def resolve_survivor_statuses() -> dict:
    """Recalculate the pool with the shared engine.

    Smart sleep: skips when the last run is newer than the last results
    sync, since nothing it depends on has changed.
    """
    if await recently_synced(STATE_KEY, timedelta(hours=6)):
        resolved_at = await get_synced_at(STATE_KEY)
        synced_at = await get_synced_at("results_sync")
        if synced_at is None or (resolved_at is not None and resolved_at >= synced_at):
            logger.debug("Smart sleep: no results sync since last resolve")
            return {"skipped": True}

    counts = await survivor_service.recalculate_pool(settings.POOL_ID)
    if counts["skipped_regression"]:
        logger.warning(
            "%d status writes skipped as regressions; run the integrity audit",
            counts["skipped_regression"],
        )
    if counts.get("skipped_manual"):
        logger.info("%d operator-set statuses left untouched", counts["skipped_manual"])
    await set_synced(STATE_KEY, **counts)
    return {"skipped": False, **counts}
