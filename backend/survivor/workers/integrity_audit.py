"""Scheduled integrity audit of persisted survivor statuses."""

import asyncio
import logging

from survivor.config import settings
from survivor.services import survivor_service
from survivor.workers._state import set_synced

logger = logging.getLogger("survivor.integrity_audit")

STATE_KEY = "integrity_audit"

# Set by shutdown or an admin to stop a running audit between members.
cancel_event = asyncio.Event()


async def run_integrity_audit() -> dict:
    cancel_event.clear()
    members = await survivor_service.repository.list_members(settings.POOL_ID)
    report = await survivor_service.auditor.audit_pool(
        members,
        survivor_service.results_cache,
        pool_id=settings.POOL_ID,
        cancel_event=cancel_event,
        persist_report=True,
    )
    summary = report.summary()
    if report.review_queue:
        logger.warning(
            "Integrity audit: %d member(s) need manual review: %s",
            len(report.review_queue),
            ", ".join(e.user_id for e in report.review_queue),
        )
    await set_synced(STATE_KEY, summary=summary, cancelled=report.cancelled)
    return summary
