"""Persistent worker state: last run per worker, kept across restarts.

Lets the scheduled jobs smart-sleep after deploys instead of hitting the
provider again. Uses a small `worker_state` collection in MongoDB.
"""

from datetime import datetime, timedelta

import survivor.database as _db
from survivor.utils import ensure_utc, utcnow


async def get_synced_at(worker_id: str) -> datetime | None:
    doc = await _db.db.worker_state.find_one({"_id": worker_id})
    return ensure_utc(doc["synced_at"]) if doc and doc.get("synced_at") else None


async def set_synced(worker_id: str, **extra) -> None:
    """Mark a worker as just run; extra fields (counters, last error) are stored alongside."""
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": {"synced_at": utcnow(), **extra}},
        upsert=True,
    )


async def recently_synced(worker_id: str, max_age: timedelta) -> bool:
    last = await get_synced_at(worker_id)
    if not last:
        return False
    return (utcnow() - last) < max_age


async def get_worker_states() -> list[dict]:
    rows = await _db.db.worker_state.find({}).to_list(length=100)
    return [{**row, "_id": str(row["_id"])} for row in rows]
