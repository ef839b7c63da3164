"""Insert-only audit trail for survivor status corrections, result overrides
and operator actions. Nothing here updates or deletes audit_logs documents.
"""

import logging
from typing import Any, Optional

import survivor.database as _db
from survivor.models.audit import AuditLog
from survivor.utils import utcnow

logger = logging.getLogger("survivor.audit")

SYSTEM_ACTOR = "SYSTEM"


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: str,
    metadata: Optional[dict] = None,
    db: Any = None,
) -> None:
    """Append one record to audit_logs; failures are logged, never raised.

    Args:
        actor_id: Who performed the action ("SYSTEM", "admin", a CLI operator).
        target_id: What was affected (User-ID, "<team>:<week>").
        action: Action identifier, e.g. "SURVIVOR_STATUS_AUTO_CORRECTED".
        metadata: Before/after status, override payload or run counters.
        db: Database handle override (defaults to the connected database).
    """
    doc = AuditLog(
        timestamp=utcnow(),
        actor_id=actor_id,
        target_id=target_id,
        action=action,
        metadata=metadata or {},
    ).model_dump()

    target_db = db if db is not None else _db.db
    try:
        await target_db.audit_logs.insert_one(doc)
    except Exception:
        # Audit logging must never abort the correction it describes
        logger.exception("Failed to write audit log: action=%s target=%s", action, target_id)
