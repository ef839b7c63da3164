from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditLog(BaseModel):
    """Immutable audit log entry for status corrections and result overrides.

    Insert-only. No updates or deletes permitted on this collection.
    """

    timestamp: datetime
    actor_id: str  # Who did it? (User-ID, admin key holder or "SYSTEM")
    target_id: str  # Who was affected? (User-ID, "<team>:<week>", etc.)
    action: str  # e.g. "SURVIVOR_STATUS_AUTO_CORRECTED", "RESULT_OVERRIDE_SET"
    metadata: dict = Field(default_factory=dict)  # Previous/new values


class AuditOutcome(str, Enum):
    match = "MATCH"
    missing_persisted = "MISSING_PERSISTED"
    status_mismatch = "STATUS_MISMATCH"
    error = "ERROR"


class AuditEntry(BaseModel):
    """Reconciliation result for a single pool member."""
    user_id: str
    display_name: str = ""
    outcome: AuditOutcome
    issue: Optional[str] = None
    persisted: Optional[dict[str, Any]] = None
    recomputed: Optional[dict[str, Any]] = None
    needs_review: bool = False
    corrected: bool = False
    error: Optional[str] = None


class AuditReport(BaseModel):
    pool_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    auto_correct: bool = False
    cancelled: bool = False
    total_members: int = 0
    entries: list[AuditEntry] = []

    @property
    def discrepancies(self) -> list[AuditEntry]:
        return [
            e for e in self.entries
            if e.outcome in (AuditOutcome.missing_persisted, AuditOutcome.status_mismatch)
        ]

    @property
    def review_queue(self) -> list[AuditEntry]:
        return [e for e in self.entries if e.needs_review]

    def summary(self) -> dict[str, int]:
        counts = {outcome.value: 0 for outcome in AuditOutcome}
        for entry in self.entries:
            counts[entry.outcome.value] += 1
        counts["processed"] = len(self.entries)
        counts["corrected"] = sum(1 for e in self.entries if e.corrected)
        counts["needs_review"] = len(self.review_queue)
        return counts

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump(mode="json")
        doc["started_at"] = self.started_at
        doc["finished_at"] = self.finished_at
        doc["created_at"] = self.started_at
        doc["summary"] = self.summary()
        return doc
