"""
backend/survivor/services/integrity_auditor.py

Purpose:
    Batch re-derivation of every pool member's survivor status and
    reconciliation against the persisted value. Optionally auto-corrects
    drift; regressions of an existing elimination are never auto-applied
    and land in the review queue instead.

Notes:
    - One member's bad data becomes an ERROR entry; the batch continues.
    - Members are audited concurrently under a semaphore; the cancel event
      is checked before each member starts, and a partial report is valid.
    - Corrections are tagged auto_corrected with reason and timestamp,
      written to audit_logs, and announced to invalidation hooks (e.g. UI
      display caches).

Dependencies:
    - survivor.services.elimination_engine
    - survivor.services.pool_repository
    - survivor.services.audit_service
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from survivor.config import settings
from survivor.errors import IntegrityViolationError
from survivor.models.audit import AuditEntry, AuditOutcome, AuditReport
from survivor.models.survivor import PoolMember, SurvivorStatus
from survivor.services.audit_service import SYSTEM_ACTOR, log_audit
from survivor.services.elimination_engine import EliminationEngine, ResultsLookup, check_monotonic
from survivor.services.pool_repository import PoolRepository
from survivor.utils import utcnow

logger = logging.getLogger("survivor.auditor")

InvalidationHook = Callable[[str, str, SurvivorStatus], Union[Awaitable[None], None]]


def describe_mismatch(persisted: SurvivorStatus, recomputed: SurvivorStatus) -> str:
    if persisted.is_eliminated and not recomputed.is_eliminated:
        return "User incorrectly marked as ELIMINATED (should be ALIVE)"
    if not persisted.is_eliminated and recomputed.is_eliminated:
        return "User incorrectly marked as ALIVE (should be ELIMINATED)"
    if persisted.eliminated_week != recomputed.eliminated_week:
        return (
            f"Elimination week {persisted.eliminated_week} differs from "
            f"recomputed week {recomputed.eliminated_week}"
        )
    before, after = persisted.comparable(), recomputed.comparable()
    changed = sorted(k for k in after if before.get(k) != after.get(k))
    return f"Fields differ: {', '.join(changed)}"


class IntegrityAuditor:
    def __init__(
        self,
        engine: EliminationEngine,
        repository: PoolRepository,
        *,
        auto_correct: Optional[bool] = None,
        concurrency: Optional[int] = None,
        invalidation_hooks: Iterable[InvalidationHook] = (),
        audit_db: Any = None,
    ) -> None:
        self._engine = engine
        self._repo = repository
        self._auto_correct = settings.AUDIT_AUTO_CORRECT if auto_correct is None else auto_correct
        self._concurrency = max(1, concurrency or settings.AUDIT_CONCURRENCY)
        self._hooks: list[InvalidationHook] = list(invalidation_hooks)
        self._audit_db = audit_db

    @property
    def audit_db(self):
        return self._audit_db if self._audit_db is not None else self._repo.db

    def add_invalidation_hook(self, hook: InvalidationHook) -> None:
        self._hooks.append(hook)

    async def audit_pool(
        self,
        pool_members: Iterable[PoolMember],
        results_lookup: ResultsLookup,
        *,
        pool_id: Optional[str] = None,
        through_week: Optional[int] = None,
        auto_correct: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
        persist_report: bool = False,
    ) -> AuditReport:
        pool_id = pool_id or settings.POOL_ID
        apply = self._auto_correct if auto_correct is None else auto_correct
        members = list(pool_members)
        report = AuditReport(
            pool_id=pool_id,
            started_at=utcnow(),
            auto_correct=apply,
            total_members=len(members),
        )
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _run(member: PoolMember) -> Optional[AuditEntry]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self._audit_member(pool_id, member, results_lookup, through_week, apply)

        results = await asyncio.gather(*(_run(m) for m in members))
        report.entries = [entry for entry in results if entry is not None]
        report.cancelled = len(report.entries) < len(members)
        report.finished_at = utcnow()

        summary = report.summary()
        logger.info(
            "Audit %s: processed=%d/%d match=%d missing=%d mismatch=%d errors=%d corrected=%d review=%d%s",
            pool_id, summary["processed"], len(members), summary["MATCH"],
            summary["MISSING_PERSISTED"], summary["STATUS_MISMATCH"], summary["ERROR"],
            summary["corrected"], summary["needs_review"],
            " (cancelled)" if report.cancelled else "",
        )

        if persist_report:
            try:
                await self._repo.save_audit_report(report)
            except Exception:
                logger.exception("Failed to persist audit report for %s", pool_id)
        return report

    async def _audit_member(
        self,
        pool_id: str,
        member: PoolMember,
        lookup: ResultsLookup,
        through_week: Optional[int],
        apply: bool,
    ) -> AuditEntry:
        try:
            picks = await self._repo.get_picks(member.user_id)
            recomputed = self._engine.evaluate(picks, lookup, through_week=through_week)
            persisted = await self._repo.get_status(pool_id, member.user_id)
        except Exception as exc:
            logger.exception("Audit failed for %s (%s)", member.display_name, member.user_id)
            return AuditEntry(
                user_id=member.user_id,
                display_name=member.display_name,
                outcome=AuditOutcome.error,
                error=f"{type(exc).__name__}: {exc}",
            )

        entry = AuditEntry(
            user_id=member.user_id,
            display_name=member.display_name,
            outcome=AuditOutcome.match,
            persisted=persisted.comparable() if persisted else None,
            recomputed=recomputed.comparable(),
        )
        if persisted is None:
            entry.outcome = AuditOutcome.missing_persisted
            entry.issue = "No status document exists"
        elif persisted.comparable() == recomputed.comparable():
            return entry
        else:
            entry.outcome = AuditOutcome.status_mismatch
            entry.issue = describe_mismatch(persisted, recomputed)

        try:
            check_monotonic(persisted, recomputed)
        except IntegrityViolationError as exc:
            entry.needs_review = True
            entry.issue = f"{entry.issue}; {exc}"
            logger.warning("Manual review required for %s: %s", member.user_id, entry.issue)
            return entry

        if persisted is not None and persisted.manual_override:
            entry.needs_review = True
            entry.issue = f"{entry.issue}; persisted status was set by an operator"
            logger.warning("Operator-set status differs for %s: %s", member.user_id, entry.issue)
            return entry

        if apply:
            entry.corrected = await self._correct(pool_id, member, recomputed, entry.issue or "")
        return entry

    async def _correct(
        self,
        pool_id: str,
        member: PoolMember,
        recomputed: SurvivorStatus,
        reason: str,
    ) -> bool:
        corrected = recomputed.model_copy(update={
            "auto_corrected": True,
            "correction_reason": reason,
            "corrected_at": utcnow(),
        })
        try:
            await self._repo.save_status(pool_id, member.user_id, corrected)
        except Exception:
            logger.exception("Auto-correction failed for %s", member.user_id)
            return False

        await log_audit(
            actor_id=SYSTEM_ACTOR,
            target_id=member.user_id,
            action="SURVIVOR_STATUS_AUTO_CORRECTED",
            metadata={"pool_id": pool_id, "reason": reason, "status": corrected.comparable()},
            db=self.audit_db,
        )
        await self._invalidate(pool_id, member.user_id, corrected)
        logger.info("Auto-corrected %s: %s", member.display_name, reason)
        return True

    async def apply_manual_correction(
        self,
        pool_id: str,
        user_id: str,
        status: SurvivorStatus,
        *,
        actor_id: str,
        reason: str,
    ) -> SurvivorStatus:
        """Explicit operator override: persists status even if it clears or moves an elimination."""
        previous = await self._repo.get_status(pool_id, user_id)
        forced = status.model_copy(update={
            "manual_override": True,
            "auto_corrected": False,
            "correction_reason": reason,
            "corrected_at": utcnow(),
        })
        saved = await self._repo.save_status(pool_id, user_id, forced)
        await log_audit(
            actor_id=actor_id,
            target_id=user_id,
            action="SURVIVOR_STATUS_MANUAL_OVERRIDE",
            metadata={
                "pool_id": pool_id,
                "reason": reason,
                "before": previous.comparable() if previous else None,
                "after": saved.comparable(),
            },
            db=self.audit_db,
        )
        await self._invalidate(pool_id, user_id, saved)
        logger.warning("Manual survivor correction for %s by %s: %s", user_id, actor_id, reason)
        return saved

    async def approve_recomputed(
        self,
        pool_id: str,
        user_id: str,
        results_lookup: ResultsLookup,
        *,
        actor_id: str,
        through_week: Optional[int] = None,
    ) -> SurvivorStatus:
        """Resolve a review-queue entry by accepting the engine's recomputed status."""
        picks = await self._repo.get_picks(user_id)
        recomputed = self._engine.evaluate(picks, results_lookup, through_week=through_week)
        return await self.apply_manual_correction(
            pool_id, user_id, recomputed,
            actor_id=actor_id,
            reason="Recomputed status approved after manual review",
        )

    async def _invalidate(self, pool_id: str, user_id: str, status: SurvivorStatus) -> None:
        for hook in self._hooks:
            try:
                result = hook(pool_id, user_id, status)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Cache invalidation hook failed for %s", user_id)
