"""
backend/survivor/routers/admin.py

Purpose:
    Operator endpoints: results cache inspection, forced week refresh,
    manual result overrides, pool recalculation, integrity audits and the
    review-queue approval action. Every mutating call is audit-logged.

Dependencies:
    - survivor.services.auth_service
    - survivor.services.audit_service
    - survivor.services.survivor_service
"""

import logging
import time as _time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from survivor.errors import DataMissingError
from survivor.models.survivor import ResultOverrideRequest
from survivor.providers.espn import espn_provider
from survivor.services import survivor_service
from survivor.services.audit_service import log_audit
from survivor.services.auth_service import get_admin_actor
from survivor.services.results_cache import persist_week
from survivor.workers._state import get_worker_states

logger = logging.getLogger("survivor.admin")
router = APIRouter(prefix="/api/admin", tags=["admin"])


class AuditRunRequest(BaseModel):
    auto_correct: Optional[bool] = None
    through_week: Optional[int] = None


class ApproveRequest(BaseModel):
    through_week: Optional[int] = None


class AutomationRequest(BaseModel):
    enabled: bool


# ---- Results ----

@router.get("/results/cache")
async def get_results_cache(actor: str = Depends(get_admin_actor)):
    return {
        **survivor_service.results_cache.status(),
        "provider": {"name": espn_provider.name, "circuit_open": espn_provider.circuit_open},
    }


@router.post("/results/{week}/refresh")
async def refresh_week(week: int, actor: str = Depends(get_admin_actor)):
    """Force a provider fetch for one week, bypassing freshness."""
    if not 1 <= week <= 18:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Week must be 1-18.")
    t0 = _time.monotonic()
    outcome = await survivor_service.refresher.refresh_week(week, force=True)
    duration_ms = int((_time.monotonic() - t0) * 1000)

    await log_audit(
        actor_id=actor, target_id=f"week:{week}", action="RESULTS_REFRESH",
        metadata={"duration_ms": duration_ms, "fetched": outcome.fetched, "error": outcome.error},
    )
    return {**outcome.as_dict(), "duration_ms": duration_ms}


@router.post("/results/override")
async def set_result_override(body: ResultOverrideRequest, actor: str = Depends(get_admin_actor)):
    cache = survivor_service.results_cache
    scoreline = None
    if body.home_score is not None and body.away_score is not None:
        scoreline = (body.home_score, body.away_score)
    try:
        game = cache.set_manual_override(body.team, body.week, body.winner, scoreline, opponent=body.opponent)
    except DataMissingError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    await persist_week(cache, body.week)

    await log_audit(
        actor_id=actor, target_id=f"{game.home_team}:{body.week}", action="RESULT_OVERRIDE_SET",
        metadata={"game": game.model_dump(mode="json")},
    )
    survivor_service.invalidate_standings()
    return game.model_dump(mode="json")


@router.delete("/results/override/{week}/{team}")
async def clear_result_override(week: int, team: str, actor: str = Depends(get_admin_actor)):
    cache = survivor_service.results_cache
    if not cache.clear_manual_override(team, week):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No manual override for this team and week.")
    await persist_week(cache, week)
    await log_audit(actor_id=actor, target_id=f"{team}:{week}", action="RESULT_OVERRIDE_CLEARED")
    return {"cleared": True, "week": week, "team": team}


# ---- Survivor pool ----

@router.post("/survivor/{pool_id}/recalculate")
async def recalculate_pool(
    pool_id: str,
    through_week: Optional[int] = Query(None, ge=1, le=18),
    dry_run: bool = Query(False),
    actor: str = Depends(get_admin_actor),
):
    counts = await survivor_service.recalculate_pool(pool_id, through_week=through_week, dry_run=dry_run)
    if not dry_run:
        await log_audit(
            actor_id=actor, target_id=pool_id, action="SURVIVOR_POOL_RECALCULATED", metadata=counts,
        )
    return counts


@router.post("/survivor/{pool_id}/audit")
async def run_audit(pool_id: str, body: AuditRunRequest, actor: str = Depends(get_admin_actor)):
    members = await survivor_service.repository.list_members(pool_id)
    report = await survivor_service.auditor.audit_pool(
        members,
        survivor_service.results_cache,
        pool_id=pool_id,
        through_week=body.through_week,
        auto_correct=body.auto_correct,
        persist_report=True,
    )
    logger.info("Admin %s ran integrity audit for %s", actor, pool_id)
    return {
        "summary": report.summary(),
        "cancelled": report.cancelled,
        "discrepancies": [e.model_dump(mode="json") for e in report.discrepancies],
        "review_queue": [e.model_dump(mode="json") for e in report.review_queue],
        "errors": [e.model_dump(mode="json") for e in report.entries if e.error],
    }


@router.get("/survivor/{pool_id}/audits")
async def list_audits(
    pool_id: str,
    limit: int = Query(20, ge=1, le=100),
    actor: str = Depends(get_admin_actor),
):
    return await survivor_service.repository.list_audit_reports(pool_id, limit=limit)


@router.post("/survivor/{pool_id}/members/{user_id}/approve")
async def approve_member(
    pool_id: str,
    user_id: str,
    body: ApproveRequest,
    actor: str = Depends(get_admin_actor),
):
    """Accept the recomputed status for a member held in the review queue."""
    member = await survivor_service.repository.get_member(pool_id, user_id)
    if not member:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Member not found.")
    saved = await survivor_service.auditor.approve_recomputed(
        pool_id, user_id, survivor_service.results_cache,
        actor_id=actor, through_week=body.through_week,
    )
    return {"user_id": user_id, **saved.comparable(), "manual_override": saved.manual_override}


# ---- Workers ----

@router.get("/workers")
async def get_workers(actor: str = Depends(get_admin_actor)):
    from survivor.main import automation_enabled, scheduler

    return {
        "automation_enabled": automation_enabled(),
        "scheduler_running": bool(scheduler.running),
        "jobs": [job.id for job in scheduler.get_jobs()],
        "state": await get_worker_states(),
    }


@router.post("/workers/automation")
async def set_automation(body: AutomationRequest, actor: str = Depends(get_admin_actor)):
    from survivor.main import set_automation_enabled

    result = set_automation_enabled(body.enabled)
    await log_audit(
        actor_id=actor, target_id="scheduler", action="AUTOMATION_TOGGLED", metadata=result,
    )
    return result
