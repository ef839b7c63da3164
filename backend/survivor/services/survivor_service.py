"""
backend/survivor/services/survivor_service.py

Purpose:
    Orchestration around the shared EliminationEngine: single-member
    evaluation, pool-wide recalculation (resolver worker + admin route) and
    standings. Owns the process-wide engine, results cache, repository,
    auditor and refresher instances.

Dependencies:
    - survivor.services.elimination_engine
    - survivor.services.results_cache
    - survivor.services.pool_repository
    - survivor.services.integrity_auditor
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from survivor.config import settings
from survivor.errors import IntegrityViolationError, SurvivorError
from survivor.models.survivor import PoolMember, SurvivorStandingEntry, SurvivorState, SurvivorStatus
from survivor.providers.espn import espn_provider
from survivor.services.elimination_engine import EliminationEngine, ResultsLookup, check_monotonic
from survivor.services.integrity_auditor import IntegrityAuditor
from survivor.services.pool_repository import PoolRepository
from survivor.services.results_cache import ResultsCache, persist_week
from survivor.services.results_refresher import ResultsRefresher
from survivor.utils import utcnow

logger = logging.getLogger("survivor.survivor_service")

STANDINGS_CACHE_TTL_SECONDS = 60
NO_PICK_TEAM = "No pick"
_STANDINGS_CACHE: dict[str, tuple[datetime, list[dict[str, Any]]]] = {}


def invalidate_standings(pool_id: Optional[str] = None, *_: Any) -> None:
    """Drop cached standings for one pool (or all). Usable as an auditor hook."""
    if pool_id is None:
        _STANDINGS_CACHE.clear()
    else:
        _STANDINGS_CACHE.pop(pool_id, None)


engine = EliminationEngine(settings.SURVIVOR_TIE_POLICY)
results_cache = ResultsCache()
repository = PoolRepository()
auditor = IntegrityAuditor(engine, repository, invalidation_hooks=[invalidate_standings])
refresher = ResultsRefresher(espn_provider, results_cache, persist=persist_week)


async def evaluate_member(
    user_id: str,
    *,
    through_week: Optional[int] = None,
    lookup: Optional[ResultsLookup] = None,
    repo: Optional[PoolRepository] = None,
) -> SurvivorStatus:
    repo = repo or repository
    picks = await repo.get_picks(user_id)
    return engine.evaluate(picks, lookup or results_cache, through_week=through_week)


async def recalculate_pool(
    pool_id: Optional[str] = None,
    *,
    through_week: Optional[int] = None,
    lookup: Optional[ResultsLookup] = None,
    repo: Optional[PoolRepository] = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """Recompute and persist every member's status.

    Writes that would clear or move an elimination earlier are skipped and
    left to the integrity audit review queue, as are statuses an operator
    set by hand. The result carries the counters plus a report of the
    eliminations this run recorded, grouped by week and by losing team.
    """
    pool_id = pool_id or settings.POOL_ID
    repo = repo or repository
    lookup = lookup or results_cache

    members = await repo.list_members(pool_id)
    counts: dict[str, Any] = {
        "members": len(members),
        "updated": 0,
        "unchanged": 0,
        "already_eliminated": 0,
        "skipped_regression": 0,
        "skipped_manual": 0,
        "errors": 0,
    }
    eliminations: list[dict[str, Any]] = []

    for member in members:
        try:
            picks = await repo.get_picks(member.user_id)
            status = engine.evaluate(picks, lookup, through_week=through_week)
            previous = await repo.get_status(pool_id, member.user_id)
        except SurvivorError as exc:
            logger.error("Cannot evaluate %s (%s): %s", member.display_name, member.user_id, exc)
            counts["errors"] += 1
            continue

        if previous is not None and previous.is_eliminated and status.is_eliminated:
            counts["already_eliminated"] += 1
        if previous is not None and previous.comparable() == status.comparable():
            counts["unchanged"] += 1
            continue

        if previous is not None and previous.manual_override:
            logger.warning(
                "Keeping operator status for %s; recomputed %s differs",
                member.user_id, status.display_status,
            )
            counts["skipped_manual"] += 1
            continue

        try:
            check_monotonic(previous, status)
        except IntegrityViolationError as exc:
            logger.warning("Skipping status write for %s: %s", member.user_id, exc)
            counts["skipped_regression"] += 1
            continue

        if not dry_run:
            await repo.save_status(pool_id, member.user_id, status)
        counts["updated"] += 1
        if status.is_eliminated and (previous is None or not previous.is_eliminated):
            eliminations.append(_elimination_row(member, status))
            logger.info(
                "Survivor eliminated: user=%s week=%s reason=%s",
                member.user_id, status.eliminated_week, status.elimination_reason,
            )

    if counts["updated"] and not dry_run:
        invalidate_standings(pool_id)
    logger.info("Recalculated pool %s: %s (new eliminations=%d)", pool_id, counts, len(eliminations))
    return {**counts, **elimination_breakdown(eliminations)}


def _elimination_row(member: PoolMember, status: SurvivorStatus) -> dict[str, Any]:
    week = status.eliminated_week or 0
    # A missed pick has no team for the elimination week
    team = status.pick_history[week - 1] if 0 < week <= len(status.pick_history) else None
    return {
        "user_id": member.user_id,
        "display_name": member.display_name,
        "week": week,
        "team": team,
        "reason": status.elimination_reason,
    }


def elimination_breakdown(eliminations: list[dict[str, Any]]) -> dict[str, Any]:
    """Group elimination rows by losing team and by week.

    Missed picks are grouped under NO_PICK_TEAM. Week keys are strings so
    the breakdown can be stored as a document.
    """
    rows = sorted(eliminations, key=lambda r: (r["week"], r["display_name"].lower()))
    by_team: dict[str, int] = {}
    by_week: dict[str, dict[str, Any]] = {}
    for row in rows:
        team = row["team"] or NO_PICK_TEAM
        by_team[team] = by_team.get(team, 0) + 1
        week = by_week.setdefault(str(row["week"]), {"eliminated": 0, "teams": {}})
        week["eliminated"] += 1
        week["teams"][team] = week["teams"].get(team, 0) + 1
    return {
        "eliminations": rows,
        "eliminations_by_team": dict(sorted(by_team.items(), key=lambda kv: (-kv[1], kv[0]))),
        "eliminations_by_week": by_week,
    }


def _weeks_survived(status: SurvivorStatus) -> int:
    if status.state == SurvivorState.alive_survived:
        return status.week or 0
    if status.week:
        return status.week - 1
    return 0


async def get_standings(pool_id: Optional[str] = None, *, repo: Optional[PoolRepository] = None) -> list[dict[str, Any]]:
    """Persisted statuses joined with member names; alive first, longest run first."""
    pool_id = pool_id or settings.POOL_ID
    now = utcnow()
    cached = _STANDINGS_CACHE.get(pool_id)
    if repo is None and cached and now - cached[0] < timedelta(seconds=STANDINGS_CACHE_TTL_SECONDS):
        return cached[1]

    repo = repo or repository
    members = await repo.list_members(pool_id)
    statuses = await repo.get_statuses(pool_id)

    rows = []
    for member in members:
        status = statuses.get(member.user_id) or SurvivorStatus.no_pick_yet()
        rows.append(SurvivorStandingEntry(
            user_id=member.user_id,
            display_name=member.display_name,
            status=status.display_status,
            state=status.state.value,
            alive=status.alive,
            week=status.week,
            eliminated_week=status.eliminated_week,
            elimination_reason=status.elimination_reason,
            last_pick=status.pick_history[-1] if status.pick_history else None,
            weeks_survived=_weeks_survived(status),
            stale=status.stale,
        ).model_dump())
    rows.sort(key=lambda r: (not r["alive"], -r["weeks_survived"], r["display_name"].lower()))

    if repo is repository:
        _STANDINGS_CACHE[pool_id] = (now, rows)
    return rows
