"""Survivor pool endpoints: standings and per-member status."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from survivor.models.survivor import PoolMember, SurvivorStatus
from survivor.services import survivor_service

router = APIRouter(prefix="/api/survivor", tags=["survivor"])


@router.get("/{pool_id}/standings")
async def get_standings(pool_id: str):
    """Alive members first, then by weeks survived."""
    return await survivor_service.get_standings(pool_id)


@router.get("/{pool_id}/members/{user_id}")
async def get_member_status(
    pool_id: str,
    user_id: str,
    through_week: Optional[int] = Query(None, ge=1, le=18),
):
    """Persisted status, or a fresh evaluation when nothing is persisted yet."""
    repo = survivor_service.repository
    member = await repo.get_member(pool_id, user_id)
    if not member:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Member not found.")

    current = await repo.get_status(pool_id, user_id)
    source = "persisted"
    if current is None:
        current = await survivor_service.evaluate_member(user_id, through_week=through_week)
        source = "evaluated"
    return _status_response(member, current, source)


def _status_response(member: PoolMember, current: SurvivorStatus, source: str) -> dict:
    return {
        "user_id": member.user_id,
        "display_name": member.display_name,
        "display_status": current.display_status,
        "source": source,
        **current.comparable(),
        "pending_reason": current.pending_reason,
        "stale": current.stale,
        "auto_corrected": current.auto_corrected,
        "manual_override": current.manual_override,
        "updated_at": current.updated_at,
    }
