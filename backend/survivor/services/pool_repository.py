"""
backend/survivor/services/pool_repository.py

Purpose:
    Document-store access for pool membership, per-user survivor picks,
    persisted survivor status and audit reports.

Collections:
    - pool_members     {pool_id, user_id, display_name, email, role,
                        participation.survivor.enabled}
    - survivor_picks   {_id: user_id, picks: {"<week>": {team, gameId?}}}
    - survivor_status  {pool_id, user_id, state, alive, eliminated_week, ...}
    - audit_reports    AuditReport.to_document()

Dependencies:
    - survivor.database (default handle; tests inject a fake db)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pymongo import DESCENDING

import survivor.database as _db
from survivor.errors import DataMissingError
from survivor.models.audit import AuditReport
from survivor.models.survivor import Pick, PoolMember, SurvivorStatus, picks_from_document
from survivor.utils import utcnow

logger = logging.getLogger("survivor.pool_repository")


class PoolRepository:
    def __init__(self, db: Any = None) -> None:
        self._db = db

    @property
    def db(self):
        return self._db if self._db is not None else _db.db

    # ---- Membership ----

    async def list_members(self, pool_id: str, *, survivor_only: bool = True) -> list[PoolMember]:
        docs = await self.db.pool_members.find({"pool_id": pool_id}).to_list(length=None)
        members: list[PoolMember] = []
        for doc in docs:
            try:
                member = PoolMember.from_document(doc)
            except ValueError:
                logger.error("Unreadable pool member document in %s: %s", pool_id, doc.get("_id"))
                continue
            if survivor_only and not member.survivor_enabled:
                continue
            members.append(member)
        return members

    async def get_member(self, pool_id: str, user_id: str) -> Optional[PoolMember]:
        doc = await self.db.pool_members.find_one({"pool_id": pool_id, "user_id": user_id})
        return PoolMember.from_document(doc) if doc else None

    # ---- Picks ----

    async def get_picks(self, user_id: str) -> list[Pick]:
        doc = await self.db.survivor_picks.find_one({"_id": user_id})
        return picks_from_document(doc)

    # ---- Status ----

    async def get_status(self, pool_id: str, user_id: str) -> Optional[SurvivorStatus]:
        doc = await self.db.survivor_status.find_one({"pool_id": pool_id, "user_id": user_id})
        return SurvivorStatus.from_document(doc)

    async def get_statuses(self, pool_id: str) -> dict[str, SurvivorStatus]:
        docs = await self.db.survivor_status.find({"pool_id": pool_id}).to_list(length=None)
        out: dict[str, SurvivorStatus] = {}
        for doc in docs:
            try:
                status = SurvivorStatus.from_document(doc)
            except DataMissingError as exc:
                logger.warning("Skipping unreadable status for %s: %s", doc.get("user_id"), exc)
                continue
            if status is not None:
                out[str(doc["user_id"])] = status
        return out

    async def save_status(self, pool_id: str, user_id: str, status: SurvivorStatus) -> SurvivorStatus:
        """Upsert one member's status ($set merge; last writer wins)."""
        now = utcnow()
        saved = status.model_copy(update={"updated_at": now})
        payload = saved.to_document()
        await self.db.survivor_status.update_one(
            {"pool_id": pool_id, "user_id": user_id},
            {
                "$set": payload,
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        return saved

    # ---- Audit reports ----

    async def save_audit_report(self, report: AuditReport) -> None:
        await self.db.audit_reports.insert_one(report.to_document())

    async def list_audit_reports(self, pool_id: str, limit: int = 20) -> list[dict]:
        cursor = self.db.audit_reports.find({"pool_id": pool_id}).sort("created_at", DESCENDING)
        rows = await cursor.to_list(length=limit)
        for row in rows:
            row["_id"] = str(row.get("_id"))
        return rows
