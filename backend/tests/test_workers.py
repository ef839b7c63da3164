"""
backend/tests/test_workers.py

Purpose:
    Scheduled job behavior: results sync week selection and smart sleep,
    resolver gating on newer results, and the scheduled integrity audit.

Dependencies:
    - survivor.workers
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from survivor.config import settings
from survivor.models.survivor import GameResult, GameStatus
from survivor.services import survivor_service
from survivor.services.results_cache import ResultsCache
from survivor.services.results_refresher import RefreshOutcome
from survivor.workers import _state as state_module
from survivor.workers import integrity_audit, results_sync, survivor_resolver


@pytest.fixture
def clock(monkeypatch):
    now = {"t": datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)}
    monkeypatch.setattr(state_module, "utcnow", lambda: now["t"])
    return now


@pytest.mark.asyncio
async def test_results_sync_refreshes_open_weeks(fake_db, clock, monkeypatch):
    cache = ResultsCache()
    cache.store(1, [GameResult(week=1, home_team="Buffalo Bills", away_team="New York Jets",
                               home_score=20, away_score=10, status=GameStatus.final)])
    requested = []

    class _Refresher:
        async def refresh_until_final(self, weeks):
            requested.append(list(weeks))
            return {w: RefreshOutcome(week=w, fetched=True, final=w < 3) for w in weeks}

    monkeypatch.setattr(survivor_service, "results_cache", cache)
    monkeypatch.setattr(survivor_service, "refresher", _Refresher())
    monkeypatch.setattr(results_sync, "current_week", lambda: 3)

    result = await results_sync.sync_results()

    assert requested == [[2, 3]]
    assert result["skipped"] is False
    state = await fake_db.worker_state.find_one({"_id": "results_sync"})
    assert state["open_weeks"] == [3]


@pytest.mark.asyncio
async def test_results_sync_smart_sleeps_when_everything_is_final(fake_db, clock, monkeypatch):
    cache = ResultsCache()
    cache.store(1, [GameResult(week=1, home_team="Buffalo Bills", away_team="New York Jets",
                               home_score=20, away_score=10, status=GameStatus.final)])
    monkeypatch.setattr(survivor_service, "results_cache", cache)
    monkeypatch.setattr(results_sync, "current_week", lambda: 1)
    await state_module.set_synced("results_sync")

    assert (await results_sync.sync_results())["skipped"] is True


@pytest.mark.asyncio
async def test_resolver_runs_only_after_new_results(fake_db, clock, monkeypatch):
    runs = []

    async def _recalculate(pool_id):
        runs.append(pool_id)
        return {"members": 0, "updated": 0, "unchanged": 0, "skipped_regression": 0, "errors": 0}

    monkeypatch.setattr(survivor_service, "recalculate_pool", _recalculate)

    assert (await survivor_resolver.resolve_survivor_statuses())["skipped"] is False
    clock["t"] += timedelta(minutes=5)
    assert (await survivor_resolver.resolve_survivor_statuses())["skipped"] is True

    clock["t"] += timedelta(minutes=5)
    await state_module.set_synced("results_sync")
    clock["t"] += timedelta(minutes=5)
    assert (await survivor_resolver.resolve_survivor_statuses())["skipped"] is False
    assert runs == [settings.POOL_ID, settings.POOL_ID]


@pytest.mark.asyncio
async def test_scheduled_audit_persists_report(fake_db, clock, monkeypatch):
    monkeypatch.setattr(survivor_service, "results_cache", ResultsCache())
    fake_db.pool_members.docs.append({"pool_id": settings.POOL_ID, "user_id": "u1"})

    summary = await integrity_audit.run_integrity_audit()

    assert summary["MISSING_PERSISTED"] == 1
    assert len(fake_db.audit_reports.docs) == 1
    state = await fake_db.worker_state.find_one({"_id": "integrity_audit"})
    assert state["cancelled"] is False
