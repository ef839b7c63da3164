"""
backend/tests/test_survivor_service.py

Purpose:
    Pool recalculation and standings built on the shared engine, including
    the refusal to regress a recorded elimination.

Dependencies:
    - survivor.services.survivor_service
"""

from __future__ import annotations

import pytest

from survivor.models.survivor import GameResult, GameStatus, SurvivorStatus
from survivor.services import survivor_service
from survivor.services.pool_repository import PoolRepository
from survivor.services.results_cache import ResultsCache

POOL = "svc-pool"


@pytest.fixture
def cache():
    c = ResultsCache()
    c.store(1, [
        GameResult(week=1, home_team="Philadelphia Eagles", away_team="Dallas Cowboys",
                   home_score=24, away_score=20, status=GameStatus.final),
        GameResult(week=1, home_team="Kansas City Chiefs", away_team="Baltimore Ravens",
                   home_score=27, away_score=20, status=GameStatus.final),
    ])
    return c


@pytest.fixture
def repo(fake_db):
    for user_id, name, picks in (
        ("u1", "Zed", {"1": {"team": "Eagles"}}),
        ("u2", "Amy", {"1": {"team": "Cowboys"}}),
        ("u3", "Bob", None),
    ):
        fake_db.pool_members.docs.append({"pool_id": POOL, "user_id": user_id, "displayName": name})
        if picks:
            fake_db.survivor_picks.docs.append({"_id": user_id, "picks": picks})
    survivor_service.invalidate_standings()
    return PoolRepository(fake_db)


@pytest.mark.asyncio
async def test_recalculate_pool_persists_statuses(repo, cache):
    counts = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)
    assert {k: v for k, v in counts.items() if not k.startswith("eliminations")} == {
        "members": 3,
        "updated": 3,
        "unchanged": 0,
        "already_eliminated": 0,
        "skipped_regression": 0,
        "skipped_manual": 0,
        "errors": 0,
    }

    again = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)
    assert again["unchanged"] == 3
    assert again["updated"] == 0
    assert again["already_eliminated"] == 1
    assert again["eliminations"] == []

    assert (await repo.get_status(POOL, "u2")).eliminated_week == 1


@pytest.mark.asyncio
async def test_recalculate_pool_dry_run_writes_nothing(repo, cache, fake_db):
    counts = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo, dry_run=True)
    assert counts["updated"] == 3
    assert fake_db.survivor_status.docs == []


@pytest.mark.asyncio
async def test_recalculate_pool_skips_regressions(repo, cache):
    await repo.save_status(POOL, "u1", SurvivorStatus.eliminated(1, "recorded", ["Philadelphia Eagles"]))

    counts = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)

    assert counts["skipped_regression"] == 1
    assert (await repo.get_status(POOL, "u1")).is_eliminated


@pytest.mark.asyncio
async def test_evaluate_member_uses_picks_from_repository(repo, cache):
    status = await survivor_service.evaluate_member("u1", lookup=cache, repo=repo)
    assert status.alive is True
    assert status.pick_history == ["Philadelphia Eagles"]

    missed = await survivor_service.evaluate_member("u3", lookup=cache, repo=repo, through_week=1)
    assert missed.elimination_reason == "No pick made for Week 1"


@pytest.mark.asyncio
async def test_standings_put_alive_members_first(repo, cache):
    await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo, through_week=1)

    rows = await survivor_service.get_standings(POOL, repo=repo)

    assert [r["display_name"] for r in rows] == ["Zed", "Amy", "Bob"]
    assert rows[0]["status"] == "alive"
    assert rows[0]["weeks_survived"] == 1
    assert rows[0]["last_pick"] == "Philadelphia Eagles"
    assert rows[1]["eliminated_week"] == 1


@pytest.mark.asyncio
async def test_recalculate_pool_reports_new_eliminations(repo, cache):
    result = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo, through_week=1)

    assert result["eliminations"] == [
        {"user_id": "u2", "display_name": "Amy", "week": 1, "team": "Dallas Cowboys",
         "reason": "Dallas Cowboys lost to Philadelphia Eagles"},
        {"user_id": "u3", "display_name": "Bob", "week": 1, "team": None,
         "reason": "No pick made for Week 1"},
    ]
    assert result["eliminations_by_team"] == {"Dallas Cowboys": 1, survivor_service.NO_PICK_TEAM: 1}
    assert result["eliminations_by_week"] == {
        "1": {"eliminated": 2, "teams": {"Dallas Cowboys": 1, survivor_service.NO_PICK_TEAM: 1}},
    }


@pytest.mark.asyncio
async def test_recalculate_pool_keeps_operator_status(repo, cache):
    await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)
    await survivor_service.auditor.apply_manual_correction(
        POOL, "u2", SurvivorStatus.survived(1, ["Dallas Cowboys"]),
        actor_id="ops", reason="Game replayed",
    )

    counts = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)

    assert counts["skipped_manual"] == 1
    assert counts["updated"] == 0
    stored = await repo.get_status(POOL, "u2")
    assert stored.alive is True
    assert stored.manual_override is True


@pytest.mark.asyncio
async def test_recalculate_pool_leaves_unreadable_legacy_status(repo, cache, fake_db):
    fake_db.survivor_status.docs.append({"pool_id": POOL, "user_id": "u1", "eliminated": True})

    counts = await survivor_service.recalculate_pool(POOL, lookup=cache, repo=repo)

    assert counts["errors"] == 1
    assert counts["updated"] == 2
    legacy = next(d for d in fake_db.survivor_status.docs if d["user_id"] == "u1")
    assert "state" not in legacy
