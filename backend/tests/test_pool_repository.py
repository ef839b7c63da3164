"""
backend/tests/test_pool_repository.py

Purpose:
    Document mapping for pool members, picks (current and legacy shapes)
    and persisted survivor status.

Dependencies:
    - survivor.services.pool_repository
"""

from __future__ import annotations

import pytest

from survivor.errors import DataMissingError
from survivor.models.survivor import SurvivorState, SurvivorStatus
from survivor.services.pool_repository import PoolRepository


@pytest.mark.asyncio
async def test_list_members_filters_survivor_participants(fake_db):
    fake_db.pool_members.docs.extend([
        {"pool_id": "p", "user_id": "u1", "displayName": "Ann", "participation": {"survivor": {"enabled": True}}},
        {"pool_id": "p", "user_id": "u2", "email": "b@x.io", "participation": {"survivor": {"enabled": False}}},
        {"pool_id": "p", "user_id": "u3"},
        {"pool_id": "other", "user_id": "u4"},
    ])
    repo = PoolRepository(fake_db)

    members = await repo.list_members("p")
    assert [m.user_id for m in members] == ["u1", "u3"]
    assert members[0].display_name == "Ann"

    everyone = await repo.list_members("p", survivor_only=False)
    assert {m.user_id for m in everyone} == {"u1", "u2", "u3"}
    assert next(m for m in everyone if m.user_id == "u2").display_name == "b@x.io"


@pytest.mark.asyncio
async def test_get_picks_reads_week_keyed_document(fake_db):
    fake_db.survivor_picks.docs.append({
        "_id": "u1",
        "picks": {
            "1": {"team": "LA Rams", "gameId": "401"},
            "2": "Chiefs",
            "3": {"teamPicked": "Bills"},
            "x": {"team": "Jets"},
            "4": {"team": ""},
        },
    })
    picks = await PoolRepository(fake_db).get_picks("u1")

    assert [(p.week, p.team) for p in picks] == [(1, "LA Rams"), (2, "Chiefs"), (3, "Bills")]
    assert picks[0].game_id == "401"
    assert await PoolRepository(fake_db).get_picks("nobody") == []


@pytest.mark.asyncio
async def test_save_status_upserts_one_record_per_member(fake_db):
    repo = PoolRepository(fake_db)
    await repo.save_status("p", "u1", SurvivorStatus.survived(1, ["Kansas City Chiefs"]))
    saved = await repo.save_status("p", "u1", SurvivorStatus.eliminated(2, "Buffalo Bills lost to Miami Dolphins", ["Kansas City Chiefs", "Buffalo Bills"]))

    assert len(fake_db.survivor_status.docs) == 1
    assert saved.updated_at is not None
    doc = fake_db.survivor_status.docs[0]
    assert doc["state"] == "eliminated"
    assert "created_at" in doc

    status = await repo.get_status("p", "u1")
    assert status.state == SurvivorState.eliminated
    assert status.eliminated_week == 2
    assert (await repo.get_statuses("p")).keys() == {"u1"}


@pytest.mark.asyncio
async def test_legacy_status_documents_are_readable(fake_db):
    fake_db.survivor_status.docs.extend([
        {"pool_id": "p", "user_id": "old", "eliminated": True, "eliminatedWeek": 3, "eliminationReason": "Jets lost to Patriots"},
        {"pool_id": "p", "user_id": "alive", "eliminated": False},
    ])
    repo = PoolRepository(fake_db)

    old = await repo.get_status("p", "old")
    assert old.is_eliminated
    assert old.eliminated_week == 3
    assert old.elimination_reason == "Jets lost to Patriots"

    alive = await repo.get_status("p", "alive")
    assert alive.alive is True
    assert alive.state == SurvivorState.alive_no_pick_yet
    assert await repo.get_status("p", "missing") is None


@pytest.mark.asyncio
async def test_legacy_elimination_without_week_is_not_guessed(fake_db):
    fake_db.survivor_status.docs.extend([
        {"pool_id": "p", "user_id": "weekless", "eliminated": True, "eliminationReason": "lost"},
        {"pool_id": "p", "user_id": "alive", "eliminated": False},
    ])
    repo = PoolRepository(fake_db)

    with pytest.raises(DataMissingError):
        await repo.get_status("p", "weekless")
    assert (await repo.get_statuses("p")).keys() == {"alive"}
