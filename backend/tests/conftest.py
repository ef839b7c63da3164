"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import path for the backend package plus an
    in-memory stand-in for the Motor collections the services touch.
"""

from __future__ import annotations

import copy
import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        value = doc.get(key)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$in" and value not in arg:
                    return False
                if op == "$nin" and value in arg:
                    return False
                if op == "$exists" and (key in doc) != bool(arg):
                    return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key: str, direction: int):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length: int | None = None):
        docs = self._docs if length is None else self._docs[:length]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    _ids = itertools.count(1)

    def __init__(self):
        self.docs: list[dict] = []
        self.fail_with: Exception | None = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def find(self, query: dict | None = None):
        self._check()
        return FakeCursor([d for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query: dict):
        self._check()
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc: dict):
        self._check()
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", next(self._ids))
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        self._check()
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set") or {}))
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
        doc.update(copy.deepcopy(update.get("$setOnInsert") or {}))
        doc.update(copy.deepcopy(update.get("$set") or {}))
        doc.setdefault("_id", next(self._ids))
        self.docs.append(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    async def delete_many(self, query: dict):
        self._check()
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.docs))


class FakeDB:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> FakeCollection:
        return self._collections.setdefault(name, FakeCollection())

    async def command(self, name: str):
        return {"ok": 1.0}


@pytest.fixture
def fake_db(monkeypatch):
    """Fresh in-memory database, also installed as the module-level handle."""
    import survivor.database as _db

    db = FakeDB()
    monkeypatch.setattr(_db, "db", db, raising=False)
    return db
