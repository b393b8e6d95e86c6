"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, required env defaults, and an
    in-memory stand-in for the Motor client/database/collection surface the
    ledger uses, including sessions whose transactions roll back on error.
"""

from __future__ import annotations

import asyncio
import copy
import os
import sys
from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-length-for-hs256")
os.environ.setdefault("ROLLOVER_ENABLED", "false")

from wagerledger.config import Settings  # noqa: E402
from wagerledger.models.bet import BetRequest, MarketType  # noqa: E402
from wagerledger.services.ledger import build_ledger  # noqa: E402
from wagerledger.utils import utcnow  # noqa: E402


# ---------- In-memory Motor fakes ----------

def _get_nested(doc, path: str):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None, False
        cur = cur[part]
    return cur, True


def _set_nested(doc, path: str, value) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.setdefault(part, {})
    cur[parts[-1]] = value


def _matches(doc, query) -> bool:
    for key, expected in (query or {}).items():
        value, exists = _get_nested(doc, key)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            for op, arg in expected.items():
                if op == "$in" and value not in arg:
                    return False
                if op == "$nin" and value in arg:
                    return False
                if op == "$ne" and value == arg:
                    return False
                if op == "$exists" and bool(arg) != exists:
                    return False
                if op in ("$gt", "$gte", "$lt", "$lte"):
                    if value is None:
                        return False
                    if op == "$gt" and not value > arg:
                        return False
                    if op == "$gte" and not value >= arg:
                        return False
                    if op == "$lt" and not value < arg:
                        return False
                    if op == "$lte" and not value <= arg:
                        return False
            continue
        if not exists or value != expected:
            return False
    return True


def _sort_key(path):
    def key(doc):
        value, _ = _get_nested(doc, path)
        return (value is not None, value)
    return key


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)
        self._skip = 0
        self._limit = None

    def sort(self, key, direction=1):
        self._docs.sort(key=_sort_key(key), reverse=int(direction) < 0)
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        for bound in (self._limit, length):
            if bound is not None:
                docs = docs[:bound]
        return docs


class FakeCollection:
    def __init__(self, name: str, unique: tuple[str, ...] | None = None):
        self.name = name
        self.docs: list[dict] = []
        self.unique = unique
        self.fail_on = None  # optional callable(op, filter) -> Exception | None

    def _check_fail(self, op, query):
        if self.fail_on:
            exc = self.fail_on(op, query)
            if exc:
                raise exc

    def _check_unique(self, doc, ignore=None):
        if not self.unique:
            return
        key = tuple(_get_nested(doc, f)[0] for f in self.unique)
        for other in self.docs:
            if other is ignore:
                continue
            if tuple(_get_nested(other, f)[0] for f in self.unique) == key:
                raise DuplicateKeyError(f"E11000 duplicate key in {self.name}: {key}")

    def _find(self, query):
        return [doc for doc in self.docs if _matches(doc, query)]

    async def create_index(self, *_args, **_kwargs):
        return "ok"

    async def insert_one(self, doc, session=None):
        self._check_fail("insert_one", doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def insert_many(self, docs, session=None):
        ids = []
        for doc in docs:
            result = await self.insert_one(doc, session=session)
            ids.append(result.inserted_id)
        return SimpleNamespace(inserted_ids=ids)

    async def find_one(self, query=None, projection=None, session=None):
        found = self._find(query)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query=None, projection=None, session=None):
        return FakeCursor(copy.deepcopy(self._find(query)))

    async def count_documents(self, query, session=None):
        return len(self._find(query))

    def _apply(self, doc, update, inserting=False):
        for key, value in update.get("$set", {}).items():
            _set_nested(doc, key, copy.deepcopy(value))
        for key, value in update.get("$inc", {}).items():
            current, _ = _get_nested(doc, key)
            _set_nested(doc, key, (current or 0) + value)
        for key in update.get("$unset", {}):
            parent, _ = _get_nested(doc, key.rsplit(".", 1)[0]) if "." in key else (doc, True)
            if isinstance(parent, dict):
                parent.pop(key.rsplit(".", 1)[-1], None)
        if inserting:
            for key, value in update.get("$setOnInsert", {}).items():
                _set_nested(doc, key, copy.deepcopy(value))

    def _upsert(self, query, update):
        doc = {k: copy.deepcopy(v) for k, v in query.items() if not isinstance(v, dict)}
        doc.setdefault("_id", ObjectId())
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    async def find_one_and_update(
        self, query, update, upsert=False, return_document=False, session=None, **_kwargs,
    ):
        self._check_fail("find_one_and_update", query)
        found = self._find(query)
        if not found:
            if not upsert:
                return None
            doc = self._upsert(query, update)
            return copy.deepcopy(doc) if return_document else None
        doc = found[0]
        before = copy.deepcopy(doc)
        self._apply(doc, update)
        self._check_unique(doc, ignore=doc)
        return copy.deepcopy(doc) if return_document else before

    async def update_one(self, query, update, upsert=False, session=None):
        self._check_fail("update_one", query)
        found = self._find(query)
        if not found:
            if upsert:
                doc = self._upsert(query, update)
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        self._apply(found[0], update)
        return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)

    async def update_many(self, query, update, session=None):
        self._check_fail("update_many", query)
        found = self._find(query)
        for doc in found:
            self._apply(doc, update)
        return SimpleNamespace(matched_count=len(found), modified_count=len(found))

    async def delete_one(self, query, session=None):
        found = self._find(query)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=len(found[:1]))

    async def delete_many(self, query, session=None):
        found = self._find(query)
        for doc in found:
            self.docs.remove(doc)
        return SimpleNamespace(deleted_count=len(found))


class FakeDatabase:
    _UNIQUE = {
        "bankrolls": ("user_id", "league_id", "season", "week"),
        "settlements": ("bet_id",),
    }

    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, self._UNIQUE.get(name))
        return self._collections[name]

    __getitem__ = __getattr__

    async def command(self, name):
        return {"ok": 1.0}

    def snapshot(self) -> dict:
        return {name: copy.deepcopy(c.docs) for name, c in self._collections.items()}

    def restore(self, snapshot: dict) -> None:
        for name, collection in self._collections.items():
            collection.docs = copy.deepcopy(snapshot.get(name, []))


class FakeSession:
    def __init__(self, client):
        self.client = client
        self.transactions = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def with_transaction(self, callback):
        async with self.client.lock:
            snapshot = self.client.db.snapshot()
            self.transactions += 1
            try:
                return await callback(self)
            except BaseException:
                self.client.db.restore(snapshot)
                self.client.rollbacks += 1
                raise


class FakeClient:
    def __init__(self):
        self.db = FakeDatabase()
        self.lock = asyncio.Lock()
        self.rollbacks = 0

    async def start_session(self):
        return FakeSession(self)


# ---------- Fixtures ----------

@pytest.fixture
def settings():
    return Settings(JWT_SECRET="test-secret-with-enough-length-for-hs256", ROLLOVER_ENABLED=False)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def db(fake_client):
    return fake_client.db


@pytest.fixture
def ledger(fake_client, settings):
    return build_ledger(fake_client, fake_client.db, settings)


@pytest.fixture
def make_bet():
    def _make(**overrides) -> BetRequest:
        data = {
            "user_id": "user-1",
            "league_id": "nfl",
            "game_id": "game-1",
            "event_date": utcnow() + timedelta(days=1),
            "market_type": MarketType.moneyline,
            "selection": "Chiefs",
            "odds": 150,
            "stake": 100.0,
            "home_team": "Chiefs",
            "away_team": "Raiders",
        }
        data.update(overrides)
        return BetRequest(**data)
    return _make
