from __future__ import annotations

import os
import time
from typing import Any

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from core.errors import StorageError
from core.flags import Flag
from core.storage import KEY_INDEX_NAME, MongoStore, WritePolicy, connect_mongo

INITIAL = [
    Flag(name="n1", service_name="svc1", raw_value="t", value=True),
    Flag(name="n2", service_name="svc1", raw_value="0"),
    Flag(name="n3", service_name="svc2", raw_value="1", value=True),
    Flag(name="n4", service_name="", raw_value="some data"),
    Flag(name="n5", service_name="", raw_value="y", value=True),
]


class FakeCollection:
    """Just enough of pymongo's Collection for the flag store."""

    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []
        self.indexes: list[tuple[list, bool, str | None]] = []
        self.fail: Exception | None = None
        self.calls: list[tuple[dict, dict]] = []

    def create_index(self, keys, unique=False, name=None):
        if self.fail is not None:
            raise self.fail
        self.indexes.append((list(keys), unique, name))
        return name

    @staticmethod
    def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
        for field, cond in query.items():
            if isinstance(cond, dict) and "$in" in cond:
                if doc.get(field) not in cond["$in"]:
                    return False
            elif doc.get(field) != cond:
                return False
        return True

    def find(self, query, projection=None):
        if self.fail is not None:
            raise self.fail
        hidden = {k for k, v in (projection or {}).items() if not v}
        return iter([{k: v for k, v in d.items() if k not in hidden} for d in self.docs if self._matches(d, query)])

    def update_one(self, flt, update, upsert=False):
        if self.fail is not None:
            raise self.fail
        self.calls.append((dict(flt), dict(update)))
        for d in self.docs:
            if self._matches(d, flt):
                d.update(update.get("$set", {}))
                return
        if upsert:
            doc = {"_id": len(self.docs) + 1, **flt}
            doc.update(update.get("$set", {}))
            doc.update(update.get("$setOnInsert", {}))
            self.docs.append(doc)


def _records(coll: FakeCollection) -> list[Flag]:
    return sorted((Flag.from_record(d) for d in coll.docs), key=lambda f: (f.name, f.service_name))


def _store() -> tuple[MongoStore, FakeCollection]:
    coll = FakeCollection()
    return MongoStore(coll), coll


def test_unique_key_index_created() -> None:
    _, coll = _store()
    assert coll.indexes == [([("serviceName", 1), ("name", 1)], True, KEY_INDEX_NAME)]


def test_index_failure_is_storage_error() -> None:
    coll = FakeCollection()
    coll.fail = ServerSelectionTimeoutError("no servers")
    with pytest.raises(StorageError, match="creating flag index"):
        MongoStore(coll)


def test_read_filters_by_service() -> None:
    s, _ = _store()
    s.write(INITIAL)

    def names(flags: list[Flag]) -> list[str]:
        return sorted(f.name for f in flags)

    assert names(s.read()) == ["n1", "n2", "n3", "n4", "n5"]
    assert names(s.read("")) == ["n1", "n2", "n3", "n4", "n5"]
    assert names(s.read("svc1")) == ["n1", "n2", "n4", "n5"]
    assert names(s.read("svc2")) == ["n3", "n4", "n5"]


def test_overwrite_uses_set_upsert() -> None:
    s, coll = _store()
    s.write(INITIAL)
    s.write([Flag(name="n2", service_name="svc1", raw_value="1", value=True)])

    assert coll.calls[-1] == (
        {"serviceName": "svc1", "name": "n2"},
        {"$set": {"name": "n2", "serviceName": "svc1", "rawValue": "1", "value": True}},
    )
    assert len(coll.docs) == len(INITIAL)
    assert Flag(name="n2", service_name="svc1", raw_value="1", value=True) in _records(coll)


def test_keep_existing_never_modifies_stored_flag() -> None:
    s, coll = _store()
    s.write(INITIAL)
    s.write(
        [
            Flag(name="n2", service_name="svc1", raw_value="1", value=True),
            Flag(name="n3", service_name="svc1", raw_value="0"),
        ],
        WritePolicy.KEEP_EXISTING,
    )

    assert all("$setOnInsert" in update for _, update in coll.calls[-2:])
    expected = sorted(INITIAL + [Flag(name="n3", service_name="svc1", raw_value="0")], key=lambda f: (f.name, f.service_name))
    assert _records(coll) == expected


def test_keep_existing_tolerates_lost_insert_race() -> None:
    s, coll = _store()
    coll.fail = DuplicateKeyError("E11000 duplicate key error", 11000)
    s.write([Flag(name="beta")], WritePolicy.KEEP_EXISTING)


def test_overwrite_duplicate_key_is_storage_error() -> None:
    s, coll = _store()
    coll.fail = DuplicateKeyError("E11000 duplicate key error", 11000)
    with pytest.raises(StorageError, match="writing flag data"):
        s.write([Flag(name="beta")])


def test_connectivity_loss_is_storage_error() -> None:
    s, coll = _store()
    coll.fail = ServerSelectionTimeoutError("no servers")
    with pytest.raises(StorageError, match="getting flag data"):
        s.read()
    with pytest.raises(StorageError, match="writing flag data"):
        s.write([Flag(name="beta")])


def test_malformed_record_is_storage_error() -> None:
    s, coll = _store()
    coll.docs.append({"_id": 1, "name": "broken", "serviceName": ""})
    with pytest.raises(StorageError, match="decoding flag data"):
        s.read()


def test_live_mongo_roundtrip() -> None:
    base = os.getenv("TOGGLES_TEST_MONGODB_URL")
    if not base:
        pytest.skip("TOGGLES_TEST_MONGODB_URL not set")

    url = f"{base.rstrip('/')}/test_{int(time.time() * 1000)}"
    try:
        s = connect_mongo(url, timeout_ms=2000)
    except StorageError as exc:
        pytest.skip(f"mongodb unavailable: {exc}")

    try:
        s.write([Flag(name="beta", raw_value="true", value=True)])
        s.write([Flag(name="beta", raw_value="false", value=False)], WritePolicy.KEEP_EXISTING)
        assert s.read("checkout") == [Flag(name="beta", raw_value="true", value=True)]
    finally:
        s._coll.database.client.drop_database(s._coll.database.name)
        s.close()
