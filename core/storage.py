"""TOGGLES FILE PURPOSE
Purpose: flag store contract plus in-memory and MongoDB backends.
Hot path: yes (every flag read/write).
Feature flags: TOGGLES_STORAGE, TOGGLES_MONGODB_URL.
Failure mode: backend/driver errors => StorageError; caller controls retry.
"""

from __future__ import annotations

import enum
import threading
from typing import Any, Iterable, Protocol

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.config import STORAGE_KINDS, Settings, check_kind, is_debug
from core.errors import StorageError
from core.flags import Flag
from core.logging import logger

FLAGS_COLLECTION = "flags"
DEFAULT_DATABASE = "featuretoggles"
KEY_INDEX_NAME = "flag_key_unique"


def _dbg(msg: str) -> None:
    if is_debug():
        logger.info(msg)


class WritePolicy(enum.Enum):
    """How a write treats a flag whose key is already stored."""

    OVERWRITE = "overwrite"
    KEEP_EXISTING = "keep_existing"


class Store(Protocol):
    kind: str

    def read(self, service_name: str | None = None) -> list[Flag]: ...

    def write(self, flags: Iterable[Flag], policy: WritePolicy = WritePolicy.OVERWRITE) -> None: ...

    def close(self) -> None: ...


class MemStore:
    """Process-local store; contents are lost on restart.

    A plain mutex stands in for a reader-writer lock: concurrent readers queue
    for it, but each holds it only for the snapshot copy and filters outside
    it, while a writer holds it for its whole batch. No reader ever sees part
    of a write.
    """

    kind = "mem"

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], Flag] = {}
        self._lock = threading.Lock()

    def read(self, service_name: str | None = None) -> list[Flag]:
        with self._lock:
            snapshot = list(self._data.values())
        return [f for f in snapshot if f.visible_to(service_name)]

    def write(self, flags: Iterable[Flag], policy: WritePolicy = WritePolicy.OVERWRITE) -> None:
        batch = list(flags)
        with self._lock:
            for f in batch:
                if policy is WritePolicy.KEEP_EXISTING and f.key in self._data:
                    continue
                self._data[f.key] = f
        _dbg(f"STORE_WRITE kind=mem policy={policy.value} count={len(batch)}")

    def close(self) -> None:
        return None


def _key_filter(f: Flag) -> dict[str, str]:
    return {"serviceName": f.service_name, "name": f.name}


class MongoStore:
    """Durable store; one document per flag in the `flags` collection.

    The unique (serviceName, name) index backs the key invariant at the engine
    level. OVERWRITE is a `$set` upsert. KEEP_EXISTING is a `$setOnInsert`
    upsert, which leaves an existing document untouched; losing an insert race
    to another writer raises DuplicateKeyError, which means the flag exists.
    """

    kind = "mongo"

    def __init__(self, collection: Collection, client: MongoClient | None = None) -> None:
        self._coll = collection
        self._client = client
        try:
            self._coll.create_index(
                [("serviceName", ASCENDING), ("name", ASCENDING)],
                unique=True,
                name=KEY_INDEX_NAME,
            )
        except PyMongoError as exc:
            raise StorageError(f"creating flag index: {exc}") from exc

    def read(self, service_name: str | None = None) -> list[Flag]:
        query: dict[str, Any] = {}
        if service_name:
            query = {"serviceName": {"$in": ["", service_name]}}

        try:
            docs = list(self._coll.find(query, projection={"_id": False}))
        except PyMongoError as exc:
            raise StorageError(f"getting flag data: {exc}") from exc

        try:
            return [Flag.from_record(d) for d in docs]
        except ValueError as exc:
            raise StorageError(f"decoding flag data: {exc}") from exc

    def write(self, flags: Iterable[Flag], policy: WritePolicy = WritePolicy.OVERWRITE) -> None:
        op = "$setOnInsert" if policy is WritePolicy.KEEP_EXISTING else "$set"
        count = 0
        for f in flags:
            try:
                self._coll.update_one(_key_filter(f), {op: f.to_record()}, upsert=True)
            except DuplicateKeyError as exc:
                if policy is WritePolicy.KEEP_EXISTING:
                    _dbg(f"STORE_SEED_EXISTS name={f.name} service={f.service_name}")
                    continue
                raise StorageError(f"writing flag data: {exc}") from exc
            except PyMongoError as exc:
                raise StorageError(f"writing flag data: {exc}") from exc
            count += 1
        _dbg(f"STORE_WRITE kind=mongo policy={policy.value} count={count}")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def connect_mongo(url: str, timeout_ms: int = 5000) -> MongoStore:
    """Connect to MongoDB; the database comes from the URL path."""
    try:
        client: MongoClient = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
        db = client.get_default_database(default=DEFAULT_DATABASE)
    except (PyMongoError, ValueError) as exc:
        raise StorageError(f"connecting to mongo server: {exc}") from exc
    return MongoStore(db[FLAGS_COLLECTION], client=client)


def build_store(settings: Settings) -> Store:
    check_kind("TOGGLES_STORAGE", settings.storage, STORAGE_KINDS)
    if settings.storage == "mem":
        return MemStore()
    return connect_mongo(settings.mongodb_url)
