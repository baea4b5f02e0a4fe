from __future__ import annotations

import os
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Iterator

os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "document_relay_test")
os.environ.setdefault("STORAGE_SIGNING_SECRET", "test-signing-secret")

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.catalog.errors import TransientStorageError
from core.catalog.manager import CatalogManager
from core.storage.types import ContainerCreation, ContainerInfo, StoredObject
from repositories import client_repo, document_repo


def _matches(row: dict[str, Any], filter_dict: dict[str, Any]) -> bool:
    for field, expected in filter_dict.items():
        value = row.get(field)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    def sort(self, field: str, direction: int = 1) -> "FakeCursor":
        self._rows = sorted(self._rows, key=lambda row: row.get(field), reverse=direction < 0)
        return self

    def skip(self, count: int) -> "FakeCursor":
        self._rows = self._rows[count:]
        return self

    def limit(self, count: int) -> "FakeCursor":
        if count:
            self._rows = self._rows[:count]
        return self

    def __aiter__(self):
        self._iter = iter(self._rows)
        return self

    async def __anext__(self) -> dict[str, Any]:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, unique_field: str | None = None) -> None:
        self.rows: list[dict[str, Any]] = []
        self.unique_field = unique_field
        self.fail_inserts_for: set[str] = set()
        self.fail_deletes = False
        self.indexes: list[Any] = []

    async def create_index(self, keys, **kwargs) -> str:
        self.indexes.append((keys, kwargs))
        return kwargs.get("name", "index")

    async def insert_one(self, document: dict[str, Any]):
        unique_value = document.get(self.unique_field) if self.unique_field else None
        if unique_value in self.fail_inserts_for:
            raise PyMongoError(f"insert rejected for {unique_value}")
        if unique_value is not None and any(row.get(self.unique_field) == unique_value for row in self.rows):
            raise DuplicateKeyError(f"duplicate {self.unique_field}: {unique_value}", code=11000)
        row = dict(document)
        row["_id"] = ObjectId()
        self.rows.append(row)
        return SimpleNamespace(inserted_id=row["_id"])

    def find(self, filter_dict: dict[str, Any] | None = None, projection: dict[str, Any] | None = None) -> FakeCursor:
        return FakeCursor([dict(row) for row in self.rows if _matches(row, filter_dict or {})])

    async def find_one(self, filter_dict: dict[str, Any]):
        for row in self.rows:
            if _matches(row, filter_dict):
                return dict(row)
        return None

    async def update_one(self, filter_dict: dict[str, Any], update: dict[str, Any]):
        for row in self.rows:
            if _matches(row, filter_dict):
                row.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, filter_dict: dict[str, Any]):
        if self.fail_deletes:
            raise PyMongoError("delete rejected")
        for index, row in enumerate(self.rows):
            if _matches(row, filter_dict):
                del self.rows[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, filter_dict: dict[str, Any]):
        if self.fail_deletes:
            raise PyMongoError("delete rejected")
        kept = [row for row in self.rows if not _matches(row, filter_dict)]
        deleted = len(self.rows) - len(kept)
        self.rows = kept
        return SimpleNamespace(deleted_count=deleted)


class FakeDB:
    def __init__(self) -> None:
        self.documents = FakeCollection(unique_field="storage_key")
        self.clients = FakeCollection()


class FakeCache:
    """In-memory stand-in for the redis client calls the app makes."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str):
        return self.values.get(key)

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.values[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    def ttl(self, key: str) -> int:
        return self.ttls.get(key, -1)

    def sadd(self, key: str, *members: str) -> int:
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    def srem(self, key: str, *members: str) -> int:
        bucket = self.sets.get(key, set())
        removed = len(bucket & set(members))
        bucket.difference_update(members)
        return removed

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    def expire(self, key: str, ttl: int) -> bool:
        self.ttls[key] = ttl
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
            self.ttls.pop(key, None)
        return removed

    def ping(self) -> bool:
        return True


class FakeObjectStore:
    """Object store double with per-operation failure budgets."""

    backend_name = "fake"

    def __init__(self, *, base_url: str = "https://store.example.com") -> None:
        self.base_url = base_url
        self.containers: dict[str, dict[str, tuple[bytes, datetime]]] = {}
        self.public: set[str] = set()
        self.create_failures = 0
        self.list_container_failures = 0
        self.probe_write_failures = 0
        self.fail_put_names: set[str] = set()
        self.fail_list_objects = False
        self.fail_remove = False
        self.public_urls_enabled = True
        self.signed_urls_enabled = True
        self.put_calls: list[str] = []
        self.remove_calls: list[list[str]] = []

    async def create_container(self, name: str, *, public: bool) -> ContainerCreation:
        if self.create_failures:
            self.create_failures -= 1
            raise TransientStorageError("create_container", "backend timeout")
        if public:
            self.public.add(name)
        if name in self.containers:
            return ContainerCreation.ALREADY_EXISTS
        self.containers[name] = {}
        return ContainerCreation.CREATED

    async def list_containers(self) -> list[ContainerInfo]:
        if self.list_container_failures:
            self.list_container_failures -= 1
            raise TransientStorageError("list_containers", "backend timeout")
        return [ContainerInfo(name=name, public=name in self.public) for name in self.containers]

    async def put_object(self, container, key, payload, *, content_type, overwrite=True) -> None:
        self.put_calls.append(key)
        if key.startswith(".provision-probe/") and self.probe_write_failures:
            self.probe_write_failures -= 1
            raise TransientStorageError("put_object", "probe write rejected")
        if any(name in key for name in self.fail_put_names):
            raise TransientStorageError("put_object", f"write rejected for {key}")
        if container not in self.containers:
            raise TransientStorageError("put_object", f"no container {container}")
        if not overwrite and key in self.containers[container]:
            raise TransientStorageError("put_object", "exists")
        self.containers[container][key] = (payload, datetime.now(timezone.utc))

    async def get_object(self, container, key) -> bytes:
        try:
            return self.containers[container][key][0]
        except KeyError as err:
            raise TransientStorageError("get_object", f"missing {key}") from err

    async def list_objects(self, container, prefix="") -> list[StoredObject]:
        if self.fail_list_objects:
            raise TransientStorageError("list_objects", "listing unavailable")
        return [
            StoredObject(key=key, size=len(payload), created_at=created_at)
            for key, (payload, created_at) in sorted(self.containers.get(container, {}).items())
            if key.startswith(prefix)
        ]

    async def remove_objects(self, container, keys) -> None:
        self.remove_calls.append(list(keys))
        if self.fail_remove:
            raise TransientStorageError("remove_objects", "delete rejected")
        for key in keys:
            self.containers.get(container, {}).pop(key, None)

    async def public_url(self, container, key):
        if not self.public_urls_enabled or container not in self.public:
            return None
        return f"{self.base_url}/public/{container}/{key}"

    async def signed_url(self, container, key, ttl_seconds):
        if not self.signed_urls_enabled:
            return None
        return f"{self.base_url}/signed/{container}/{key}?ttl={ttl_seconds}"

    def seed(self, container: str, key: str, payload: bytes = b"data", created_at: datetime | None = None) -> None:
        self.containers.setdefault(container, {})[key] = (payload, created_at or datetime.now(timezone.utc))


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeDB:
    database = FakeDB()
    monkeypatch.setattr(document_repo, "db", database)
    monkeypatch.setattr(client_repo, "db", database)
    return database


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def catalog_manager(fake_db: FakeDB, fake_cache: FakeCache, store: FakeObjectStore) -> Iterator[CatalogManager]:
    manager = CatalogManager.build(
        store,
        "documents",
        cache_client=fake_cache,
        public_base_url="https://cdn.example.com",
        retry_delay_seconds=0,
        page_size=3,
        sleep=no_sleep,
    )
    CatalogManager.configure(manager)
    yield manager
    CatalogManager.reset()
