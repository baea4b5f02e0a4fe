from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.catalog.errors import DuplicateStorageKey, IndexWriteFailure
from core.database import db
from schemas.document_schema import CatalogEntryCreate, CatalogEntryOut
from schemas.imports import DocumentCategory


def _scope_filter(category: DocumentCategory, owner_id: str | None) -> dict[str, Any]:
    filter_dict: dict[str, Any] = {"category": category.value}
    if owner_id is not None:
        filter_dict["owner_id"] = owner_id
    return filter_dict


async def ensure_document_indexes() -> None:
    await db.documents.create_index([("storage_key", ASCENDING)], unique=True, name="storage_key_unique")
    await db.documents.create_index(
        [("category", ASCENDING), ("owner_id", ASCENDING), ("created_at", DESCENDING)],
        name="scope_created_at",
    )


async def insert_entry(entry: CatalogEntryCreate) -> CatalogEntryOut:
    payload = entry.model_dump()
    payload["category"] = entry.category.value
    try:
        result = await db.documents.insert_one(payload)
    except DuplicateKeyError as err:
        raise DuplicateStorageKey(entry.storage_key) from err
    except PyMongoError as err:
        raise IndexWriteFailure(entry.storage_key, str(err)) from err
    payload["_id"] = result.inserted_id
    return CatalogEntryOut(**payload)


async def update_entry_metadata(entry: CatalogEntryCreate) -> bool:
    """Overwrite owner, display name and url of the row holding ``entry.storage_key``."""
    try:
        result = await db.documents.update_one(
            {"storage_key": entry.storage_key},
            {"$set": {"owner_id": entry.owner_id, "display_name": entry.display_name, "url": entry.url}},
        )
    except PyMongoError as err:
        raise IndexWriteFailure(entry.storage_key, str(err)) from err
    return bool(result.matched_count)


async def list_entries(
    *,
    category: DocumentCategory,
    owner_id: str | None = None,
    start: int = 0,
    stop: int = 10,
) -> list[CatalogEntryOut]:
    cursor = (
        db.documents.find(_scope_filter(category, owner_id))
        .sort("created_at", DESCENDING)
        .skip(start)
        .limit(stop - start)
    )
    return [CatalogEntryOut(**row) async for row in cursor]


async def list_recent_entries(limit: int = 5) -> list[CatalogEntryOut]:
    cursor = db.documents.find({}).sort("created_at", DESCENDING).limit(limit)
    return [CatalogEntryOut(**row) async for row in cursor]


async def get_entry_by_storage_key(storage_key: str) -> CatalogEntryOut | None:
    row = await db.documents.find_one({"storage_key": storage_key})
    if row is None:
        return None
    return CatalogEntryOut(**row)


async def find_indexed_storage_keys(storage_keys: list[str]) -> set[str]:
    if not storage_keys:
        return set()
    cursor = db.documents.find({"storage_key": {"$in": storage_keys}}, {"storage_key": 1})
    return {row["storage_key"] async for row in cursor}


async def list_scope_storage_keys(*, category: DocumentCategory, owner_id: str | None = None) -> list[str]:
    cursor = db.documents.find(_scope_filter(category, owner_id), {"storage_key": 1})
    return [row["storage_key"] async for row in cursor]


async def delete_entry_by_storage_key(storage_key: str) -> bool:
    result = await db.documents.delete_one({"storage_key": storage_key})
    return bool(result.deleted_count)


async def delete_entries_by_storage_keys(storage_keys: list[str]) -> int:
    if not storage_keys:
        return 0
    result = await db.documents.delete_many({"storage_key": {"$in": storage_keys}})
    return int(result.deleted_count)
