from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.imports import DocumentCategory, ObjectId, utc_now


class CatalogEntryCreate(BaseModel):
    owner_id: str | None = None
    category: DocumentCategory
    storage_key: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    url: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class CatalogEntryOut(BaseModel):
    id: str | None = Field(default=None, alias="_id")
    owner_id: str | None = None
    category: DocumentCategory
    storage_key: str
    display_name: str
    url: str | None = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        if isinstance(values, dict) and "_id" in values and isinstance(values["_id"], ObjectId):
            values = dict(values)
            values["_id"] = str(values["_id"])
        return values

    model_config = ConfigDict(populate_by_name=True)


class CatalogPageOut(BaseModel):
    owner_id: str | None = None
    category: DocumentCategory
    page: int
    page_size: int
    has_more: bool
    entries: list[CatalogEntryOut]


class FileUploadResultOut(BaseModel):
    display_name: str
    success: bool
    storage_key: str | None = None
    url: str | None = None
    indexed: bool = False
    error: str | None = None


class UploadBatchOut(BaseModel):
    outcome: str
    success_count: int
    failure_count: int
    results: list[FileUploadResultOut]


class BucketStatusOut(BaseModel):
    bucket: str
    state: str
    ready: bool
    attempts: int = 0
    reason: str | None = None
    exists: bool | None = None


class AuditReportOut(BaseModel):
    owner_id: str | None = None
    category: DocumentCategory
    scanned: int
    already_indexed: int
    backfilled: list[str]
    backfill_failed: list[str]
    orphans_removed: list[str]


class DeletionOut(BaseModel):
    storage_key: str
    deleted: bool
    index_removed: bool


class RefreshSessionOut(BaseModel):
    session_id: str
    owner_id: str | None = None
    category: DocumentCategory
    active: bool
    latest: CatalogPageOut | None = None
