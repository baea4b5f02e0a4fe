from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote

from schemas.imports import DocumentCategory

CACHE_KEY_PREFIX = "catalog"


class BucketState(str, Enum):
    UNKNOWN = "unknown"
    READY = "ready"
    BROKEN = "broken"


@dataclass(frozen=True)
class ProvisionResult:
    bucket: str
    ready: bool
    attempts: int = 0
    reason: str | None = None

    @property
    def state(self) -> BucketState:
        return BucketState.READY if self.ready else BucketState.BROKEN


class URLTier(str, Enum):
    PUBLIC = "public"
    SIGNED = "signed"
    CONSTRUCTED = "constructed"


@dataclass(frozen=True)
class URLResolution:
    url: str
    tier: URLTier
    verified: bool | None = None

    @property
    def degraded(self) -> bool:
        return self.tier != URLTier.PUBLIC


def _owner_token(owner_id: str | None) -> str:
    # "-" never comes out of quote(), so an absent owner cannot collide with any id.
    if owner_id is None:
        return "-"
    return "o." + quote(owner_id, safe="")


@dataclass(frozen=True)
class CatalogScope:
    owner_id: str | None
    category: DocumentCategory

    def page_key(self, page: int) -> "CatalogPageKey":
        return CatalogPageKey(owner_id=self.owner_id, category=self.category, page=page)

    def index_key(self) -> str:
        return f"{CACHE_KEY_PREFIX}:scope:{self.category.value}:{_owner_token(self.owner_id)}"

    def related_scopes(self) -> list["CatalogScope"]:
        """Scopes whose listings include this scope's entries."""
        if self.owner_id is None:
            return [self]
        return [self, CatalogScope(owner_id=None, category=self.category)]


@dataclass(frozen=True)
class CatalogPageKey:
    owner_id: str | None
    category: DocumentCategory
    page: int

    @property
    def scope(self) -> CatalogScope:
        return CatalogScope(owner_id=self.owner_id, category=self.category)

    def cache_key(self) -> str:
        return f"{CACHE_KEY_PREFIX}:page:{self.category.value}:{_owner_token(self.owner_id)}:{self.page}"


@dataclass(frozen=True)
class IncomingFile:
    display_name: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class DeliveryFile:
    path: str
    name: str
    url: str


@dataclass(frozen=True)
class FileUploadResult:
    display_name: str
    success: bool
    storage_key: str | None = None
    url: str | None = None
    indexed: bool = False
    error: str | None = None

    def as_delivery_file(self) -> DeliveryFile | None:
        if not self.success or not self.storage_key or not self.url:
            return None
        return DeliveryFile(path=self.storage_key, name=self.display_name, url=self.url)


class UploadOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass
class UploadBatchResult:
    results: list[FileUploadResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for item in self.results if not item.success)

    @property
    def outcome(self) -> UploadOutcome:
        if not self.results:
            return UploadOutcome.EMPTY
        if self.failure_count == 0:
            return UploadOutcome.SUCCESS
        if self.success_count == 0:
            return UploadOutcome.FAILED
        return UploadOutcome.PARTIAL

    def delivery_files(self) -> list[DeliveryFile]:
        files = [item.as_delivery_file() for item in self.results]
        return [item for item in files if item is not None]


@dataclass(frozen=True)
class DeletionResult:
    storage_key: str
    ok: bool
    reason: str | None = None
    storage_removed: bool = False
    index_removed: bool = False


@dataclass
class ReconciliationReport:
    owner_id: str | None
    category: DocumentCategory
    scanned: int = 0
    already_indexed: int = 0
    backfilled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class ConsistencyReport:
    owner_id: str | None
    category: DocumentCategory
    unindexed: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.unindexed and not self.orphaned


@dataclass
class AuditReport:
    reconciliation: ReconciliationReport
    orphans_removed: list[str] = field(default_factory=list)
