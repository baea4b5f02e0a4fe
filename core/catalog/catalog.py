from __future__ import annotations

from core.catalog.errors import DuplicateStorageKey, IndexWriteFailure, ProvisioningFailure, TransientStorageError
from core.catalog.keys import OWNER_DIR_PREFIX, ParsedStorageKey, parse_storage_key, scope_prefix
from core.catalog.page_cache import CachedPage, CatalogPageCache
from core.catalog.provisioner import BucketProvisioner
from core.catalog.types import AuditReport, CatalogScope, ConsistencyReport, ReconciliationReport
from core.catalog.url_resolver import URLResolver
from core.logging_config import get_logger
from core.storage.provider import ObjectStoreProvider
from core.storage.types import StoredObject
from repositories import document_repo
from schemas.document_schema import CatalogEntryCreate, CatalogEntryOut, CatalogPageOut
from schemas.imports import DocumentCategory, utc_now

logger = get_logger(__name__)


class ReconcilingCatalog:
    """Paginated, cached view over the document index, kept in step with storage.

    Listings come from the index. Objects that exist in the bucket without an
    index row are backfilled on forced refresh and on audit; index rows whose
    object is gone are removed by ``sweep_orphans``.
    """

    def __init__(
        self,
        *,
        store: ObjectStoreProvider,
        bucket: str,
        provisioner: BucketProvisioner,
        resolver: URLResolver,
        cache: CatalogPageCache,
        page_size: int = 10,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._provisioner = provisioner
        self._resolver = resolver
        self._cache = cache
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    async def list_page(
        self,
        owner_id: str | None,
        category: DocumentCategory,
        page: int = 0,
        force_refresh: bool = False,
    ) -> CatalogPageOut:
        scope = CatalogScope(owner_id=owner_id, category=category)

        if force_refresh:
            await self.refresh(owner_id, category)
            page = 0
        else:
            cached = self._cache.get(scope.page_key(page))
            if cached is not None:
                return self._page_out(scope, page, cached)

        fetched = await self._fetch_page(scope, page)
        self._cache.set(scope.page_key(page), fetched)
        return self._page_out(scope, page, fetched)

    async def refresh(self, owner_id: str | None, category: DocumentCategory) -> ReconciliationReport:
        """Drop every page listing the scope, re-verify the bucket and backfill missing index rows."""
        self.invalidate(owner_id, category)

        provision = await self._provisioner.ensure_ready(self._bucket, force=True)
        if not provision.ready:
            raise ProvisioningFailure(self._bucket, provision.reason)

        return await self.reconcile(owner_id, category)

    def invalidate(self, owner_id: str | None, category: DocumentCategory) -> None:
        for scope in CatalogScope(owner_id=owner_id, category=category).related_scopes():
            self._cache.invalidate_scope(scope)

    def purge_entry(self, storage_key: str) -> int:
        purged = self._cache.purge_entry(storage_key)
        logger.debug("catalog_entry_purged", key=storage_key, pages=purged)
        return purged

    async def reconcile(self, owner_id: str | None, category: DocumentCategory) -> ReconciliationReport:
        report = ReconciliationReport(owner_id=owner_id, category=category)
        try:
            objects = await self._scan(owner_id, category)
        except TransientStorageError as err:
            self._provisioner.mark_unknown(self._bucket, reason=str(err))
            logger.warning("catalog_reconcile_scan_failed", owner_id=owner_id, category=category.value, error=str(err))
            return report

        report.scanned = len(objects)
        indexed = await document_repo.find_indexed_storage_keys([stored.key for stored, _ in objects])
        report.already_indexed = len(indexed)

        touched: set[CatalogScope] = set()
        for stored, parsed in objects:
            if stored.key in indexed:
                continue
            entry = CatalogEntryCreate(
                owner_id=parsed.owner_id,
                category=parsed.category,
                storage_key=stored.key,
                display_name=parsed.leaf,
                url=await self._resolver.resolve(self._bucket, stored.key),
                created_at=stored.created_at or utc_now(),
            )
            try:
                await document_repo.insert_entry(entry)
            except DuplicateStorageKey:
                report.already_indexed += 1
                continue
            except IndexWriteFailure as err:
                report.failed.append(stored.key)
                logger.warning("catalog_backfill_failed", key=stored.key, error=str(err))
                continue

            report.backfilled.append(stored.key)
            touched.update(CatalogScope(owner_id=parsed.owner_id, category=parsed.category).related_scopes())

        for scope in touched:
            self._cache.invalidate_scope(scope)

        if report.backfilled or report.failed:
            logger.info(
                "catalog_reconciled",
                owner_id=owner_id,
                category=category.value,
                scanned=report.scanned,
                backfilled=len(report.backfilled),
                failed=len(report.failed),
            )
        return report

    async def check_consistency(self, owner_id: str | None, category: DocumentCategory) -> ConsistencyReport:
        # Index rows are written after their object, so reading the index before
        # scanning the bucket keeps in-flight uploads out of the orphan set.
        indexed_keys = set(await document_repo.list_scope_storage_keys(category=category, owner_id=owner_id))
        objects = await self._scan(owner_id, category)
        stored_keys = {stored.key for stored, _ in objects}
        return ConsistencyReport(
            owner_id=owner_id,
            category=category,
            unindexed=sorted(stored_keys - indexed_keys),
            orphaned=sorted(indexed_keys - stored_keys),
        )

    async def sweep_orphans(self, owner_id: str | None, category: DocumentCategory) -> list[str]:
        """Remove index rows whose object no longer exists in the bucket."""
        report = await self.check_consistency(owner_id, category)
        if not report.orphaned:
            return []

        removed = await document_repo.delete_entries_by_storage_keys(report.orphaned)
        for storage_key in report.orphaned:
            self._cache.purge_entry(storage_key)
        logger.info("catalog_orphans_removed", owner_id=owner_id, category=category.value, removed=removed)
        return report.orphaned

    async def audit(self, owner_id: str | None, category: DocumentCategory) -> AuditReport:
        reconciliation = await self.reconcile(owner_id, category)
        orphans = await self.sweep_orphans(owner_id, category)
        return AuditReport(reconciliation=reconciliation, orphans_removed=orphans)

    async def _scan(
        self,
        owner_id: str | None,
        category: DocumentCategory,
    ) -> list[tuple[StoredObject, ParsedStorageKey]]:
        if owner_id is not None:
            prefixes = [scope_prefix(category, owner_id)]
        else:
            prefixes = [scope_prefix(category), OWNER_DIR_PREFIX]

        matched: list[tuple[StoredObject, ParsedStorageKey]] = []
        for prefix in prefixes:
            for stored in await self._store.list_objects(self._bucket, prefix):
                parsed = parse_storage_key(stored.key)
                if parsed is None or parsed.category != category:
                    continue
                if owner_id is not None and parsed.owner_id != owner_id:
                    continue
                matched.append((stored, parsed))
        return matched

    async def _fetch_page(self, scope: CatalogScope, page: int) -> CachedPage:
        start = page * self._page_size
        rows = await document_repo.list_entries(
            category=scope.category,
            owner_id=scope.owner_id,
            start=start,
            stop=start + self._page_size,
        )
        entries: list[CatalogEntryOut] = []
        for row in rows:
            if not row.url:
                row = row.model_copy(update={"url": await self._resolver.resolve(self._bucket, row.storage_key)})
            entries.append(row)
        return CachedPage(entries=entries, has_more=len(entries) == self._page_size)

    def _page_out(self, scope: CatalogScope, page: int, cached: CachedPage) -> CatalogPageOut:
        return CatalogPageOut(
            owner_id=scope.owner_id,
            category=scope.category,
            page=page,
            page_size=self._page_size,
            has_more=cached.has_more,
            entries=cached.entries,
        )
