from __future__ import annotations

from pymongo.errors import PyMongoError

from core.catalog.catalog import ReconcilingCatalog
from core.catalog.errors import TransientStorageError
from core.catalog.provisioner import BucketProvisioner
from core.catalog.types import DeletionResult
from core.logging_config import get_logger
from core.storage.provider import ObjectStoreProvider
from repositories import document_repo

logger = get_logger(__name__)


class DeletionPipeline:
    """Removes the object first, then its index row.

    A failed store removal leaves the index untouched. A failed index removal
    after the object is gone is still reported as a failure; the orphan sweep
    clears the row later if the caller does not retry.
    """

    def __init__(
        self,
        *,
        store: ObjectStoreProvider,
        bucket: str,
        provisioner: BucketProvisioner,
        catalog: ReconcilingCatalog,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._provisioner = provisioner
        self._catalog = catalog

    async def delete(self, storage_key: str) -> DeletionResult:
        try:
            await self._store.remove_objects(self._bucket, [storage_key])
        except TransientStorageError as err:
            self._provisioner.mark_unknown(self._bucket, reason=str(err))
            logger.warning("document_storage_delete_failed", key=storage_key, error=str(err))
            return DeletionResult(storage_key=storage_key, ok=False, reason=str(err))

        try:
            removed = await document_repo.delete_entry_by_storage_key(storage_key)
        except PyMongoError as err:
            logger.error("document_index_delete_failed", key=storage_key, error=str(err), inconsistent=True)
            return DeletionResult(
                storage_key=storage_key,
                ok=False,
                reason=f"Object removed but index row remains: {err}",
                storage_removed=True,
            )

        if not removed:
            logger.info("document_index_row_missing", key=storage_key)

        self._catalog.purge_entry(storage_key)
        return DeletionResult(storage_key=storage_key, ok=True, storage_removed=True, index_removed=removed)
