from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Sequence

from pymongo.errors import PyMongoError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.catalog.catalog import ReconcilingCatalog
from core.catalog.errors import CatalogError, DuplicateStorageKey, IndexWriteFailure, ProvisioningFailure, TransientStorageError
from core.catalog.keys import build_storage_key, validate_owner_id, with_copy_suffix
from core.catalog.provisioner import BucketProvisioner, SleepFunc
from core.catalog.types import FileUploadResult, IncomingFile, UploadBatchResult
from core.catalog.url_resolver import URLResolver
from core.logging_config import get_logger
from core.storage.provider import ObjectStoreProvider
from repositories import document_repo
from schemas.document_schema import CatalogEntryCreate
from schemas.imports import DocumentCategory, utc_now

logger = get_logger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class UploadPipeline:
    """Store, resolve and index a batch of files, one file at a time.

    A failing file never aborts the batch. Only an unusable bucket raises,
    as ``ProvisioningFailure``, before any file is touched.
    """

    def __init__(
        self,
        *,
        store: ObjectStoreProvider,
        bucket: str,
        provisioner: BucketProvisioner,
        resolver: URLResolver,
        catalog: ReconcilingCatalog,
        write_attempts: int = 3,
        write_retry_delay_seconds: float = 0.5,
        max_file_bytes: int = MAX_UPLOAD_BYTES,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._provisioner = provisioner
        self._resolver = resolver
        self._catalog = catalog
        self._write_attempts = max(1, write_attempts)
        self._write_retry_delay_seconds = write_retry_delay_seconds
        self._max_file_bytes = max_file_bytes
        self._sleep = sleep
        self._clock = clock

    async def upload(
        self,
        files: Sequence[IncomingFile],
        owner_id: str | None,
        category: DocumentCategory,
    ) -> UploadBatchResult:
        validate_owner_id(owner_id)
        if not files:
            return UploadBatchResult()

        provision = await self._provisioner.ensure_ready(self._bucket)
        if not provision.ready:
            raise ProvisioningFailure(self._bucket, provision.reason)

        batch = UploadBatchResult()
        batch_keys: set[str] = set()
        for incoming in files:
            batch.results.append(await self._upload_one(incoming, owner_id, category, batch_keys))

        logger.info(
            "upload_batch_completed",
            owner_id=owner_id,
            category=category.value,
            outcome=batch.outcome.value,
            success_count=batch.success_count,
            failure_count=batch.failure_count,
        )

        if batch.success_count:
            try:
                await self._catalog.list_page(owner_id, category, page=0, force_refresh=True)
            except (CatalogError, PyMongoError) as err:
                logger.warning("upload_catalog_refresh_failed", owner_id=owner_id, category=category.value, error=str(err))
        return batch

    async def _upload_one(
        self,
        incoming: IncomingFile,
        owner_id: str | None,
        category: DocumentCategory,
        batch_keys: set[str],
    ) -> FileUploadResult:
        def failed(reason: str, storage_key: str | None = None) -> FileUploadResult:
            logger.warning("file_upload_failed", display_name=incoming.display_name, key=storage_key, reason=reason)
            return FileUploadResult(display_name=incoming.display_name, success=False, storage_key=storage_key, error=reason)

        if not incoming.content:
            return failed("File is empty")
        if len(incoming.content) > self._max_file_bytes:
            return failed(f"File exceeds the {self._max_file_bytes // (1024 * 1024)} MiB limit")

        provision = await self._provisioner.ensure_ready(self._bucket)
        if not provision.ready:
            return failed(f"Bucket not ready: {provision.reason}")

        storage_key = build_storage_key(
            category=category,
            owner_id=owner_id,
            display_name=incoming.display_name,
            moment=self._clock(),
        )
        base_key = storage_key
        copy_number = 0
        while storage_key in batch_keys:
            copy_number += 1
            storage_key = with_copy_suffix(base_key, copy_number)
        batch_keys.add(storage_key)

        try:
            await self._write(storage_key, incoming)
        except TransientStorageError as err:
            self._provisioner.mark_unknown(self._bucket, reason=str(err))
            return failed(str(err), storage_key)

        url = await self._resolver.resolve(self._bucket, storage_key)

        entry = CatalogEntryCreate(
            owner_id=owner_id,
            category=category,
            storage_key=storage_key,
            display_name=incoming.display_name,
            url=url,
        )
        indexed = True
        try:
            try:
                await document_repo.insert_entry(entry)
            except DuplicateStorageKey:
                # A reconcile backfilled the object first; the upload's name and owner win.
                await document_repo.update_entry_metadata(entry)
                logger.info("file_index_row_replaced_backfill", key=storage_key)
        except IndexWriteFailure as err:
            indexed = False
            logger.warning("file_index_write_failed", key=storage_key, error=str(err))

        return FileUploadResult(
            display_name=incoming.display_name,
            success=True,
            storage_key=storage_key,
            url=url,
            indexed=indexed,
        )

    async def _write(self, storage_key: str, incoming: IncomingFile) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._write_attempts),
            wait=wait_fixed(self._write_retry_delay_seconds),
            retry=retry_if_exception_type(TransientStorageError),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._store.put_object(
                    self._bucket,
                    storage_key,
                    incoming.content,
                    content_type=incoming.content_type,
                    overwrite=True,
                )
