from __future__ import annotations

import jwt

from core.catalog.errors import ProvisioningFailure, TransientStorageError
from core.catalog.manager import CatalogManager
from core.catalog.refresh import CatalogRefreshSession, refresh_sessions
from core.catalog.types import BucketState, IncomingFile, UploadBatchResult, UploadOutcome
from core.errors import (
    AppException,
    ErrorCode,
    bucket_provisioning_failed,
    resource_not_found,
    storage_unavailable,
)
from core.scheduler import scheduler
from core.settings import get_settings
from core.storage.local_provider import LocalStorageProvider
from repositories.client_repo import get_client_by_id
from repositories.document_repo import list_recent_entries
from schemas.document_schema import (
    AuditReportOut,
    BucketStatusOut,
    CatalogEntryOut,
    CatalogPageOut,
    DeletionOut,
    FileUploadResultOut,
    RefreshSessionOut,
    UploadBatchOut,
)
from schemas.imports import DocumentCategory


async def _require_client(client_id: str | None) -> None:
    if client_id is None:
        return
    if await get_client_by_id(client_id) is None:
        raise resource_not_found("Client", client_id)


def to_upload_batch_out(batch: UploadBatchResult) -> UploadBatchOut:
    return UploadBatchOut(
        outcome=batch.outcome.value,
        success_count=batch.success_count,
        failure_count=batch.failure_count,
        results=[
            FileUploadResultOut(
                display_name=item.display_name,
                success=item.success,
                storage_key=item.storage_key,
                url=item.url,
                indexed=item.indexed,
                error=item.error,
            )
            for item in batch.results
        ],
    )


async def upload_batch(
    *,
    files: list[IncomingFile],
    category: DocumentCategory,
    client_id: str | None = None,
) -> UploadBatchResult:
    """Run the upload pipeline; raises when the bucket is unusable or every file failed."""
    if not files:
        raise AppException(
            status_code=400,
            code=ErrorCode.DOCUMENT_UPLOAD_INVALID,
            message="At least one file is required",
        )
    await _require_client(client_id)

    manager = CatalogManager.get_instance()
    try:
        batch = await manager.uploads.upload(files, client_id, category)
    except ProvisioningFailure as err:
        raise bucket_provisioning_failed(err.bucket, err.reason) from err
    except ValueError as err:
        raise AppException(
            status_code=400,
            code=ErrorCode.DOCUMENT_UPLOAD_INVALID,
            message=str(err),
        ) from err

    if batch.outcome == UploadOutcome.FAILED:
        raise AppException(
            status_code=502,
            code=ErrorCode.DOCUMENT_UPLOAD_FAILED,
            message="No file could be uploaded",
            details=to_upload_batch_out(batch).model_dump(),
        )
    return batch


async def upload_documents(
    *,
    files: list[IncomingFile],
    category: DocumentCategory,
    client_id: str | None = None,
) -> UploadBatchOut:
    batch = await upload_batch(files=files, category=category, client_id=client_id)
    return to_upload_batch_out(batch)


async def list_documents(
    *,
    category: DocumentCategory,
    client_id: str | None = None,
    page: int = 0,
    force_refresh: bool = False,
) -> CatalogPageOut:
    manager = CatalogManager.get_instance()
    try:
        return await manager.catalog.list_page(client_id, category, page=page, force_refresh=force_refresh)
    except ProvisioningFailure as err:
        raise bucket_provisioning_failed(err.bucket, err.reason) from err


async def list_recent_documents(limit: int = 5) -> list[CatalogEntryOut]:
    manager = CatalogManager.get_instance()
    entries = await list_recent_entries(limit=limit)
    resolved: list[CatalogEntryOut] = []
    for entry in entries:
        if not entry.url:
            entry = entry.model_copy(update={"url": await manager.resolver.resolve(manager.bucket, entry.storage_key)})
        resolved.append(entry)
    return resolved


async def remove_document(storage_key: str) -> DeletionOut:
    manager = CatalogManager.get_instance()
    result = await manager.deletions.delete(storage_key)
    if not result.ok:
        raise AppException(
            status_code=502,
            code=ErrorCode.DOCUMENT_DELETE_FAILED,
            message="Document could not be deleted. Retry the operation.",
            details={
                "storage_key": storage_key,
                "reason": result.reason,
                "storage_removed": result.storage_removed,
            },
        )
    return DeletionOut(storage_key=storage_key, deleted=True, index_removed=result.index_removed)


async def ensure_bucket(*, check_only: bool = False) -> BucketStatusOut:
    manager = CatalogManager.get_instance()
    provisioner = manager.provisioner

    if check_only:
        try:
            exists = await provisioner.check_exists(manager.bucket)
        except TransientStorageError as err:
            raise storage_unavailable("list_containers", str(err)) from err
        state = provisioner.state(manager.bucket)
        return BucketStatusOut(
            bucket=manager.bucket,
            state=state.value,
            ready=state == BucketState.READY,
            exists=exists,
        )

    result = await provisioner.ensure_ready(manager.bucket, force=True)
    if not result.ready:
        raise bucket_provisioning_failed(result.bucket, result.reason)
    return BucketStatusOut(
        bucket=result.bucket,
        state=result.state.value,
        ready=True,
        attempts=result.attempts,
        exists=True,
    )


async def audit_documents(*, category: DocumentCategory, client_id: str | None = None) -> AuditReportOut:
    manager = CatalogManager.get_instance()
    try:
        report = await manager.catalog.audit(client_id, category)
    except TransientStorageError as err:
        raise storage_unavailable("list_objects", str(err)) from err

    reconciliation = report.reconciliation
    return AuditReportOut(
        owner_id=client_id,
        category=category,
        scanned=reconciliation.scanned,
        already_indexed=reconciliation.already_indexed,
        backfilled=reconciliation.backfilled,
        backfill_failed=reconciliation.failed,
        orphans_removed=report.orphans_removed,
    )


def _session_out(session: CatalogRefreshSession) -> RefreshSessionOut:
    return RefreshSessionOut(
        session_id=session.session_id,
        owner_id=session.owner_id,
        category=session.category,
        active=session.active,
        latest=session.latest,
    )


async def open_refresh_session(*, category: DocumentCategory, client_id: str | None = None) -> RefreshSessionOut:
    await _require_client(client_id)
    session = CatalogRefreshSession(
        CatalogManager.get_instance().catalog,
        owner_id=client_id,
        category=category,
        scheduler=scheduler,
        interval_seconds=get_settings().catalog_refresh_interval_seconds,
    )
    refresh_sessions.open(session)
    await session.tick()
    return _session_out(session)


async def fetch_refresh_session(session_id: str) -> RefreshSessionOut:
    session = refresh_sessions.get(session_id)
    if session is None:
        raise resource_not_found("Refresh session", session_id)
    return _session_out(session)


async def close_refresh_session(session_id: str) -> bool:
    if not refresh_sessions.close(session_id):
        raise resource_not_found("Refresh session", session_id)
    return True


def _local_provider() -> LocalStorageProvider:
    provider = CatalogManager.get_instance().store
    if not isinstance(provider, LocalStorageProvider):
        raise resource_not_found("Local object")
    return provider


def read_signed_local_object(token: str) -> tuple[str, bytes]:
    provider = _local_provider()
    try:
        container, key = provider.verify_signed_token(token)
    except jwt.InvalidTokenError as err:
        raise AppException(
            status_code=403,
            code=ErrorCode.VALIDATION_FAILED,
            message="Invalid or expired download link",
        ) from err
    try:
        return key, provider.read_bytes(container, key)
    except FileNotFoundError as err:
        raise resource_not_found("Document", key) from err


def read_public_local_object(container: str, key: str) -> tuple[str, bytes]:
    provider = _local_provider()
    try:
        return key, provider.read_public_bytes(container, key)
    except (FileNotFoundError, PermissionError, ValueError) as err:
        raise resource_not_found("Document", key) from err
