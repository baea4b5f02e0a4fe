from __future__ import annotations

import mimetypes
from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import Response

from core.catalog.types import IncomingFile
from core.response_envelope import document_deleted, document_paginated, document_response
from schemas.imports import DocumentCategory
from services.document_service import (
    audit_documents,
    close_refresh_session,
    ensure_bucket,
    fetch_refresh_session,
    list_documents,
    list_recent_documents,
    open_refresh_session,
    read_public_local_object,
    read_signed_local_object,
    remove_document,
    upload_documents,
)

router = APIRouter(prefix="/documents", tags=["Documents"])


async def read_incoming_files(files: List[UploadFile]) -> list[IncomingFile]:
    incoming: list[IncomingFile] = []
    for upload in files:
        incoming.append(
            IncomingFile(
                display_name=upload.filename or "file",
                content=await upload.read(),
                content_type=upload.content_type or "application/octet-stream",
            )
        )
    return incoming


def _file_response(key: str, payload: bytes) -> Response:
    media_type, _ = mimetypes.guess_type(key)
    return Response(content=payload, media_type=media_type or "application/octet-stream")


@router.post("/upload")
@document_response(
    message="Upload batch processed",
    status_code=201,
    response_codes={
        400: "No files or invalid client id",
        404: "Client not found",
        502: "Every file in the batch failed",
        503: "Storage bucket could not be provisioned",
    },
)
async def upload_document_batch(
    files: List[UploadFile] = File(...),
    category: DocumentCategory = Form(DocumentCategory.INVOICE),
    client_id: Optional[str] = Form(None),
):
    incoming = await read_incoming_files(files)
    return await upload_documents(files=incoming, category=category, client_id=client_id)


@router.get("")
@document_paginated(message="Documents fetched")
async def list_document_page(
    category: DocumentCategory = Query(DocumentCategory.INVOICE),
    client_id: Optional[str] = Query(None),
    page: int = Query(0, ge=0),
    force_refresh: bool = Query(False),
):
    result = await list_documents(
        category=category,
        client_id=client_id,
        page=page,
        force_refresh=force_refresh,
    )
    meta = {
        "page": result.page,
        "page_size": result.page_size,
        "has_more": result.has_more,
        "category": result.category.value,
        "client_id": result.owner_id,
    }
    return result.entries, meta


@router.get("/recent")
@document_response(message="Recent uploads fetched")
async def list_recent_uploads(limit: int = Query(5, ge=1, le=50)):
    return await list_recent_documents(limit=limit)


@router.post("/bucket/ensure")
@document_response(
    message="Bucket status fetched",
    response_codes={503: "Storage bucket could not be provisioned"},
)
async def ensure_document_bucket(check_only: bool = Query(False)):
    return await ensure_bucket(check_only=check_only)


@router.post("/audit")
@document_response(message="Catalog audit completed")
async def audit_document_scope(
    category: DocumentCategory = Query(DocumentCategory.INVOICE),
    client_id: Optional[str] = Query(None),
):
    return await audit_documents(category=category, client_id=client_id)


@router.post("/watch")
@document_response(message="Refresh session opened", status_code=201)
async def open_document_watch(
    category: DocumentCategory = Query(DocumentCategory.INVOICE),
    client_id: Optional[str] = Query(None),
):
    return await open_refresh_session(category=category, client_id=client_id)


@router.get("/watch/{session_id}")
@document_response(message="Refresh session fetched")
async def get_document_watch(session_id: str):
    return await fetch_refresh_session(session_id)


@router.delete("/watch/{session_id}")
@document_deleted(message="Refresh session closed")
async def close_document_watch(session_id: str):
    await close_refresh_session(session_id)
    return {"deleted": True}


@router.get("/local/{token}", include_in_schema=False)
async def read_signed_document(token: str):
    key, payload = read_signed_local_object(token)
    return _file_response(key, payload)


@router.get("/public/{container}/{key:path}", include_in_schema=False)
async def read_public_document(container: str, key: str):
    key, payload = read_public_local_object(container, key)
    return _file_response(key, payload)


@router.delete("/{storage_key:path}")
@document_response(
    message="Document deleted",
    response_codes={502: "Storage or index removal failed"},
)
async def delete_document(storage_key: str):
    return await remove_document(storage_key)
