from __future__ import annotations

from typing import List

from fastapi import APIRouter, File, Form, UploadFile

from api.v1.documents_route import read_incoming_files
from core.response_envelope import document_response
from schemas.imports import DeliveryMethod, DocumentCategory
from services.delivery_service import deliver_documents

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])


@router.post("")
@document_response(
    message="Documents delivered",
    status_code=201,
    response_codes={
        404: "Client not found",
        502: "Upload or delivery provider failed",
        503: "Delivery method not configured or bucket not ready",
    },
)
async def send_documents(
    client_id: str = Form(...),
    method: DeliveryMethod = Form(DeliveryMethod.EMAIL),
    category: DocumentCategory = Form(DocumentCategory.INVOICE),
    files: List[UploadFile] = File(...),
):
    incoming = await read_incoming_files(files)
    return await deliver_documents(client_id=client_id, method=method, category=category, files=incoming)
