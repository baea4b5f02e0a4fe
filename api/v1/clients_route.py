from __future__ import annotations

from fastapi import APIRouter, Query

from core.response_envelope import document_created, document_response
from schemas.client_schema import ClientCreate
from services.client_service import register_client, retrieve_client, retrieve_clients

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.post("")
@document_created(message="Client registered")
async def create_client_record(payload: ClientCreate):
    return await register_client(payload)


@router.get("")
@document_response(message="Clients fetched")
async def list_client_records(start: int = Query(0, ge=0), stop: int = Query(100, gt=0)):
    return await retrieve_clients(start=start, stop=stop)


@router.get("/{client_id}")
@document_response(message="Client fetched", response_codes={404: "Client not found"})
async def get_client_record(client_id: str):
    return await retrieve_client(client_id)
