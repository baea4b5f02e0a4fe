from __future__ import annotations

from typing import List

from core.errors import resource_not_found
from repositories.client_repo import create_client, get_client_by_id, list_clients
from schemas.client_schema import ClientCreate, ClientOut


async def register_client(client_data: ClientCreate) -> ClientOut:
    return await create_client(client_data)


async def retrieve_client(client_id: str) -> ClientOut:
    client = await get_client_by_id(client_id)
    if client is None:
        raise resource_not_found("Client", client_id)
    return client


async def retrieve_clients(start: int = 0, stop: int = 100) -> List[ClientOut]:
    return await list_clients(start=start, stop=stop)
