from typing import List, Optional

from bson import ObjectId
from pymongo import DESCENDING

from core.database import db
from schemas.client_schema import ClientCreate, ClientOut


async def create_client(client_data: ClientCreate) -> ClientOut:
    client_dict = client_data.model_dump()
    result = await db.clients.insert_one(client_dict)
    client_dict["_id"] = result.inserted_id
    return ClientOut(**client_dict)


async def get_client_by_id(client_id: str) -> Optional[ClientOut]:
    if not ObjectId.is_valid(client_id):
        return None
    row = await db.clients.find_one({"_id": ObjectId(client_id)})
    if row is None:
        return None
    return ClientOut(**row)


async def list_clients(start: int = 0, stop: int = 100) -> List[ClientOut]:
    cursor = db.clients.find({}).sort("created_at", DESCENDING).skip(start).limit(stop - start)
    return [ClientOut(**row) async for row in cursor]
