from schemas.imports import *
from pydantic import ConfigDict


class ClientCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    whatsapp: str = Field(min_length=8)
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"extra": "forbid"}


class ClientOut(BaseModel):
    id: Optional[str] = Field(default=None, alias="_id")
    name: str
    email: EmailStr
    whatsapp: str
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        if isinstance(values, dict) and "_id" in values and isinstance(values["_id"], ObjectId):
            values = dict(values)
            values["_id"] = str(values["_id"])
        return values

    model_config = ConfigDict(populate_by_name=True)
