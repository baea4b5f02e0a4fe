from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, model_validator
from datetime import datetime, timezone
from typing import Optional, List, Any
from enum import Enum


class DocumentCategory(str, Enum):
    INVOICE = "invoice"
    TAX = "tax"
    OTHER = "other"

    @property
    def label(self) -> str:
        return {
            DocumentCategory.INVOICE: "Invoices",
            DocumentCategory.TAX: "Tax documents",
            DocumentCategory.OTHER: "Documents",
        }[self]


class DeliveryMethod(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
