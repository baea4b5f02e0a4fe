from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.catalog.types import DeliveryFile
from schemas.imports import DeliveryMethod, DocumentCategory


@dataclass(frozen=True)
class DeliveryRecipient:
    name: str
    email: str | None = None
    whatsapp: str | None = None


@dataclass(frozen=True)
class DeliveryReceipt:
    method: DeliveryMethod
    recipient: str
    message_id: str | None
    raw: dict[str, Any]


def render_delivery_text(recipient: DeliveryRecipient, files: list[DeliveryFile], category: DocumentCategory) -> str:
    lines = [
        f"Hello {recipient.name}!",
        "",
        f"Here are your {category.label.lower()} as requested:",
        "",
    ]
    lines.extend(f"{item.name}: {item.url}" for item in files)
    lines.extend(["", "If you have any questions, please get in touch."])
    return "\n".join(lines)


__all__ = [
    "DeliveryFile",
    "DeliveryMethod",
    "DeliveryReceipt",
    "DeliveryRecipient",
    "render_delivery_text",
]
