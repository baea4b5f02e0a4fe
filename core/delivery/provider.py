from __future__ import annotations

from typing import Any, Protocol

import httpx

from core.delivery.types import DeliveryFile, DeliveryReceipt, DeliveryRecipient
from schemas.imports import DeliveryMethod, DocumentCategory


class DeliverySender(Protocol):
    method: DeliveryMethod

    async def send(
        self,
        recipient: DeliveryRecipient,
        files: list[DeliveryFile],
        category: DocumentCategory,
    ) -> DeliveryReceipt:
        ...


def response_json(response: httpx.Response) -> dict[str, Any]:
    """Decoded JSON object of ``response``, or ``{}`` for empty or non-JSON bodies (gateway error pages)."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
