from __future__ import annotations

import re

import httpx

from core.delivery.provider import DeliverySender, response_json
from core.delivery.types import DeliveryFile, DeliveryReceipt, DeliveryRecipient, render_delivery_text
from core.errors import delivery_failed
from core.logging_config import get_logger
from schemas.imports import DeliveryMethod, DocumentCategory

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw_phone: str, default_country_code: str = "55") -> str:
    digits = _NON_DIGITS.sub("", raw_phone)
    if not digits:
        raise ValueError("Phone number has no digits")
    if not digits.startswith(default_country_code):
        digits = f"{default_country_code}{digits}"
    return digits


class WhatsAppSender(DeliverySender):
    method = DeliveryMethod.WHATSAPP

    def __init__(
        self,
        *,
        token: str,
        phone_id: str,
        default_country_code: str = "55",
        api_version: str = "v17.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._phone_id = phone_id
        self._default_country_code = default_country_code
        self._base_url = f"https://graph.facebook.com/{api_version}"
        self._transport = transport

    async def send(
        self,
        recipient: DeliveryRecipient,
        files: list[DeliveryFile],
        category: DocumentCategory,
    ) -> DeliveryReceipt:
        if not recipient.whatsapp:
            raise delivery_failed(self.method.value, "Recipient has no WhatsApp number")
        try:
            phone = normalize_phone(recipient.whatsapp, self._default_country_code)
        except ValueError as err:
            raise delivery_failed(self.method.value, str(err)) from err

        body = {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "text",
            "text": {"body": render_delivery_text(recipient, files, category)},
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=15) as client:
                response = await client.post(
                    f"{self._base_url}/{self._phone_id}/messages",
                    json=body,
                    headers={"Authorization": f"Bearer {self._token}"},
                )
        except httpx.HTTPError as err:
            raise delivery_failed(self.method.value, str(err)) from err

        data = response_json(response)
        if response.status_code >= 400:
            error = data.get("error")
            reason = error.get("message") if isinstance(error, dict) else None
            raise delivery_failed(self.method.value, reason or f"WhatsApp API returned {response.status_code}")

        messages = data.get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info("whatsapp_delivered", to=phone, files=len(files), message_id=message_id)
        return DeliveryReceipt(method=self.method, recipient=phone, message_id=message_id, raw=data)
