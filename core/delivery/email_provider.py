from __future__ import annotations

from html import escape

import httpx

from core.delivery.provider import DeliverySender, response_json
from core.delivery.types import DeliveryFile, DeliveryReceipt, DeliveryRecipient
from core.errors import delivery_failed
from core.logging_config import get_logger
from schemas.imports import DeliveryMethod, DocumentCategory

logger = get_logger(__name__)


def render_email_html(recipient: DeliveryRecipient, files: list[DeliveryFile], category: DocumentCategory) -> str:
    links = "".join(
        f'<li><a href="{escape(item.url, quote=True)}">{escape(item.name)}</a></li>' for item in files
    )
    return (
        f"<h1>Hello {escape(recipient.name)}!</h1>"
        f"<p>Here are your {escape(category.label.lower())} as requested.</p>"
        f"<ul>{links}</ul>"
        "<p>If you have any questions, please get in touch.</p>"
    )


class ResendEmailSender(DeliverySender):
    method = DeliveryMethod.EMAIL

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        base_url: str = "https://api.resend.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def send(
        self,
        recipient: DeliveryRecipient,
        files: list[DeliveryFile],
        category: DocumentCategory,
    ) -> DeliveryReceipt:
        if not recipient.email:
            raise delivery_failed(self.method.value, "Recipient has no email address")

        body = {
            "from": self._sender,
            "to": [recipient.email],
            "subject": f"Your documents - {category.label}",
            "html": render_email_html(recipient, files, category),
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=15) as client:
                response = await client.post(f"{self._base_url}/emails", json=body, headers=self._headers())
        except httpx.HTTPError as err:
            raise delivery_failed(self.method.value, str(err)) from err

        data = response_json(response)
        if response.status_code >= 400:
            reason = data.get("message")
            raise delivery_failed(self.method.value, reason or f"Resend returned {response.status_code}")

        logger.info("email_delivered", to=recipient.email, files=len(files), message_id=data.get("id"))
        return DeliveryReceipt(method=self.method, recipient=recipient.email, message_id=data.get("id"), raw=data)
