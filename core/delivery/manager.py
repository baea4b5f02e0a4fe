from __future__ import annotations

from threading import Lock

from core.delivery.email_provider import ResendEmailSender
from core.delivery.provider import DeliverySender
from core.delivery.types import DeliveryFile, DeliveryReceipt, DeliveryRecipient
from core.delivery.whatsapp_provider import WhatsAppSender
from core.errors import delivery_not_configured
from core.settings import get_settings
from schemas.imports import DeliveryMethod, DocumentCategory


class DeliveryManager:
    _instance: "DeliveryManager | None" = None
    _lock = Lock()

    def __init__(self, senders: dict[DeliveryMethod, DeliverySender]) -> None:
        self._senders = senders

    @classmethod
    def configure(cls, senders: dict[DeliveryMethod, DeliverySender]) -> "DeliveryManager":
        with cls._lock:
            cls._instance = cls(senders)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "DeliveryManager":
        settings = get_settings()
        senders: dict[DeliveryMethod, DeliverySender] = {}

        if settings.resend_api_key and settings.email_from:
            senders[DeliveryMethod.EMAIL] = ResendEmailSender(
                api_key=settings.resend_api_key,
                sender=settings.email_from,
            )

        if settings.whatsapp_token and settings.whatsapp_phone_id:
            senders[DeliveryMethod.WHATSAPP] = WhatsAppSender(
                token=settings.whatsapp_token,
                phone_id=settings.whatsapp_phone_id,
                default_country_code=settings.whatsapp_default_country_code,
            )

        return cls.configure(senders)

    @classmethod
    def get_instance(cls) -> "DeliveryManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @property
    def methods(self) -> list[DeliveryMethod]:
        return list(self._senders)

    def get_sender(self, method: DeliveryMethod) -> DeliverySender:
        sender = self._senders.get(method)
        if sender is None:
            raise delivery_not_configured(method.value)
        return sender

    async def send(
        self,
        method: DeliveryMethod,
        recipient: DeliveryRecipient,
        files: list[DeliveryFile],
        category: DocumentCategory,
    ) -> DeliveryReceipt:
        return await self.get_sender(method).send(recipient, files, category)
