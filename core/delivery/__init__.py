from core.delivery.manager import DeliveryManager
from core.delivery.provider import DeliverySender
from core.delivery.types import DeliveryFile, DeliveryReceipt, DeliveryRecipient

__all__ = [
    "DeliveryFile",
    "DeliveryManager",
    "DeliveryReceipt",
    "DeliveryRecipient",
    "DeliverySender",
]
