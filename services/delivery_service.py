from __future__ import annotations

from core.catalog.types import IncomingFile
from core.delivery.manager import DeliveryManager
from core.delivery.types import DeliveryRecipient
from core.logging_config import get_logger
from schemas.delivery_schema import DeliveryOut
from schemas.imports import DeliveryMethod, DocumentCategory
from services.client_service import retrieve_client
from services.document_service import to_upload_batch_out, upload_batch

logger = get_logger(__name__)


async def deliver_documents(
    *,
    client_id: str,
    method: DeliveryMethod,
    category: DocumentCategory,
    files: list[IncomingFile],
) -> DeliveryOut:
    """Upload ``files`` for the client, then send the links of the stored ones."""
    client = await retrieve_client(client_id)
    manager = DeliveryManager.get_instance()
    # Fail on an unconfigured method before anything is uploaded.
    manager.get_sender(method)

    batch = await upload_batch(files=files, category=category, client_id=client_id)
    delivery_files = batch.delivery_files()

    receipt = await manager.send(
        method,
        DeliveryRecipient(name=client.name, email=client.email, whatsapp=client.whatsapp),
        delivery_files,
        category,
    )
    logger.info(
        "documents_delivered",
        client_id=client_id,
        method=method.value,
        files=len(delivery_files),
        outcome=batch.outcome.value,
    )
    return DeliveryOut(
        method=method,
        recipient=receipt.recipient,
        message_id=receipt.message_id,
        sent_files=len(delivery_files),
        upload=to_upload_batch_out(batch),
    )
