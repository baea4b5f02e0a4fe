from schemas.imports import *
from schemas.document_schema import UploadBatchOut


class DeliveryOut(BaseModel):
    method: DeliveryMethod
    recipient: str
    message_id: Optional[str] = None
    sent_files: int
    upload: UploadBatchOut
