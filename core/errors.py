from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BUCKET_PROVISIONING_FAILED = "BUCKET_PROVISIONING_FAILED"
    DOCUMENT_UPLOAD_INVALID = "DOCUMENT_UPLOAD_INVALID"
    DOCUMENT_UPLOAD_FAILED = "DOCUMENT_UPLOAD_FAILED"
    DOCUMENT_DELETE_FAILED = "DOCUMENT_DELETE_FAILED"
    DELIVERY_NOT_CONFIGURED = "DELIVERY_NOT_CONFIGURED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def bucket_provisioning_failed(bucket: str, reason: str | None) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.BUCKET_PROVISIONING_FAILED,
        message="Storage bucket is not ready. Retry the operation.",
        details={"bucket": bucket, "reason": reason},
    )


def delivery_failed(method: str, reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        code=ErrorCode.DELIVERY_FAILED,
        message=f"Failed to deliver documents by {method}",
        details={"method": method, "reason": reason},
    )


def delivery_not_configured(method: str) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.DELIVERY_NOT_CONFIGURED,
        message=f"Delivery by {method} is not configured",
        details={"method": method},
    )


def storage_unavailable(operation: str, reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.STORAGE_UNAVAILABLE,
        message="Object storage is unavailable. Retry the operation.",
        details={"operation": operation, "reason": reason},
    )
