from __future__ import annotations


class CatalogError(Exception):
    """Base class for failures raised by the file-catalog layer."""


class ProvisioningFailure(CatalogError):
    """The bucket could not be made ready within the retry budget.

    Every storage-dependent operation is blocked until a later attempt
    succeeds, so callers surface this to the user instead of degrading.
    """

    def __init__(self, bucket: str, reason: str | None) -> None:
        super().__init__(f"Bucket '{bucket}' is not ready: {reason}")
        self.bucket = bucket
        self.reason = reason


class TransientStorageError(CatalogError):
    """A single object-store call failed; the caller may retry it."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class IndexWriteFailure(CatalogError):
    """The object exists in storage but its index row could not be written."""

    def __init__(self, storage_key: str, message: str) -> None:
        super().__init__(f"Index write for '{storage_key}' failed: {message}")
        self.storage_key = storage_key


class DuplicateStorageKey(CatalogError):
    def __init__(self, storage_key: str) -> None:
        super().__init__(f"'{storage_key}' is already indexed")
        self.storage_key = storage_key
