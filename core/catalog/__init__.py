from core.catalog.errors import (
    CatalogError,
    DuplicateStorageKey,
    IndexWriteFailure,
    ProvisioningFailure,
    TransientStorageError,
)

__all__ = [
    "CatalogError",
    "DuplicateStorageKey",
    "IndexWriteFailure",
    "ProvisioningFailure",
    "TransientStorageError",
]
