from core.storage.manager import ObjectStoreManager
from core.storage.provider import ObjectStoreProvider
from core.storage.types import ContainerCreation, ContainerInfo, StorageBackend, StoredObject

__all__ = [
    "ContainerCreation",
    "ContainerInfo",
    "ObjectStoreManager",
    "ObjectStoreProvider",
    "StorageBackend",
    "StoredObject",
]
