from __future__ import annotations

from typing import Protocol

from core.storage.types import ContainerCreation, ContainerInfo, StoredObject


class ObjectStoreProvider(Protocol):
    """Raw object-store operations.

    Implementations raise ``TransientStorageError`` for failed calls. Creating a
    container that already exists is reported as ``ContainerCreation.ALREADY_EXISTS``
    rather than raised.
    """

    backend_name: str

    async def create_container(self, name: str, *, public: bool) -> ContainerCreation:
        ...

    async def list_containers(self) -> list[ContainerInfo]:
        ...

    async def put_object(
        self,
        container: str,
        key: str,
        payload: bytes,
        *,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        ...

    async def get_object(self, container: str, key: str) -> bytes:
        ...

    async def list_objects(self, container: str, prefix: str = "") -> list[StoredObject]:
        ...

    async def remove_objects(self, container: str, keys: list[str]) -> None:
        ...

    async def public_url(self, container: str, key: str) -> str | None:
        ...

    async def signed_url(self, container: str, key: str, ttl_seconds: int) -> str | None:
        ...
