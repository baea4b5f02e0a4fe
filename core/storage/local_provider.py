from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import quote

import jwt

from core.catalog.errors import TransientStorageError
from core.storage.provider import ObjectStoreProvider
from core.storage.types import ContainerCreation, ContainerInfo, StorageBackend, StoredObject

SIGNING_ALGORITHM = "HS256"
_META_DIR = ".containers"


class LocalStorageProvider(ObjectStoreProvider):
    """Filesystem-backed store: one directory per container under ``root_dir``.

    Public objects are served by ``/v1/documents/public/{container}/{key}`` and
    signed URLs carry a JWT naming the container, the key and an expiry.
    """

    backend_name = StorageBackend.LOCAL.value

    def __init__(
        self,
        root_dir: str,
        *,
        signing_secret: str,
        public_base_url: str = "/v1/documents/public",
        signed_base_url: str = "/v1/documents/local",
    ) -> None:
        self._root = Path(root_dir)
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / _META_DIR).mkdir(exist_ok=True)
        self._signing_secret = signing_secret
        self._public_base_url = public_base_url.rstrip("/")
        self._signed_base_url = signed_base_url.rstrip("/")

    def _container_dir(self, container: str) -> Path:
        if not container or container.startswith(".") or "/" in container:
            raise ValueError(f"Invalid container name '{container}'")
        return self._root / container

    def _object_path(self, container: str, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts:
            raise ValueError(f"Invalid object key '{key}'")
        return self._container_dir(container).joinpath(*parts)

    def _meta_path(self, container: str) -> Path:
        return self._root / _META_DIR / f"{container}.json"

    def _is_public(self, container: str) -> bool:
        meta_path = self._meta_path(container)
        if not meta_path.exists():
            return False
        return bool(json.loads(meta_path.read_text()).get("public"))

    async def create_container(self, name: str, *, public: bool) -> ContainerCreation:
        container_dir = self._container_dir(name)
        try:
            container_dir.mkdir(parents=False, exist_ok=False)
            outcome = ContainerCreation.CREATED
        except FileExistsError:
            outcome = ContainerCreation.ALREADY_EXISTS
        except OSError as err:
            raise TransientStorageError("create_container", str(err)) from err

        if public:
            self._meta_path(name).write_text(json.dumps({"public": True}))
        return outcome

    async def list_containers(self) -> list[ContainerInfo]:
        return [
            ContainerInfo(name=path.name, public=self._is_public(path.name))
            for path in sorted(self._root.iterdir())
            if path.is_dir() and not path.name.startswith(".")
        ]

    async def put_object(
        self,
        container: str,
        key: str,
        payload: bytes,
        *,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        if not self._container_dir(container).is_dir():
            raise TransientStorageError("put_object", f"container '{container}' does not exist")

        file_path = self._object_path(container, key)
        if file_path.exists() and not overwrite:
            raise TransientStorageError("put_object", f"object '{key}' already exists")
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(payload)
        except OSError as err:
            raise TransientStorageError("put_object", str(err)) from err

    async def get_object(self, container: str, key: str) -> bytes:
        try:
            return self._object_path(container, key).read_bytes()
        except OSError as err:
            raise TransientStorageError("get_object", str(err)) from err

    async def list_objects(self, container: str, prefix: str = "") -> list[StoredObject]:
        container_dir = self._container_dir(container)
        if not container_dir.is_dir():
            raise TransientStorageError("list_objects", f"container '{container}' does not exist")

        objects: list[StoredObject] = []
        for path in container_dir.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(container_dir).as_posix()
            if not key.startswith(prefix):
                continue
            stat = path.stat()
            objects.append(
                StoredObject(
                    key=key,
                    size=stat.st_size,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return sorted(objects, key=lambda item: item.key)

    async def remove_objects(self, container: str, keys: list[str]) -> None:
        for key in keys:
            try:
                self._object_path(container, key).unlink(missing_ok=True)
            except OSError as err:
                raise TransientStorageError("remove_objects", str(err)) from err

    async def public_url(self, container: str, key: str) -> str | None:
        if not self._is_public(container):
            return None
        return f"{self._public_base_url}/{container}/{quote(key)}"

    async def signed_url(self, container: str, key: str, ttl_seconds: int) -> str | None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        token = jwt.encode(
            {"container": container, "key": key, "exp": expires_at},
            self._signing_secret,
            algorithm=SIGNING_ALGORITHM,
        )
        return f"{self._signed_base_url}/{token}"

    def verify_signed_token(self, token: str) -> tuple[str, str]:
        """Return ``(container, key)`` for a valid token; raises ``jwt.InvalidTokenError``."""
        claims = jwt.decode(token, self._signing_secret, algorithms=[SIGNING_ALGORITHM])
        return str(claims["container"]), str(claims["key"])

    def read_public_bytes(self, container: str, key: str) -> bytes:
        if not self._is_public(container):
            raise PermissionError(f"container '{container}' is not public")
        return self._object_path(container, key).read_bytes()

    def read_bytes(self, container: str, key: str) -> bytes:
        return self._object_path(container, key).read_bytes()
