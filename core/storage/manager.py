from __future__ import annotations

from threading import Lock

from core.settings import get_settings
from core.storage.local_provider import LocalStorageProvider
from core.storage.provider import ObjectStoreProvider
from core.storage.s3_provider import S3StorageProvider


class ObjectStoreManager:
    _instance: "ObjectStoreManager | None" = None
    _lock = Lock()

    def __init__(self, provider: ObjectStoreProvider, bucket_name: str) -> None:
        self._provider = provider
        self._bucket_name = bucket_name

    @classmethod
    def configure(cls, provider: ObjectStoreProvider, bucket_name: str = "documents") -> "ObjectStoreManager":
        with cls._lock:
            cls._instance = cls(provider, bucket_name)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "ObjectStoreManager":
        settings = get_settings()
        if settings.storage_backend == "s3":
            provider: ObjectStoreProvider = S3StorageProvider(
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                public_base_url=settings.storage_public_base_url,
            )
        else:
            if not settings.storage_signing_secret:
                raise RuntimeError("STORAGE_SIGNING_SECRET is required when STORAGE_BACKEND=local")
            provider = LocalStorageProvider(
                root_dir=settings.storage_local_root,
                signing_secret=settings.storage_signing_secret,
                public_base_url=settings.storage_public_base_url or "/v1/documents/public",
            )

        return cls.configure(provider, settings.storage_bucket_name)

    @classmethod
    def get_instance(cls) -> "ObjectStoreManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def provider(self) -> ObjectStoreProvider:
        return self._provider

    @property
    def bucket_name(self) -> str:
        return self._bucket_name
