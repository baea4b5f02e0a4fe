from __future__ import annotations

import asyncio
from threading import Lock
from typing import Any

from core.catalog.catalog import ReconcilingCatalog
from core.catalog.deletion import DeletionPipeline
from core.catalog.page_cache import CatalogPageCache
from core.catalog.provisioner import BucketProvisioner, SleepFunc
from core.catalog.upload import UploadPipeline
from core.catalog.url_resolver import URLResolver
from core.redis_cache import cache_db
from core.settings import ONE_YEAR_SECONDS, get_settings
from core.storage.manager import ObjectStoreManager
from core.storage.provider import ObjectStoreProvider
from core.storage.types import StorageBackend


def default_public_base_url(backend: str, *, region: str | None, endpoint_url: str | None) -> str:
    if backend == StorageBackend.LOCAL.value:
        return "/v1/documents/public"
    if endpoint_url:
        return endpoint_url
    return f"https://s3.{region or 'us-east-1'}.amazonaws.com"


class CatalogManager:
    """Process-wide owner of the file-catalog components.

    One provisioner per process holds the bucket-readiness state; the catalog
    and both pipelines share it.
    """

    _instance: "CatalogManager | None" = None
    _lock = Lock()

    def __init__(
        self,
        *,
        store: ObjectStoreProvider,
        bucket: str,
        provisioner: BucketProvisioner,
        resolver: URLResolver,
        catalog: ReconcilingCatalog,
        uploads: UploadPipeline,
        deletions: DeletionPipeline,
    ) -> None:
        self.store = store
        self.bucket = bucket
        self.provisioner = provisioner
        self.resolver = resolver
        self.catalog = catalog
        self.uploads = uploads
        self.deletions = deletions

    @classmethod
    def build(
        cls,
        store: ObjectStoreProvider,
        bucket: str,
        *,
        cache_client: Any,
        public_base_url: str,
        max_retries: int = 3,
        retry_delay_seconds: float = 2.0,
        write_attempts: int = 3,
        signed_url_ttl_seconds: int = ONE_YEAR_SECONDS,
        verify_reachability: bool = False,
        page_size: int = 10,
        cache_ttl_seconds: int = 300,
        sleep: SleepFunc = asyncio.sleep,
    ) -> "CatalogManager":
        provisioner = BucketProvisioner(
            store,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            sleep=sleep,
        )
        resolver = URLResolver(
            store,
            public_base_url=public_base_url,
            signed_url_ttl_seconds=signed_url_ttl_seconds,
            verify_reachability=verify_reachability,
        )
        catalog = ReconcilingCatalog(
            store=store,
            bucket=bucket,
            provisioner=provisioner,
            resolver=resolver,
            cache=CatalogPageCache(cache_client, ttl_seconds=cache_ttl_seconds),
            page_size=page_size,
        )
        return cls(
            store=store,
            bucket=bucket,
            provisioner=provisioner,
            resolver=resolver,
            catalog=catalog,
            uploads=UploadPipeline(
                store=store,
                bucket=bucket,
                provisioner=provisioner,
                resolver=resolver,
                catalog=catalog,
                write_attempts=write_attempts,
                sleep=sleep,
            ),
            deletions=DeletionPipeline(store=store, bucket=bucket, provisioner=provisioner, catalog=catalog),
        )

    @classmethod
    def configure(cls, manager: "CatalogManager") -> "CatalogManager":
        with cls._lock:
            cls._instance = manager
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "CatalogManager":
        settings = get_settings()
        storage = ObjectStoreManager.get_instance()
        manager = cls.build(
            storage.provider,
            storage.bucket_name,
            cache_client=cache_db,
            public_base_url=settings.storage_public_base_url
            or default_public_base_url(
                settings.storage_backend,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
            ),
            max_retries=settings.bucket_provision_max_retries,
            retry_delay_seconds=settings.bucket_provision_retry_delay_seconds,
            write_attempts=settings.storage_write_attempts,
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
            verify_reachability=settings.url_verify_reachability,
            page_size=settings.catalog_page_size,
            cache_ttl_seconds=settings.catalog_cache_ttl_seconds,
        )
        return cls.configure(manager)

    @classmethod
    def get_instance(cls) -> "CatalogManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None
