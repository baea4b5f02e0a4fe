from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from redis.exceptions import RedisError

from core.catalog.types import CACHE_KEY_PREFIX, CatalogPageKey, CatalogScope
from core.logging_config import get_logger
from schemas.document_schema import CatalogEntryOut

logger = get_logger(__name__)

PAGE_REGISTRY_KEY = f"{CACHE_KEY_PREFIX}:pages"


@dataclass(frozen=True)
class CachedPage:
    entries: list[CatalogEntryOut]
    has_more: bool

    def without(self, storage_key: str) -> "CachedPage":
        # has_more is kept and later pages do not shift; the next invalidation rebuilds the window.
        return CachedPage(
            entries=[entry for entry in self.entries if entry.storage_key != storage_key],
            has_more=self.has_more,
        )

    def holds(self, storage_key: str) -> bool:
        return any(entry.storage_key == storage_key for entry in self.entries)


def _dump(page: CachedPage) -> str:
    return json.dumps(
        {
            "has_more": page.has_more,
            "entries": [entry.model_dump(mode="json", by_alias=True) for entry in page.entries],
        }
    )


def _load(raw: str) -> CachedPage:
    payload = json.loads(raw)
    return CachedPage(
        entries=[CatalogEntryOut.model_validate(item) for item in payload.get("entries", [])],
        has_more=bool(payload.get("has_more")),
    )


class CatalogPageCache:
    """Redis-backed page cache.

    Each scope keeps a set of its page keys so the whole scope can be dropped
    at once; a registry of every page key backs single-entry purges. Redis
    failures degrade to cache misses.
    """

    def __init__(self, client: Any, *, ttl_seconds: int = 300) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds

    def get(self, page_key: CatalogPageKey) -> CachedPage | None:
        try:
            raw = self._client.get(page_key.cache_key())
        except RedisError as err:
            logger.warning("catalog_cache_read_failed", key=page_key.cache_key(), error=str(err))
            return None
        if not raw:
            return None

        try:
            return _load(raw)
        except (ValueError, ValidationError) as err:
            logger.warning("catalog_cache_entry_corrupt", key=page_key.cache_key(), error=str(err))
            return None

    def set(self, page_key: CatalogPageKey, page: CachedPage) -> None:
        cache_key = page_key.cache_key()
        index_key = page_key.scope.index_key()
        try:
            self._client.setex(cache_key, self._ttl_seconds, _dump(page))
            self._client.sadd(index_key, cache_key)
            self._client.expire(index_key, self._ttl_seconds)
            self._client.sadd(PAGE_REGISTRY_KEY, cache_key)
        except RedisError as err:
            logger.warning("catalog_cache_write_failed", key=cache_key, error=str(err))

    def invalidate_scope(self, scope: CatalogScope) -> int:
        index_key = scope.index_key()
        try:
            page_keys = list(self._client.smembers(index_key) or set())
            if page_keys:
                self._client.delete(*page_keys)
                self._client.srem(PAGE_REGISTRY_KEY, *page_keys)
            self._client.delete(index_key)
        except RedisError as err:
            logger.warning("catalog_cache_invalidate_failed", scope=index_key, error=str(err))
            return 0
        return len(page_keys)

    def purge_entry(self, storage_key: str) -> int:
        """Drop ``storage_key`` from every cached page holding it; other pages are untouched."""
        purged = 0
        try:
            page_keys = list(self._client.smembers(PAGE_REGISTRY_KEY) or set())
        except RedisError as err:
            logger.warning("catalog_cache_purge_failed", key=storage_key, error=str(err))
            return 0

        for cache_key in page_keys:
            try:
                raw = self._client.get(cache_key)
                if not raw:
                    self._client.srem(PAGE_REGISTRY_KEY, cache_key)
                    continue
                try:
                    page = _load(raw)
                except (ValueError, ValidationError):
                    # Unreadable pages are dropped; the next listing rebuilds them.
                    self._client.delete(cache_key)
                    continue
                if not page.holds(storage_key):
                    continue
                ttl = self._client.ttl(cache_key)
                self._client.setex(cache_key, ttl if ttl and ttl > 0 else self._ttl_seconds, _dump(page.without(storage_key)))
                purged += 1
            except RedisError as err:
                logger.warning("catalog_cache_purge_failed", key=cache_key, error=str(err))
        return purged
