from __future__ import annotations

from datetime import datetime, timezone

from redis.exceptions import ConnectionError as RedisConnectionError

from core.catalog.page_cache import CachedPage, CatalogPageCache
from core.catalog.types import CatalogPageKey, CatalogScope
from schemas.document_schema import CatalogEntryOut
from schemas.imports import DocumentCategory


def _entry(key: str) -> CatalogEntryOut:
    return CatalogEntryOut(
        _id="id-" + key,
        category=DocumentCategory.INVOICE,
        storage_key=key,
        display_name=key.rsplit("/", 1)[-1],
        url=f"https://cdn.example.com/{key}",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_set_then_get_round_trips_entries(fake_cache):
    cache = CatalogPageCache(fake_cache, ttl_seconds=60)
    key = CatalogPageKey(owner_id=None, category=DocumentCategory.INVOICE, page=0)
    cache.set(key, CachedPage(entries=[_entry("invoice/a.pdf")], has_more=True))

    cached = cache.get(key)

    assert cached is not None
    assert cached.has_more is True
    assert cached.entries[0].id == "id-invoice/a.pdf"
    assert fake_cache.ttls[key.cache_key()] == 60


def test_invalidate_scope_leaves_other_scopes(fake_cache):
    cache = CatalogPageCache(fake_cache)
    invoice = CatalogPageKey(owner_id=None, category=DocumentCategory.INVOICE, page=0)
    tax = CatalogPageKey(owner_id=None, category=DocumentCategory.TAX, page=0)
    cache.set(invoice, CachedPage(entries=[], has_more=False))
    cache.set(tax, CachedPage(entries=[], has_more=False))

    assert cache.invalidate_scope(CatalogScope(owner_id=None, category=DocumentCategory.INVOICE)) == 1

    assert cache.get(invoice) is None
    assert cache.get(tax) is not None


def test_purge_entry_only_rewrites_pages_holding_it(fake_cache):
    cache = CatalogPageCache(fake_cache)
    first = CatalogPageKey(owner_id=None, category=DocumentCategory.INVOICE, page=0)
    second = CatalogPageKey(owner_id=None, category=DocumentCategory.INVOICE, page=1)
    cache.set(first, CachedPage(entries=[_entry("invoice/a.pdf"), _entry("invoice/b.pdf")], has_more=True))
    cache.set(second, CachedPage(entries=[_entry("invoice/c.pdf")], has_more=False))

    assert cache.purge_entry("invoice/a.pdf") == 1

    assert [entry.storage_key for entry in cache.get(first).entries] == ["invoice/b.pdf"]
    assert cache.get(first).has_more is True
    assert [entry.storage_key for entry in cache.get(second).entries] == ["invoice/c.pdf"]


def test_cache_outage_degrades_to_miss():
    class _DownRedis:
        def __getattr__(self, _name):
            def _fail(*_args, **_kwargs):
                raise RedisConnectionError("redis down")

            return _fail

    cache = CatalogPageCache(_DownRedis())
    key = CatalogPageKey(owner_id="abc", category=DocumentCategory.TAX, page=0)

    cache.set(key, CachedPage(entries=[], has_more=False))
    assert cache.get(key) is None
    assert cache.invalidate_scope(key.scope) == 0
    assert cache.purge_entry("tax/x.pdf") == 0


def test_corrupt_page_is_treated_as_miss(fake_cache):
    cache = CatalogPageCache(fake_cache)
    key = CatalogPageKey(owner_id=None, category=DocumentCategory.OTHER, page=0)
    fake_cache.values[key.cache_key()] = "{not json"

    assert cache.get(key) is None
