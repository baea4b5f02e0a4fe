from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.catalog.errors import ProvisioningFailure
from core.catalog.types import BucketState
from repositories import document_repo
from schemas.document_schema import CatalogEntryCreate
from schemas.imports import DocumentCategory

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _seed_invoices(store, count: int) -> list[str]:
    keys = []
    for index in range(count):
        key = f"invoice/2024-01-0{index + 1}T00-00-00-000Z_doc{index}.pdf"
        store.seed("documents", key, created_at=BASE + timedelta(days=index))
        keys.append(key)
    return keys


@pytest.mark.asyncio
async def test_forced_refresh_backfills_and_paginates(catalog_manager, store, fake_db):
    keys = _seed_invoices(store, 5)
    catalog = catalog_manager.catalog

    first = await catalog.list_page(None, DocumentCategory.INVOICE, force_refresh=True)
    second = await catalog.list_page(None, DocumentCategory.INVOICE, page=1)

    assert first.page == 0
    assert first.has_more is True
    assert [entry.storage_key for entry in first.entries] == [keys[4], keys[3], keys[2]]
    assert second.has_more is False
    assert [entry.storage_key for entry in second.entries] == [keys[1], keys[0]]
    assert len(fake_db.documents.rows) == 5


@pytest.mark.asyncio
async def test_cached_page_is_served_until_refresh(catalog_manager, store, fake_db):
    _seed_invoices(store, 1)
    catalog = catalog_manager.catalog
    await catalog.list_page(None, DocumentCategory.INVOICE, force_refresh=True)

    await document_repo.insert_entry(
        CatalogEntryCreate(
            category=DocumentCategory.INVOICE,
            storage_key="invoice/late.pdf",
            display_name="late.pdf",
            url="https://cdn.example.com/documents/invoice/late.pdf",
            created_at=BASE + timedelta(days=30),
        )
    )

    cached = await catalog.list_page(None, DocumentCategory.INVOICE)
    assert "invoice/late.pdf" not in [entry.storage_key for entry in cached.entries]

    catalog.invalidate(None, DocumentCategory.INVOICE)
    fresh = await catalog.list_page(None, DocumentCategory.INVOICE)
    assert fresh.entries[0].storage_key == "invoice/late.pdf"


@pytest.mark.asyncio
async def test_reconcile_twice_creates_no_duplicates(catalog_manager, store, fake_db):
    _seed_invoices(store, 3)
    catalog = catalog_manager.catalog

    first = await catalog.reconcile(None, DocumentCategory.INVOICE)
    second = await catalog.reconcile(None, DocumentCategory.INVOICE)

    assert len(first.backfilled) == 3
    assert second.backfilled == []
    assert second.already_indexed == 3
    assert len(fake_db.documents.rows) == 3


@pytest.mark.asyncio
async def test_backfilled_owner_is_inferred_from_key(catalog_manager, store, fake_db):
    store.seed("documents", "client_abc/tax/2024-01-01T00-00-00-000Z_irpf.pdf")
    store.seed("documents", "client_xyz/invoice/2024-01-01T00-00-00-000Z_nota.pdf")
    catalog = catalog_manager.catalog

    global_page = await catalog.list_page(None, DocumentCategory.TAX, force_refresh=True)
    owner_page = await catalog.list_page("abc", DocumentCategory.TAX)

    assert [entry.owner_id for entry in global_page.entries] == ["abc"]
    assert global_page.entries[0].display_name == "2024-01-01T00-00-00-000Z_irpf.pdf"
    assert [entry.storage_key for entry in owner_page.entries] == ["client_abc/tax/2024-01-01T00-00-00-000Z_irpf.pdf"]
    assert all(row["category"] == "tax" for row in fake_db.documents.rows)


@pytest.mark.asyncio
async def test_failed_backfill_insert_is_skipped(catalog_manager, store, fake_db):
    keys = _seed_invoices(store, 3)
    fake_db.documents.fail_inserts_for = {keys[1]}

    report = await catalog_manager.catalog.reconcile(None, DocumentCategory.INVOICE)

    assert report.failed == [keys[1]]
    assert sorted(report.backfilled) == sorted([keys[0], keys[2]])


@pytest.mark.asyncio
async def test_scan_failure_marks_bucket_unknown(catalog_manager, store):
    await catalog_manager.provisioner.ensure_ready("documents")
    store.fail_list_objects = True

    report = await catalog_manager.catalog.reconcile(None, DocumentCategory.INVOICE)

    assert report.scanned == 0
    assert report.backfilled == []
    assert catalog_manager.provisioner.state("documents") == BucketState.UNKNOWN


@pytest.mark.asyncio
async def test_sweep_orphans_removes_rows_without_objects(catalog_manager, store, fake_db):
    keys = _seed_invoices(store, 1)
    catalog = catalog_manager.catalog
    await catalog.reconcile(None, DocumentCategory.INVOICE)
    await document_repo.insert_entry(
        CatalogEntryCreate(category=DocumentCategory.INVOICE, storage_key="invoice/gone.pdf", display_name="gone.pdf")
    )

    removed = await catalog.sweep_orphans(None, DocumentCategory.INVOICE)

    assert removed == ["invoice/gone.pdf"]
    assert [row["storage_key"] for row in fake_db.documents.rows] == keys


@pytest.mark.asyncio
async def test_forced_refresh_on_broken_bucket_raises(catalog_manager, store):
    store.public_urls_enabled = False

    with pytest.raises(ProvisioningFailure):
        await catalog_manager.catalog.list_page(None, DocumentCategory.INVOICE, force_refresh=True)

    assert catalog_manager.provisioner.state("documents") == BucketState.BROKEN


@pytest.mark.asyncio
async def test_rows_without_url_are_resolved_on_listing(catalog_manager, store, fake_db):
    store.public.add("documents")
    await document_repo.insert_entry(
        CatalogEntryCreate(category=DocumentCategory.OTHER, storage_key="other/a.pdf", display_name="a.pdf")
    )

    page = await catalog_manager.catalog.list_page(None, DocumentCategory.OTHER)

    assert page.entries[0].url == "https://store.example.com/public/documents/other/a.pdf"
    assert fake_db.documents.rows[0]["url"] is None
