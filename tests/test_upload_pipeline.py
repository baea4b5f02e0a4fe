from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.catalog.errors import ProvisioningFailure
from core.catalog.types import IncomingFile, UploadOutcome
from core.catalog.upload import UploadPipeline
from schemas.imports import DocumentCategory

MOMENT = datetime(2024, 3, 5, 14, 7, 9, 123000, tzinfo=timezone.utc)


async def _no_sleep(_seconds: float) -> None:
    return None


def _pipeline(manager, **kwargs) -> UploadPipeline:
    return UploadPipeline(
        store=manager.store,
        bucket=manager.bucket,
        provisioner=manager.provisioner,
        resolver=manager.resolver,
        catalog=manager.catalog,
        sleep=_no_sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_one_failing_file_does_not_abort_the_batch(catalog_manager, store, fake_db):
    store.fail_put_names = {"second"}
    files = [
        IncomingFile(display_name="first.pdf", content=b"1"),
        IncomingFile(display_name="second.pdf", content=b"2"),
        IncomingFile(display_name="third.pdf", content=b"3"),
    ]

    batch = await catalog_manager.uploads.upload(files, None, DocumentCategory.INVOICE)

    assert batch.outcome == UploadOutcome.PARTIAL
    assert batch.success_count == 2
    assert batch.failure_count == 1
    assert batch.success_count + batch.failure_count == len(files)
    assert [item.display_name for item in batch.results] == ["first.pdf", "second.pdf", "third.pdf"]
    assert batch.results[1].error

    listing = await catalog_manager.catalog.list_page(None, DocumentCategory.INVOICE)
    assert sorted(entry.display_name for entry in listing.entries) == ["first.pdf", "third.pdf"]
    assert len(batch.delivery_files()) == 2


@pytest.mark.asyncio
async def test_write_failure_is_retried_before_giving_up(catalog_manager, store):
    store.fail_put_names = {"broken"}

    batch = await catalog_manager.uploads.upload(
        [IncomingFile(display_name="broken.pdf", content=b"x")], None, DocumentCategory.OTHER
    )

    assert batch.outcome == UploadOutcome.FAILED
    assert sum(1 for key in store.put_calls if "broken" in key) == 3


@pytest.mark.asyncio
async def test_display_name_is_kept_while_key_is_ascii(catalog_manager, fake_db):
    batch = await catalog_manager.uploads.upload(
        [IncomingFile(display_name="fatura é.pdf", content=b"pdf")], "abc", DocumentCategory.INVOICE
    )

    result = batch.results[0]
    assert result.success is True
    assert result.display_name == "fatura é.pdf"
    assert result.storage_key.isascii()
    assert result.storage_key.startswith("client_abc/invoice/")
    assert fake_db.documents.rows[0]["display_name"] == "fatura é.pdf"
    assert fake_db.documents.rows[0]["owner_id"] == "abc"


@pytest.mark.asyncio
async def test_index_failure_keeps_upload_successful(catalog_manager, fake_db):
    pipeline = _pipeline(catalog_manager, clock=lambda: MOMENT)
    key = "invoice/2024-03-05T14-07-09-123Z_nota.pdf"
    fake_db.documents.fail_inserts_for = {key}

    batch = await pipeline.upload([IncomingFile(display_name="nota.pdf", content=b"n")], None, DocumentCategory.INVOICE)

    assert batch.results[0].success is True
    assert batch.results[0].indexed is False
    assert batch.results[0].storage_key == key

    fake_db.documents.fail_inserts_for = set()
    report = await catalog_manager.catalog.reconcile(None, DocumentCategory.INVOICE)
    assert report.backfilled == [key]


@pytest.mark.asyncio
async def test_broken_bucket_fails_the_whole_batch(catalog_manager, store):
    store.public_urls_enabled = False

    with pytest.raises(ProvisioningFailure):
        await catalog_manager.uploads.upload(
            [IncomingFile(display_name="a.pdf", content=b"a")], None, DocumentCategory.INVOICE
        )

    assert not any(not key.startswith(".provision-probe/") for key in store.put_calls)


@pytest.mark.asyncio
async def test_empty_and_oversized_files_fail_individually(catalog_manager):
    pipeline = _pipeline(catalog_manager, max_file_bytes=4)
    files = [
        IncomingFile(display_name="empty.pdf", content=b""),
        IncomingFile(display_name="big.pdf", content=b"12345"),
        IncomingFile(display_name="ok.pdf", content=b"ok"),
    ]

    batch = await pipeline.upload(files, None, DocumentCategory.OTHER)

    assert [item.success for item in batch.results] == [False, False, True]
    assert batch.results[0].error == "File is empty"


@pytest.mark.asyncio
async def test_no_files_is_an_empty_batch(catalog_manager, store):
    batch = await catalog_manager.uploads.upload([], None, DocumentCategory.TAX)

    assert batch.outcome == UploadOutcome.EMPTY
    assert store.put_calls == []


@pytest.mark.asyncio
async def test_invalid_owner_id_is_rejected(catalog_manager):
    with pytest.raises(ValueError):
        await catalog_manager.uploads.upload(
            [IncomingFile(display_name="a.pdf", content=b"a")], "../etc", DocumentCategory.TAX
        )


@pytest.mark.asyncio
async def test_owner_upload_refreshes_the_global_listing(catalog_manager, fake_db):
    before = await catalog_manager.catalog.list_page(None, DocumentCategory.INVOICE)
    assert before.entries == []

    await catalog_manager.uploads.upload([IncomingFile(display_name="a.pdf", content=b"a")], "abc", DocumentCategory.INVOICE)

    after = await catalog_manager.catalog.list_page(None, DocumentCategory.INVOICE)
    assert [entry.display_name for entry in after.entries] == ["a.pdf"]
    assert after.entries[0].owner_id == "abc"


class _ReconcileBeforeResolve:
    """Resolver that lets a catalog reconcile run between the object write and the index insert."""

    def __init__(self, manager, owner_id: str) -> None:
        self._manager = manager
        self._owner_id = owner_id
        self.backfilled: list[str] = []

    async def resolve(self, bucket: str, storage_key: str) -> str:
        if not self.backfilled:
            report = await self._manager.catalog.reconcile(self._owner_id, DocumentCategory.INVOICE)
            self.backfilled = report.backfilled
        return await self._manager.resolver.resolve(bucket, storage_key)


@pytest.mark.asyncio
async def test_upload_metadata_wins_over_a_concurrent_backfill(catalog_manager, fake_db):
    resolver = _ReconcileBeforeResolve(catalog_manager, "abc")
    pipeline = UploadPipeline(
        store=catalog_manager.store,
        bucket=catalog_manager.bucket,
        provisioner=catalog_manager.provisioner,
        resolver=resolver,
        catalog=catalog_manager.catalog,
        sleep=_no_sleep,
    )

    batch = await pipeline.upload([IncomingFile(display_name="fatura é.pdf", content=b"pdf")], "abc", DocumentCategory.INVOICE)

    assert resolver.backfilled == [batch.results[0].storage_key]
    assert batch.results[0].indexed is True
    assert [row["display_name"] for row in fake_db.documents.rows] == ["fatura é.pdf"]
    assert fake_db.documents.rows[0]["owner_id"] == "abc"
    assert fake_db.documents.rows[0]["url"] == batch.results[0].url


@pytest.mark.asyncio
async def test_same_name_in_one_batch_keeps_both_files(catalog_manager, store, fake_db):
    pipeline = _pipeline(catalog_manager, clock=lambda: MOMENT)

    batch = await pipeline.upload(
        [IncomingFile(display_name="a.pdf", content=b"one"), IncomingFile(display_name="a.pdf", content=b"two")],
        None,
        DocumentCategory.INVOICE,
    )

    assert batch.success_count == 2
    assert [item.storage_key for item in batch.results] == [
        "invoice/2024-03-05T14-07-09-123Z_a.pdf",
        "invoice/2024-03-05T14-07-09-123Z_a_1.pdf",
    ]
    stored = store.containers["documents"]
    assert stored["invoice/2024-03-05T14-07-09-123Z_a.pdf"][0] == b"one"
    assert stored["invoice/2024-03-05T14-07-09-123Z_a_1.pdf"][0] == b"two"
    assert sorted(row["display_name"] for row in fake_db.documents.rows) == ["a.pdf", "a.pdf"]
