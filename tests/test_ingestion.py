"""Tests for document ingestion, deletion and reconciliation."""

from pathlib import Path

import pytest
from langchain_core.documents import Document as Chunk

from api.dependencies import ServiceContainer
from doc_chat.exception.custom_exception import (
    NotFoundError,
    StoreWriteError,
    UnsupportedFormatError,
)

PAGES = [
    "Quarterly report. Revenue grew by twelve percent in the third quarter.",
    "Outlook. The board expects stable margins for the next fiscal year.",
]


def _uploads(services: ServiceContainer) -> list:
    return sorted(p.name for p in Path(services.ingestor.upload_dir).iterdir())


@pytest.mark.asyncio
async def test_ingest_creates_record_and_collection(db_session, services, pdf_factory):
    result = await services.ingestor.ingest(
        db_session, pdf_factory(PAGES), "Report Q3.pdf", content_type="application/pdf"
    )

    assert result.chunk_count >= 1
    assert result.collection_name.startswith("report_q3_")
    assert services.chunk_store.exists(result.collection_name)

    doc = await services.document_repo.require_document(db_session, result.document_id)
    assert doc.original_name == "Report Q3.pdf"
    assert doc.collection_name == result.collection_name
    assert doc.chunk_count == result.chunk_count
    assert doc.filename.endswith("-report_q3.pdf")
    assert Path(doc.file_path).exists()

    chunks = services.retriever.retrieve(result.collection_name, "revenue growth", k=10)
    assert any("twelve percent" in c for c in chunks)


@pytest.mark.asyncio
async def test_small_chunks_overlap_and_cover_the_text(db_session, services, pdf_factory):
    services.ingestor.chunk_size = 40
    services.ingestor.chunk_overlap = 10

    result = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")

    assert result.chunk_count > len(PAGES)
    chunks = services.retriever.retrieve(result.collection_name, "board", k=result.chunk_count)
    assert all(len(c) <= 40 for c in chunks)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,filename,content_type",
    [
        (b"just some text", "notes.txt", "text/plain"),
        (b"just some text", "notes.pdf", "application/pdf"),
        (b"%PDF-1.4 fake", "notes.pdf", "text/plain"),
        (b"", "empty.pdf", "application/pdf"),
    ],
)
async def test_non_pdf_is_rejected_without_writes(
    db_session, services, payload, filename, content_type
):
    with pytest.raises(UnsupportedFormatError):
        await services.ingestor.ingest(db_session, payload, filename, content_type=content_type)

    assert services.chunk_store.list_collections() == []
    assert await services.document_repo.list_documents(db_session) == []
    assert _uploads(services) == []


@pytest.mark.asyncio
async def test_unreadable_pdf_leaves_nothing_behind(db_session, services):
    with pytest.raises(UnsupportedFormatError):
        await services.ingestor.ingest(db_session, b"%PDF-1.7\nnot really a pdf", "broken.pdf")

    assert services.chunk_store.list_collections() == []
    assert _uploads(services) == []


@pytest.mark.asyncio
async def test_same_filename_twice_gets_two_collections(db_session, services, pdf_factory):
    first = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")
    second = await services.ingestor.ingest(db_session, pdf_factory(["Other content."]), "report.pdf")

    assert first.document_id != second.document_id
    assert first.collection_name != second.collection_name
    assert services.chunk_store.list_collections() == sorted(
        [first.collection_name, second.collection_name]
    )
    assert services.retriever.retrieve(second.collection_name, "content", k=10) == ["Other content."]


@pytest.mark.asyncio
async def test_failed_record_write_removes_the_collection(
    db_session, services, pdf_factory, monkeypatch
):
    async def failing_create(*args, **kwargs):
        raise StoreWriteError("Failed to save document record", RuntimeError("disk full"))

    monkeypatch.setattr(services.ingestor.documents, "create_document", failing_create)

    with pytest.raises(StoreWriteError):
        await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")

    assert services.chunk_store.list_collections() == []
    assert _uploads(services) == []


@pytest.mark.asyncio
async def test_delete_document_removes_record_and_collection(db_session, services, pdf_factory):
    result = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")
    s = await services.chat_repo.create_session(db_session, result.document_id)
    services.retriever.retrieve(result.collection_name, "revenue", k=1)

    await services.ingestor.delete_document(db_session, result.document_id)

    assert not services.chunk_store.exists(result.collection_name)
    assert await services.document_repo.get_document(db_session, result.document_id) is None
    # sessions outlive their document
    assert (await services.chat_repo.get_session(db_session, s.id)).document_id == result.document_id


@pytest.mark.asyncio
async def test_delete_unknown_document(db_session, services):
    with pytest.raises(NotFoundError):
        await services.ingestor.delete_document(db_session, "missing")


@pytest.mark.asyncio
async def test_reconcile_reports_and_cleans_orphans(db_session, services, pdf_factory):
    kept = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")
    services.chunk_store.create_collection("orphan_1", [Chunk(page_content="left behind")])

    report = await services.ingestor.reconcile(db_session)

    assert report.orphaned_collections == ["orphan_1"]
    assert report.dangling_documents == []
    assert report.removed_collections == []
    assert services.chunk_store.exists("orphan_1")

    report = await services.ingestor.reconcile(db_session, cleanup=True)

    assert report.removed_collections == ["orphan_1"]
    assert services.chunk_store.list_collections() == [kept.collection_name]


@pytest.mark.asyncio
async def test_reconcile_reports_dangling_records(db_session, services, pdf_factory):
    result = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")
    services.chunk_store.delete_collection(result.collection_name)

    report = await services.ingestor.reconcile(db_session, cleanup=True)

    assert report.dangling_documents == [result.document_id]
    assert report.orphaned_collections == []
    # records are never removed by reconcile
    assert await services.document_repo.get_document(db_session, result.document_id) is not None


@pytest.mark.asyncio
async def test_reconcile_keeps_collection_of_running_ingest(
    database, db_session, services, pdf_factory, monkeypatch
):
    documents = services.ingestor.documents
    real_create = documents.create_document
    reports = []

    async def create_after_reconcile(db, **kwargs):
        # another request reconciles between the chunk write and the record write
        async with database.session() as other:
            reports.append(await services.ingestor.reconcile(other, cleanup=True))
        return await real_create(db, **kwargs)

    monkeypatch.setattr(documents, "create_document", create_after_reconcile)

    result = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")

    assert reports[0].orphaned_collections == []
    assert reports[0].removed_collections == []
    assert services.chunk_store.exists(result.collection_name)
    assert services.retriever.retrieve(result.collection_name, "revenue", k=1)


@pytest.mark.asyncio
async def test_reconcile_skips_recent_collections(db_session, services):
    services.ingestor.reconcile_min_age = 3600
    services.chunk_store.create_collection("fresh_1", [Chunk(page_content="just written")])

    report = await services.ingestor.reconcile(db_session, cleanup=True)

    assert report.orphaned_collections == []
    assert report.removed_collections == []
    assert services.chunk_store.exists("fresh_1")


@pytest.mark.asyncio
async def test_failed_record_delete_leaves_dangling_record(
    db_session, services, pdf_factory, monkeypatch
):
    result = await services.ingestor.ingest(db_session, pdf_factory(PAGES), "report.pdf")

    async def failing_delete(*args, **kwargs):
        raise StoreWriteError("Failed to delete document record", RuntimeError("db down"))

    monkeypatch.setattr(services.ingestor.documents, "delete_document", failing_delete)

    with pytest.raises(StoreWriteError):
        await services.ingestor.delete_document(db_session, result.document_id)

    assert not services.chunk_store.exists(result.collection_name)
    assert await services.document_repo.get_document(db_session, result.document_id) is not None

    report = await services.ingestor.reconcile(db_session)
    assert report.dangling_documents == [result.document_id]
