from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter
from sqlalchemy.ext.asyncio import AsyncSession

from db.document_repository import DocumentRepository
from doc_chat.exception.custom_exception import (
    NotFoundError,
    StoreWriteError,
    UnsupportedFormatError,
)
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.src.chunk_store.faiss_store import ChunkStore
from doc_chat.src.document_chat.retrieval import Retriever
from doc_chat.utils.config_loader import resolve_path
from doc_chat.utils.document_ops import load_pdf_documents
from doc_chat.utils.file_io import save_uploaded_pdf, validate_pdf_upload
from doc_chat.utils.identifiers import generate_collection_name, generate_document_id
from doc_chat.utils.thread_pool import run_sync


@dataclass(frozen=True)
class IngestionResult:
    document_id: str
    chunk_count: int
    collection_name: str


@dataclass
class ReconciliationReport:
    # collections on disk without a document record
    orphaned_collections: List[str] = field(default_factory=list)
    # document records whose collection is gone
    dangling_documents: List[str] = field(default_factory=list)
    removed_collections: List[str] = field(default_factory=list)


class DataIngestor:
    """
    Turns an uploaded PDF into a searchable document.

    - validate the upload and save it to the upload dir
    - extract page text
    - split into overlapping chunks
    - write the chunks to a new chunk store collection
    - save the Document record

    The chunk store and the session store are not written in one
    transaction. Writes go secondary (chunks) first, primary (record)
    second, and a failed record write removes the fresh collection again.
    Deletion runs in the same order. Anything left inconsistent, e.g. by a
    crash between the two steps, is reported and optionally cleaned up by
    `reconcile`.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        retriever: Optional[Retriever] = None,
        documents: Optional[DocumentRepository] = None,
        config: Optional[dict] = None,
        upload_dir: Optional[Path] = None,
    ):
        config = config or {}
        self.chunk_store = chunk_store
        self.retriever = retriever
        self.documents = documents or DocumentRepository()

        ingestion_cfg = config.get("ingestion", {})
        self.chunk_size = int(ingestion_cfg.get("chunk_size", 1000))
        self.chunk_overlap = int(ingestion_cfg.get("chunk_overlap", 200))

        # collections younger than this are never treated as orphaned
        self.reconcile_min_age = float(config.get("reconcile", {}).get("min_age_seconds", 60))
        # collections written by a running ingest whose record is not committed yet
        self._in_flight: Set[str] = set()

        if upload_dir is None:
            upload_dir = resolve_path(config.get("paths", {}).get("upload_dir", "uploads"))
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        log.info(
            "DataIngestor initialized | chunk_size=%d | chunk_overlap=%d | upload_dir=%s",
            self.chunk_size,
            self.chunk_overlap,
            str(self.upload_dir),
        )

    def _split_documents(self, docs: List[Document]) -> List[Document]:
        text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )
        chunks = text_splitter.split_documents(docs)
        log.info("Split complete | pages=%d | chunks=%d", len(docs), len(chunks))
        return chunks

    async def ingest(
        self,
        db: AsyncSession,
        file_bytes: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> IngestionResult:
        log.info("Starting ingestion | filename=%s | bytes=%d", filename, len(file_bytes or b""))

        # Step 1: reject anything that is not a PDF
        validate_pdf_upload(file_bytes, filename, content_type)

        document_id = generate_document_id()
        collection_name = generate_collection_name(filename)

        # Step 2: persist the upload and extract page text
        file_path = save_uploaded_pdf(file_bytes, filename, self.upload_dir)
        self._in_flight.add(collection_name)
        try:
            try:
                pages = await load_pdf_documents(file_path, document_id=document_id)

                # Step 3: chunking
                chunks = self._split_documents(pages)
                if not chunks:
                    raise UnsupportedFormatError("PDF contains no extractable text")

                # Step 4: write chunks to a fresh collection
                chunk_count = await run_sync(
                    self.chunk_store.create_collection, collection_name, chunks
                )
            except Exception:
                file_path.unlink(missing_ok=True)
                raise

            # Step 5: save the document record, undo step 4 if that fails
            try:
                await self.documents.create_document(
                    db,
                    document_id=document_id,
                    filename=file_path.name,
                    original_name=filename,
                    file_path=str(file_path),
                    collection_name=collection_name,
                    chunk_count=chunk_count,
                )
            except StoreWriteError:
                await self._compensate_collection(collection_name)
                file_path.unlink(missing_ok=True)
                raise
        finally:
            self._in_flight.discard(collection_name)

        log.info(
            "Ingestion complete | document_id=%s | collection=%s | chunks=%d",
            document_id,
            collection_name,
            chunk_count,
        )
        return IngestionResult(
            document_id=document_id,
            chunk_count=chunk_count,
            collection_name=collection_name,
        )

    async def _compensate_collection(self, collection_name: str) -> None:
        try:
            await run_sync(self.chunk_store.delete_collection, collection_name)
            log.warning("Rolled back chunk store collection | collection=%s", collection_name)
        except Exception as e:
            log.error(
                "Rollback failed, collection is orphaned | collection=%s | error=%s",
                collection_name,
                str(e),
            )

    async def delete_document(self, db: AsyncSession, document_id: str) -> None:
        """
        Remove a document: its chunk store collection first, then its record.
        Chat sessions that point at the document are left alone.
        """
        document = await self.documents.require_document(db, document_id)
        collection_name = document.collection_name

        await run_sync(self.chunk_store.delete_collection, collection_name)
        if self.retriever is not None:
            self.retriever.evict(collection_name)

        try:
            await self.documents.delete_document(db, document_id)
        except StoreWriteError:
            log.error(
                "Document record is dangling, its collection is already removed "
                "| document_id=%s | collection=%s",
                document_id,
                collection_name,
            )
            raise

        log.info("Document deleted | document_id=%s | collection=%s", document_id, collection_name)

    async def reconcile(self, db: AsyncSession, cleanup: bool = False) -> ReconciliationReport:
        """
        Compare chunk store collections against document records.

        With cleanup=True orphaned collections are deleted. Dangling records
        are only reported. Collections of an ingest still in progress, and
        any collection younger than `reconcile.min_age_seconds`, are skipped:
        their record may simply not be committed yet.
        """
        # collections first, records last: an ingest that is no longer in
        # flight here has already committed its record
        collections = set(await run_sync(self.chunk_store.list_collections))
        in_flight = set(self._in_flight)
        documents = await self.documents.list_documents(db)
        known = {d.collection_name for d in documents}

        orphaned = []
        for name in sorted(collections - known):
            if name in in_flight:
                log.info("Skipping collection of running ingest | collection=%s", name)
                continue
            try:
                age = await run_sync(self.chunk_store.collection_age, name)
            except NotFoundError:
                # removed since it was listed
                continue
            if age < self.reconcile_min_age:
                log.info("Skipping recent collection | collection=%s | age=%.1fs", name, age)
                continue
            orphaned.append(name)

        report = ReconciliationReport(
            orphaned_collections=orphaned,
            dangling_documents=sorted(d.id for d in documents if d.collection_name not in collections),
        )

        if cleanup:
            for name in report.orphaned_collections:
                if await run_sync(self.chunk_store.delete_collection, name):
                    report.removed_collections.append(name)
                if self.retriever is not None:
                    self.retriever.evict(name)

        log.info(
            "Reconciliation done | orphaned=%d | dangling=%d | removed=%d",
            len(report.orphaned_collections),
            len(report.dangling_documents),
            len(report.removed_collections),
        )
        return report
