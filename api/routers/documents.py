from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ServiceContainer, get_db, get_services
from db.models import Document
from doc_chat.logger import GLOBAL_LOGGER as log

router = APIRouter()


def _document_info(doc: Document) -> dict:
    return {
        "id": doc.id,
        "filename": doc.filename,
        "originalName": doc.original_name,
        "collectionName": doc.collection_name,
        "chunkCount": doc.chunk_count,
        "uploadedAt": doc.uploaded_at,
    }


@router.post("/documents")
async def upload_document(
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """
    Upload endpoint:
      - validates the PDF
      - indexes its chunks into a new chunk store collection
      - records the document
    """
    if file is None:
        raise HTTPException(400, "No file provided")

    file_bytes = await file.read()
    result = await services.ingestor.ingest(
        db,
        file_bytes,
        file.filename or "file",
        content_type=file.content_type,
    )

    log.info(
        "Upload completed | document_id=%s | chunks=%d",
        result.document_id,
        result.chunk_count,
    )
    return {
        "success": True,
        "documentId": result.document_id,
        "chunkCount": result.chunk_count,
        "collectionName": result.collection_name,
    }


@router.get("/documents")
async def list_documents(
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    documents = await services.document_repo.list_documents(db)
    return {"success": True, "documents": [_document_info(d) for d in documents]}


@router.post("/documents/reconcile")
async def reconcile_documents(
    cleanup: bool = False,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """
    Report (and with ?cleanup=true remove) chunk store collections that have
    no document record, plus records whose collection is missing.
    """
    report = await services.ingestor.reconcile(db, cleanup=cleanup)
    return {
        "success": True,
        "orphanedCollections": report.orphaned_collections,
        "danglingDocuments": report.dangling_documents,
        "removedCollections": report.removed_collections,
    }


@router.get("/documents/{document_id}")
async def get_document(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    document = await services.document_repo.require_document(db, document_id)
    return {"success": True, "document": _document_info(document)}


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    await services.ingestor.delete_document(db, document_id)
    return {"success": True}
