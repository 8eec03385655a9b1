from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from doc_chat.exception.custom_exception import NotFoundError, StoreWriteError
from doc_chat.logger import GLOBAL_LOGGER as log

from .models import Document, utc_now


class DocumentRepository:
    """
    Repository for Document metadata records.
    """

    async def create_document(
        self,
        db: AsyncSession,
        *,
        document_id: str,
        filename: str,
        original_name: str,
        file_path: str,
        collection_name: str,
        chunk_count: int,
    ) -> Document:
        doc = Document(
            id=document_id,
            filename=filename,
            original_name=original_name,
            file_path=file_path,
            collection_name=collection_name,
            chunk_count=chunk_count,
            uploaded_at=utc_now(),
        )
        db.add(doc)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error(
                "Failed to save document record | collection=%s | error=%s",
                collection_name,
                str(e),
            )
            raise StoreWriteError("Failed to save document record", e) from e

        log.info(
            "Document record saved | document_id=%s | collection=%s | chunks=%d",
            doc.id,
            collection_name,
            chunk_count,
        )
        return doc

    async def get_document(self, db: AsyncSession, document_id: str) -> Optional[Document]:
        return await db.get(Document, document_id)

    async def require_document(self, db: AsyncSession, document_id: str) -> Document:
        doc = await self.get_document(db, document_id)
        if doc is None:
            raise NotFoundError("Document not found")
        return doc

    async def list_documents(self, db: AsyncSession) -> List[Document]:
        q = await db.execute(select(Document).order_by(Document.uploaded_at.desc()))
        docs = list(q.scalars().all())
        log.info("Listed documents | count=%d", len(docs))
        return docs

    async def delete_document(self, db: AsyncSession, document_id: str) -> None:
        try:
            result = await db.execute(delete(Document).where(Document.id == document_id))
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError("Document not found")
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("Failed to delete document record | document_id=%s | error=%s", document_id, str(e))
            raise StoreWriteError("Failed to delete document record", e) from e

        log.info("Document record deleted | document_id=%s", document_id)
