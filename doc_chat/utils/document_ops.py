from __future__ import annotations

from pathlib import Path
from typing import List

from langchain_community.document_loaders import PyMuPDFLoader
from langchain_core.documents import Document

from doc_chat.exception.custom_exception import UnsupportedFormatError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.thread_pool import run_sync


def _load_pdf(path: Path) -> List[Document]:
    loader = PyMuPDFLoader(str(path))
    return loader.load()


async def load_pdf_documents(path: Path, document_id: str | None = None) -> List[Document]:
    """
    Extract one Document per PDF page.

    Pages without text are dropped. Each Document.metadata carries 'source',
    'page' (0-based, as the loader reports it) and, when given, 'document_id'.
    Raises UnsupportedFormatError if the file cannot be parsed or has no
    extractable text.
    """
    try:
        pages = await run_sync(_load_pdf, path)
    except Exception as e:
        log.error("PDF load failed | file=%s | error=%s", str(path), str(e))
        raise UnsupportedFormatError("Could not read PDF", e) from e

    docs: List[Document] = []
    for page in pages:
        if not page.page_content or not page.page_content.strip():
            continue
        page.metadata = dict(page.metadata or {})
        page.metadata["source"] = str(path)
        if document_id is not None:
            page.metadata["document_id"] = document_id
        docs.append(page)

    log.info("PDF loaded | file=%s | pages=%d | text_pages=%d", str(path), len(pages), len(docs))

    if not docs:
        raise UnsupportedFormatError("PDF contains no extractable text")

    return docs
