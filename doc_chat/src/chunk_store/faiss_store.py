from __future__ import annotations

import re
import shutil
import time
from pathlib import Path
from typing import List

from langchain_community.vectorstores import FAISS
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from doc_chat.exception.custom_exception import NotFoundError, StoreWriteError
from doc_chat.logger import GLOBAL_LOGGER as log

_COLLECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class ChunkStore:
    """
    Local FAISS chunk store with one index directory per collection:

        <base_dir>/<collection_name>/index.faiss
        <base_dir>/<collection_name>/index.pkl

    A collection is written once, when its document is ingested, and only
    read afterwards. Similarity scores are FAISS L2 distances (lower is closer).
    """

    def __init__(self, base_dir: Path, embeddings: Embeddings):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.emb = embeddings

    def _collection_dir(self, collection_name: str) -> Path:
        if not collection_name or not _COLLECTION_NAME_RE.match(collection_name):
            raise ValueError(f"Invalid collection name: {collection_name!r}")
        return self.base_dir / collection_name

    def exists(self, collection_name: str) -> bool:
        """True if both FAISS files of the collection are on disk."""
        index_dir = self._collection_dir(collection_name)
        return (index_dir / "index.faiss").exists() and (index_dir / "index.pkl").exists()

    def create_collection(self, collection_name: str, docs: List[Document]) -> int:
        """
        Embed `docs` and write them as a new collection. Returns the chunk count.
        """
        if not docs:
            raise ValueError("Cannot create a collection without chunks")

        index_dir = self._collection_dir(collection_name)
        if self.exists(collection_name):
            raise StoreWriteError(f"Collection already exists: {collection_name}")

        ids = [f"{collection_name}__{idx}" for idx in range(len(docs))]
        for idx, doc in enumerate(docs):
            doc.metadata = dict(doc.metadata or {})
            doc.metadata["chunk_index"] = idx
            doc.metadata["id"] = ids[idx]

        try:
            vs = FAISS.from_documents(docs, embedding=self.emb, ids=ids)
            index_dir.mkdir(parents=True, exist_ok=True)
            vs.save_local(str(index_dir))
        except Exception as e:
            # do not leave a half written directory behind
            shutil.rmtree(index_dir, ignore_errors=True)
            log.error(
                "Chunk store write failed | collection=%s | error=%s", collection_name, str(e)
            )
            raise StoreWriteError("Failed to write chunk store collection", e) from e

        log.info(
            "Chunk store collection created | collection=%s | chunks=%d",
            collection_name,
            len(docs),
        )
        return len(docs)

    def load_collection(self, collection_name: str) -> FAISS:
        if not self.exists(collection_name):
            raise NotFoundError(f"Collection not found: {collection_name}")

        log.info("Loading FAISS index | collection=%s", collection_name)
        # the pickle is written by create_collection, never by a client
        return FAISS.load_local(
            str(self._collection_dir(collection_name)),
            self.emb,
            allow_dangerous_deserialization=True,
        )

    def delete_collection(self, collection_name: str) -> bool:
        """Remove a collection directory. Returns False if it was not there."""
        index_dir = self._collection_dir(collection_name)
        if not index_dir.exists():
            log.warning("Collection to delete not found | collection=%s", collection_name)
            return False

        try:
            shutil.rmtree(index_dir)
        except OSError as e:
            log.error(
                "Failed to remove collection | collection=%s | error=%s", collection_name, str(e)
            )
            raise StoreWriteError("Failed to delete chunk store collection", e) from e

        log.info("Chunk store collection removed | collection=%s", collection_name)
        return True

    def collection_age(self, collection_name: str) -> float:
        """Seconds since the collection's index was written."""
        index_file = self._collection_dir(collection_name) / "index.faiss"
        try:
            return max(0.0, time.time() - index_file.stat().st_mtime)
        except FileNotFoundError as e:
            raise NotFoundError(f"Collection not found: {collection_name}", e) from e

    def list_collections(self) -> List[str]:
        return sorted(
            p.name
            for p in self.base_dir.iterdir()
            if p.is_dir() and _COLLECTION_NAME_RE.match(p.name) and self.exists(p.name)
        )
