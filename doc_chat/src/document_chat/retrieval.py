import threading
from typing import List, Optional

from cachetools import TTLCache
from langchain_community.vectorstores import FAISS

from doc_chat.exception.custom_exception import RetrievalError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.src.chunk_store.faiss_store import ChunkStore


class Retriever:
    """
    Top-k nearest chunk lookup scoped to a single document's collection.

     - embeds the query with the same embedding function the collection was
       built with
     - runs a FAISS similarity search on that one collection only
     - returns chunk texts, closest first

    Chunks at exactly the same distance come back in whatever order FAISS
    reports them; that tie-break is not deterministic across index builds.

    Loaded indexes are kept in a TTL cache keyed by collection name.
    Collections are write-once. `evict` drops a cached index when its
    collection is deleted.
    """

    def __init__(self, chunk_store: ChunkStore, retriever_config: Optional[dict] = None):
        self.chunk_store = chunk_store
        self.retriever_config = retriever_config or {}

        self.default_k = int(self.retriever_config.get("top_k", 4))
        self._indexes: TTLCache = TTLCache(
            maxsize=int(self.retriever_config.get("index_cache_size", 64)),
            ttl=int(self.retriever_config.get("index_cache_ttl", 3600)),
        )
        # retrieve() runs on pool threads, TTLCache itself is not thread safe
        self._lock = threading.Lock()

        log.info("Retriever initialized | retriever_cfg=%s", self.retriever_config)

    def _get_index(self, collection_name: str) -> FAISS:
        with self._lock:
            vs = self._indexes.get(collection_name)
        if vs is not None:
            log.debug("Reusing cached FAISS index | collection=%s", collection_name)
            return vs

        vs = self.chunk_store.load_collection(collection_name)
        with self._lock:
            self._indexes[collection_name] = vs
        return vs

    def evict(self, collection_name: str) -> None:
        with self._lock:
            self._indexes.pop(collection_name, None)

    def retrieve(self, collection_name: str, query: str, k: Optional[int] = None) -> List[str]:
        """
        Retrieve up to k chunk texts from one collection.

        Args:
            collection_name: chunk store collection of the document
            query: user's question
            k: number of chunks, at least 1 (defaults to retriever.top_k)

        Returns:
            Chunk texts ordered by descending similarity, len <= k

        Raises:
            RetrievalError: bad k, missing collection, or embedding/search failure
        """
        k = self.default_k if k is None else k
        if k < 1:
            raise RetrievalError(f"k must be >= 1, got {k}")

        try:
            vs = self._get_index(collection_name)
            docs_with_scores = vs.similarity_search_with_score(query, k=k)
        except Exception as e:
            log.error("Retrieval failed | collection=%s | error=%s", collection_name, str(e))
            raise RetrievalError(f"Retrieval failed for collection '{collection_name}'", e) from e

        # FAISS scores are L2 distances: smaller means more similar.
        # sorted() is stable, so equal distances keep index order.
        ranked = sorted(docs_with_scores, key=lambda pair: float(pair[1]))

        log.info(
            "Retrieved chunks | collection=%s | k=%d | num_docs=%d | scores=%s",
            collection_name,
            k,
            len(ranked),
            [round(float(s), 4) for _, s in ranked],
        )
        return [doc.page_content for doc, _ in ranked[:k]]
