"""Shared pytest fixtures.

Everything runs offline: SQLite through aiosqlite stands in for Postgres,
embeddings are a deterministic hashing bag-of-words, and the generator is a
LangChain runnable returning canned text.
"""

import hashlib
import math
import re
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Callable, List

import fitz
import pytest
import pytest_asyncio
from langchain_core.embeddings import Embeddings
from langchain_core.runnables import RunnableLambda
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ServiceContainer, build_services
from db.chat_repository import ChatRepository
from db.database import Database
from db.document_repository import DocumentRepository
from doc_chat.src.chunk_store.faiss_store import ChunkStore
from doc_chat.src.document_chat.retrieval import Retriever

EMBEDDING_DIM = 256


class HashingEmbeddings(Embeddings):
    """Bag-of-words vectors with hashed token buckets, L2-normalised."""

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * EMBEDDING_DIM
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest()[:8], 16) % EMBEDDING_DIM
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._embed(text)


class RecordingGenerator:
    """Stands in for the chat model: records each prompt, returns a fixed answer."""

    def __init__(self, answer: str = "The answer is in the document."):
        self.answer = answer
        self.prompts: List[str] = []

    def __call__(self, prompt_value) -> str:
        self.prompts.append(prompt_value.to_string())
        return self.answer

    def as_runnable(self) -> RunnableLambda:
        return RunnableLambda(self)


def make_pdf(pages: List[str]) -> bytes:
    """Build a PDF with one text page per entry."""
    pdf = fitz.open()
    for text in pages:
        page = pdf.new_page()
        page.insert_text((72, 72), text, fontsize=11)
    data = pdf.tobytes()
    pdf.close()
    return data


def make_config(tmp_path: Path) -> dict:
    return {
        "retriever": {"top_k": 4, "index_cache_size": 8, "index_cache_ttl": 60},
        "chat": {"history_window": 6},
        "ingestion": {"chunk_size": 1000, "chunk_overlap": 200},
        "reconcile": {"min_age_seconds": 0},
        "timeouts": {"retrieval_seconds": 5, "generation_seconds": 5},
        "paths": {
            "upload_dir": str(tmp_path / "uploads"),
            "faiss_dir": str(tmp_path / "faiss_index"),
        },
    }


@pytest.fixture
def embeddings() -> HashingEmbeddings:
    return HashingEmbeddings()


@pytest.fixture
def pdf_factory() -> Callable[[List[str]], bytes]:
    return make_pdf


@pytest.fixture
def config(tmp_path: Path) -> dict:
    return make_config(tmp_path)


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """File-backed SQLite so several connections share one database."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    await db.init_db()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def chunk_store(tmp_path: Path, embeddings: HashingEmbeddings) -> ChunkStore:
    return ChunkStore(tmp_path / "faiss_index", embeddings)


@pytest.fixture
def retriever(chunk_store: ChunkStore, config: dict) -> Retriever:
    return Retriever(chunk_store, config["retriever"])


@pytest.fixture
def chat_repo() -> ChatRepository:
    return ChatRepository()


@pytest.fixture
def document_repo() -> DocumentRepository:
    return DocumentRepository()


@pytest.fixture
def generator() -> RecordingGenerator:
    return RecordingGenerator()


@pytest.fixture
def services(
    config: dict,
    database: Database,
    embeddings: HashingEmbeddings,
    generator: RecordingGenerator,
) -> ServiceContainer:
    return build_services(
        config=config,
        database=database,
        embeddings=embeddings,
        llm=generator.as_runnable(),
    )
