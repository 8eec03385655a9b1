from dataclasses import dataclass, field
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.chat_repository import ChatRepository
from db.database import Database
from db.document_repository import DocumentRepository
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.src.chunk_store.faiss_store import ChunkStore
from doc_chat.src.document_chat.pipeline import AnswerPipeline
from doc_chat.src.document_chat.retrieval import Retriever
from doc_chat.src.document_ingestion.data_ingestion import DataIngestor
from doc_chat.utils.config_loader import load_config, resolve_path
from doc_chat.utils.model_loader import ModelLoader


@dataclass
class ServiceContainer:
    """
    Every store handle and service the routers use. Built once per process
    and hung on app.state.
    """

    database: Database
    chunk_store: ChunkStore
    retriever: Retriever
    pipeline: AnswerPipeline
    ingestor: DataIngestor
    chat_repo: ChatRepository = field(default_factory=ChatRepository)
    document_repo: DocumentRepository = field(default_factory=DocumentRepository)
    config: dict = field(default_factory=dict)


def build_services(
    *,
    config: Optional[dict] = None,
    database: Optional[Database] = None,
    embeddings=None,
    llm=None,
) -> ServiceContainer:
    """
    Wire the services. Models come from ModelLoader unless given, which is
    how tests swap in offline embeddings and chat models.
    """
    config = config if config is not None else load_config()

    if embeddings is None or llm is None:
        model_loader = ModelLoader(config)
        embeddings = embeddings or model_loader.load_embeddings()
        llm = llm or model_loader.load_llm("rag")

    paths = config.get("paths", {})
    database = database or Database()
    document_repo = DocumentRepository()

    chunk_store = ChunkStore(resolve_path(paths.get("faiss_dir", "faiss_index")), embeddings)
    retriever = Retriever(chunk_store, config.get("retriever", {}))
    pipeline = AnswerPipeline(retriever, llm, documents=document_repo, config=config)
    ingestor = DataIngestor(
        chunk_store,
        retriever=retriever,
        documents=document_repo,
        config=config,
        upload_dir=resolve_path(paths.get("upload_dir", "uploads")),
    )

    log.info("Services built | database=%s", database.engine.url.render_as_string(hide_password=True))
    return ServiceContainer(
        database=database,
        chunk_store=chunk_store,
        retriever=retriever,
        pipeline=pipeline,
        ingestor=ingestor,
        chat_repo=ChatRepository(),
        document_repo=document_repo,
        config=config,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_db(
    services: ServiceContainer = Depends(get_services),
) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an AsyncSession per request.
    """
    async for db in services.database.get_db():
        yield db
