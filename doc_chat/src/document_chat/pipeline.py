import asyncio
from dataclasses import dataclass
from typing import Optional

from langchain_core.language_models import BaseLanguageModel
from langchain_core.output_parsers import StrOutputParser
from sqlalchemy.ext.asyncio import AsyncSession

from db.document_repository import DocumentRepository
from db.models import ChatSession
from doc_chat.exception.custom_exception import (
    AnswerPipelineError,
    DocumentChatException,
    MissingDocumentError,
)
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.prompts.prompt_library import PROMPT_REGISTRY
from doc_chat.src.document_chat.history import format_history
from doc_chat.src.document_chat.retrieval import Retriever
from doc_chat.utils.thread_pool import run_sync_with_timeout

CONTEXT_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class AnswerResult:
    response_text: str


class AnswerPipeline:
    """
    Answers one question about the document a chat session is bound to.

    Steps:
      1. resolve the session's document
      2. retrieve the top-k chunks from that document's collection only
      3. format the last few turns of the session as chat history
      4. fill the RAG prompt with context, history and question
      5. run the generator and return its text unchanged

    Nothing is written here. The caller persists the turn after a successful
    answer, so a failed call can simply be retried.
    """

    def __init__(
        self,
        retriever: Retriever,
        llm: BaseLanguageModel,
        documents: Optional[DocumentRepository] = None,
        config: Optional[dict] = None,
    ):
        config = config or {}
        self.retriever = retriever
        self.llm = llm
        self.documents = documents or DocumentRepository()

        self.top_k = int(config.get("retriever", {}).get("top_k", 4))
        self.history_window = int(config.get("chat", {}).get("history_window", 6))

        timeouts = config.get("timeouts", {})
        self.retrieval_timeout = timeouts.get("retrieval_seconds", 30)
        self.generation_timeout = timeouts.get("generation_seconds", 60)

        self.prompt = PROMPT_REGISTRY["rag"]
        self.chain = self.prompt | self.llm | StrOutputParser()

        log.info(
            "AnswerPipeline initialized | top_k=%d | history_window=%d | timeouts=%s/%s",
            self.top_k,
            self.history_window,
            self.retrieval_timeout,
            self.generation_timeout,
        )

    async def answer(self, db: AsyncSession, session: ChatSession, question: str) -> AnswerResult:
        try:
            document = await self.documents.get_document(db, session.document_id)
            if document is None:
                raise MissingDocumentError("Associated document not found")

            try:
                chunks = await run_sync_with_timeout(
                    self.retrieval_timeout,
                    self.retriever.retrieve,
                    document.collection_name,
                    question,
                    self.top_k,
                )
            except asyncio.TimeoutError as e:
                raise AnswerPipelineError(
                    f"Retrieval timed out after {self.retrieval_timeout}s", e
                ) from e

            context = CONTEXT_SEPARATOR.join(chunks)
            chat_history = format_history(session.messages, self.history_window)

            log.info(
                "RAG inputs ready | session_id=%s | chunks=%d | history_chars=%d",
                session.id,
                len(chunks),
                len(chat_history),
            )

            try:
                response = await run_sync_with_timeout(
                    self.generation_timeout,
                    self.chain.invoke,
                    {
                        "context": context,
                        "chat_history": chat_history,
                        "question": question,
                    },
                )
            except asyncio.TimeoutError as e:
                raise AnswerPipelineError(
                    f"Generation timed out after {self.generation_timeout}s", e
                ) from e

        except AnswerPipelineError:
            raise
        except DocumentChatException as e:
            log.error("RAG failed | session_id=%s | error=%s", session.id, str(e))
            raise AnswerPipelineError("RAG pipeline failed", e) from e
        except Exception as e:
            log.exception("RAG failed | session_id=%s", session.id)
            raise AnswerPipelineError("RAG pipeline failed", e) from e

        log.info("RAG answer generated | session_id=%s | chars=%d", session.id, len(response))
        return AnswerResult(response_text=response)
