from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ServiceContainer, get_db, get_services
from doc_chat.logger import GLOBAL_LOGGER as log

router = APIRouter()


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    message: str


@router.post("/chat")
async def chat(
    req: ChatRequest,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """
    Main chat endpoint.

    Pipeline:
      1. Validate input and load the session
      2. Answer with the RAG pipeline (retrieve + history + generate)
      3. Persist the user message and the answer
    """
    session_id = req.session_id.strip()
    question = req.message.strip()

    if not session_id:
        raise HTTPException(400, "sessionId required")
    if not question:
        raise HTTPException(400, "message required")

    log.info("Chat request received | session_id=%s", session_id)

    session = await services.chat_repo.get_session(db, session_id)

    # nothing is stored unless an answer came back
    result = await services.pipeline.answer(db, session, question)

    message_count = await services.chat_repo.append_turn(
        db,
        session_id,
        question,
        result.response_text,
    )

    log.info("Chat completed | session_id=%s | message_count=%d", session_id, message_count)
    return {
        "success": True,
        "response": result.response_text,
        "messageCount": message_count,
    }
