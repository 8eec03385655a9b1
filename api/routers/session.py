from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ServiceContainer, get_db, get_services
from db.models import ChatSession
from doc_chat.logger import GLOBAL_LOGGER as log

router = APIRouter()

UNKNOWN_DOCUMENT = "Unknown Document"
PREVIEW_LENGTH = 100


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")


def last_message_preview(session: ChatSession) -> str:
    if not session.messages:
        return "No messages yet"
    return session.messages[-1].content[:PREVIEW_LENGTH] + "..."


async def _document_name(services: ServiceContainer, db: AsyncSession, document_id: str) -> str:
    document = await services.document_repo.get_document(db, document_id)
    return document.original_name if document is not None else UNKNOWN_DOCUMENT


@router.post("/sessions")
async def create_session(
    req: CreateSessionRequest,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """
    Start a chat on a document.
    """
    s = await services.chat_repo.create_session(db, req.document_id)
    document_name = await _document_name(services, db, s.document_id)
    log.info("Created new session | session_id=%s", s.id)
    return {"success": True, "sessionId": s.id, "documentName": document_name}


@router.get("/sessions")
async def list_sessions(
    document_id: str = Query(..., alias="documentId"),
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    """
    Sessions of one document, most recently active first.
    """
    sessions = await services.chat_repo.list_sessions(db, document_id)
    document_name = await _document_name(services, db, document_id)

    return {
        "success": True,
        "sessions": [
            {
                "id": s.id,
                "title": s.title,
                "messageCount": len(s.messages),
                "lastMessage": last_message_preview(s),
                "createdAt": s.created_at,
                "updatedAt": s.updated_at,
                "documentName": document_name,
            }
            for s in sessions
        ],
    }


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    s = await services.chat_repo.get_session(db, session_id)
    return {
        "success": True,
        "session": {
            "id": s.id,
            "title": s.title,
            "messages": [
                {"role": m.role.value, "content": m.content, "timestamp": m.timestamp}
                for m in s.messages
            ],
            "documentName": await _document_name(services, db, s.document_id),
            "createdAt": s.created_at,
            "updatedAt": s.updated_at,
        },
    }


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
):
    await services.chat_repo.delete_session(db, session_id)
    return {"success": True}
