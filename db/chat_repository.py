from typing import List

from sqlalchemy import DateTime, case, delete, func, literal, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from doc_chat.exception.custom_exception import NotFoundError, StoreWriteError
from doc_chat.logger import GLOBAL_LOGGER as log

from .models import ChatSession, Document, Message, MessageRole, utc_now


class ChatRepository:
    """
    Repository providing CRUD operations for ChatSession + Message models.

    `append_turn` is the only way messages are written.
    """

    async def create_session(self, db: AsyncSession, document_id: str) -> ChatSession:
        document = await db.get(Document, document_id)
        if document is None:
            log.warning("Session requested for unknown document | document_id=%s", document_id)
            raise NotFoundError("Document not found")

        now = utc_now()
        s = ChatSession(
            document_id=document_id,
            title=f"Chat with {document.original_name}",
            created_at=now,
            updated_at=now,
            messages=[],
        )
        db.add(s)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("Failed to create session | document_id=%s | error=%s", document_id, str(e))
            raise StoreWriteError("Failed to create chat session", e) from e

        log.info("New session created | session_id=%s | document_id=%s", s.id, document_id)
        return s

    async def get_session(self, db: AsyncSession, session_id: str) -> ChatSession:
        out = await db.execute(
            select(ChatSession)
            .where(ChatSession.id == session_id)
            .options(selectinload(ChatSession.messages))
            .execution_options(populate_existing=True)
        )
        s = out.scalar_one_or_none()
        if s is None:
            log.info("Session not found | session_id=%s", session_id)
            raise NotFoundError("Chat session not found")
        return s

    async def list_sessions(self, db: AsyncSession, document_id: str) -> List[ChatSession]:
        """
        Sessions of one document, most recently active first.
        """
        q = await db.execute(
            select(ChatSession)
            .where(ChatSession.document_id == document_id)
            .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())
            .options(selectinload(ChatSession.messages))
            .execution_options(populate_existing=True)
        )
        sessions = list(q.scalars().all())
        log.info("Listing sessions | document_id=%s | count=%d", document_id, len(sessions))
        return sessions

    async def delete_session(self, db: AsyncSession, session_id: str) -> None:
        try:
            await db.execute(delete(Message).where(Message.session_id == session_id))
            result = await db.execute(delete(ChatSession).where(ChatSession.id == session_id))
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError("Chat session not found")
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("Failed to delete session | session_id=%s | error=%s", session_id, str(e))
            raise StoreWriteError("Failed to delete chat session", e) from e

        log.info("Session deleted | session_id=%s", session_id)

    async def append_turn(
        self,
        db: AsyncSession,
        session_id: str,
        user_text: str,
        assistant_text: str,
    ) -> int:
        """
        Append a user message and the assistant reply in one transaction and
        return the session's new message count.

        The session row is updated first, which both checks that it exists
        and locks it; the two messages are then inserted as new rows. The
        stored message list is never read back and rewritten, so two
        concurrent appends on one session both land.
        """
        now = utc_now()
        # updated_at never moves backwards, even if the clock does
        new_updated_at = case(
            (ChatSession.updated_at > now, ChatSession.updated_at),
            else_=literal(now, DateTime(timezone=True)),
        )

        try:
            result = await db.execute(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values(updated_at=new_updated_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError("Chat session not found")

            db.add_all(
                [
                    Message(
                        session_id=session_id,
                        role=MessageRole.USER,
                        content=user_text,
                        timestamp=utc_now(),
                    ),
                    Message(
                        session_id=session_id,
                        role=MessageRole.ASSISTANT,
                        content=assistant_text,
                        timestamp=utc_now(),
                    ),
                ]
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("Failed to append turn | session_id=%s | error=%s", session_id, str(e))
            raise StoreWriteError("Failed to save chat messages", e) from e

        count = await self.count_messages(db, session_id)
        log.info("Messages persisted | session_id=%s | message_count=%d", session_id, count)
        return count

    async def count_messages(self, db: AsyncSession, session_id: str) -> int:
        out = await db.execute(
            select(func.count()).select_from(Message).where(Message.session_id == session_id)
        )
        return int(out.scalar_one())
