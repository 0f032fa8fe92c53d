"""
Conversation Repository

Minimal message persistence used by the chat endpoint after a successful
turn. Conversation creation and renaming live outside this service.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models.orm import ConversationRecord, MessageRecord, MessageRole


class ConversationRepository:
    """Read conversations and append messages with an external session."""

    async def get_conversation(
        self,
        session: AsyncSession,
        conversation_id: uuid.UUID,
        *,
        owner_id: uuid.UUID | None = None,
    ) -> ConversationRecord | None:
        stmt = select(ConversationRecord).where(ConversationRecord.id == conversation_id)
        if owner_id is not None:
            stmt = stmt.where(ConversationRecord.owner_id == owner_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_messages(
        self,
        session: AsyncSession,
        conversation_id: uuid.UUID,
    ) -> Sequence[MessageRecord]:
        """Messages of a conversation, oldest first."""
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.conversation_id == conversation_id)
            .order_by(MessageRecord.created_at, MessageRecord.id)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def append_turn(
        self,
        session: AsyncSession,
        conversation_id: uuid.UUID,
        *,
        user_content: str,
        answer_content: str,
    ) -> tuple[MessageRecord, MessageRecord]:
        """
        Record the user message and the generated answer together.

        Both rows commit in one transaction so a conversation never holds a
        question without its answer.
        """
        user_msg = MessageRecord(
            conversation_id=conversation_id,
            role=MessageRole.USER.value,
            content=user_content,
        )
        session.add(user_msg)
        try:
            # Flush separately so the answer's created_at sorts after the question.
            await session.flush()
            answer_msg = MessageRecord(
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT.value,
                content=answer_content,
            )
            session.add(answer_msg)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise StorageError(
                f"Could not store messages for conversation {conversation_id}: {e}"
            ) from e
        return user_msg, answer_msg
