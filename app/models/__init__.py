"""Models package — Pydantic schemas and SQLAlchemy ORM for the pipeline."""

from app.models.orm import (
    EMBEDDING_DIMENSION,
    ChunkRecord,
    ConversationRecord,
    DocumentRecord,
    DocumentStatus,
    MessageRecord,
    MessageRole,
)
from app.models.schemas import AnswerOutcome, ChatMessage, IngestOutcome, RetrievedChunk

__all__ = [
    # Pydantic schemas (pipeline values)
    "AnswerOutcome",
    "ChatMessage",
    "IngestOutcome",
    "RetrievedChunk",
    # SQLAlchemy ORM (persistence layer)
    "ChunkRecord",
    "ConversationRecord",
    "DocumentRecord",
    "DocumentStatus",
    "MessageRecord",
    "MessageRole",
    "EMBEDDING_DIMENSION",
]
