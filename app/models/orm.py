"""
Database Models

SQLAlchemy 2.0 ORM models for the document, chunk and conversation
storage layer. Uses pgvector for similarity search on chunk embeddings.

Tables:
    documents     — Uploaded files owned by one user, with ingestion status.
    chunks        — Ordered document windows with fixed-dimension embeddings.
    conversations — Chat threads owned by one user.
    messages      — User/assistant turns of a conversation.
"""

from __future__ import annotations

import uuid
from enum import StrEnum

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.config import settings
from app.models.base import Base, TimestampMixin

EMBEDDING_DIMENSION: int = settings.EMBEDDING_DIMENSION


class DocumentStatus(StrEnum):
    """
    Ingestion lifecycle of a document.

    ``uploaded`` is the only initial state. Every ingestion attempt ends in
    exactly one of the terminal states; only the ingestion pipeline writes
    this field.
    """

    UPLOADED = "uploaded"
    READY = "ready"
    EMPTY_TEXT = "empty_text"
    CHUNK_INSERT_ERROR = "chunk_insert_error"
    ERROR = "error"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class DocumentRecord(TimestampMixin, Base):
    """
    An uploaded file and its ingestion state.

    Attributes:
        id: UUID primary key (generated Python-side).
        owner_id: Identifier of the owning user. Every chunk inherits it.
        filename: Original filename with extension.
        storage_path: Object storage locator of the raw bytes.
        status: Current ``DocumentStatus`` value.
        chunk_count: Number of chunks written by the last successful run.
        error_message: Diagnostic for failed runs (names the failing chunk).
        chunks: Related ChunkRecord instances (cascade delete).
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=DocumentStatus.UPLOADED.value,
    )
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    chunks: Mapped[list[ChunkRecord]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="ChunkRecord.chunk_index",
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentRecord(id={self.id!s:.8}, filename='{self.filename}', "
            f"status={self.status})>"
        )


class ChunkRecord(Base):
    """
    A window of a document's text with its embedding.

    ``chunk_index`` values of one document are contiguous from 0 and unique
    (enforced by ``uq_chunks_document_id``). The embedding column has the
    declared service dimension; pgvector rejects any other length.
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSION),
        nullable=True,
    )

    document: Mapped[DocumentRecord] = relationship(back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<ChunkRecord(id={self.id!s:.8}, "
            f"doc={self.document_id!s:.8}, idx={self.chunk_index})>"
        )


class ConversationRecord(TimestampMixin, Base):
    """A chat thread. Created and renamed outside this service."""

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="New chat")

    messages: Mapped[list[MessageRecord]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="MessageRecord.created_at",
    )


class MessageRecord(TimestampMixin, Base):
    """One turn of a conversation; ``created_at`` orders the history."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    conversation: Mapped[ConversationRecord] = relationship(back_populates="messages")
