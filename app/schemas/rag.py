"""
RAG API Schemas

Pydantic models for the document, search and chat request/response cycle.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.schemas import ChatMessage


class IngestResponse(BaseModel):
    """Outcome of an upload or re-ingestion."""

    document_id: UUID = Field(description="Document identifier")
    status: str = Field(
        description="Final status: 'ready', 'empty_text', 'error' or 'chunk_insert_error'",
    )
    chunk_count: int = Field(description="Number of chunks stored")


class DocumentResponse(BaseModel):
    """A document of the calling owner."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    status: str
    chunk_count: int
    error_message: str | None = None
    created_at: datetime


class SearchRequest(BaseModel):
    """Request body for scoped semantic search."""

    query: str = Field(
        ...,
        min_length=1,
        description="Natural language search query",
    )
    document_id: UUID | None = Field(
        default=None,
        description="Restrict the search to one of the caller's documents",
    )
    k: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of results to return",
    )


class SearchResult(BaseModel):
    """Single search hit returned to the client."""

    content: str = Field(description="Chunk text content")
    score: float = Field(description="Cosine similarity score (higher = more relevant)")
    filename: str = Field(description="Source filename")
    chunk_index: int = Field(description="Position within source document (0-based)")
    document_id: UUID = Field(description="Parent document identifier")


class ChatRequest(BaseModel):
    """Request body for a chat turn."""

    messages: list[ChatMessage] = Field(
        default_factory=list,
        description="Conversation history, oldest first; the last one is the question",
    )
    document_id: UUID | None = Field(
        default=None,
        description="Ground the answer on a single document",
    )
    conversation_id: UUID | None = Field(
        default=None,
        description="Append the question and answer to this conversation",
    )


class ChatResponse(BaseModel):
    """Generated answer and the number of grounding chunks used."""

    answer: str = Field(description="Generated answer text")
    match_count: int = Field(description="Number of retrieved context chunks")
