"""
Pipeline Schemas

Pydantic models for the values that flow between the pipeline stages:
conversation turns going in, retrieved chunks in the middle, and the
ingestion / answer outcomes going out.
"""

from __future__ import annotations

from typing import Literal, NamedTuple
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single conversation turn as passed to the generation service."""

    role: Literal["user", "assistant"]
    content: str


class RetrievedChunk(BaseModel):
    """
    A chunk returned by scoped similarity search.

    Attributes:
        chunk_id: Chunk primary key.
        document_id: Owning document.
        chunk_index: Position within the document (0-based).
        content: Chunk text.
        score: Cosine similarity (higher = more similar).
        filename: Source filename, for display.
    """

    chunk_id: UUID
    document_id: UUID
    chunk_index: int = Field(ge=0)
    content: str
    score: float
    filename: str = ""


class IngestOutcome(NamedTuple):
    """Return value of ``IngestionPipeline.ingest``."""

    document_id: UUID
    status: str
    chunk_count: int


class AnswerOutcome(NamedTuple):
    """Return value of ``ChatTurnOrchestrator.answer``."""

    answer_text: str
    match_count: int
