"""
RAG API Router

HTTP endpoints for document ingestion, scoped search and grounded chat.
Every endpoint acts on behalf of the owner named by ``X-Owner-Id``.

Endpoints:
    POST /documents                 Upload a file and ingest it inline.
    GET  /documents                 List the caller's documents.
    POST /documents/{id}/ingest     Re-run ingestion for one document.
    POST /search                    Scoped semantic search (debugging).
    POST /chat                      Grounded answer for a conversation turn.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import OwnerId, Pipeline
from app.core.database import get_db
from app.schemas.rag import (
    ChatRequest,
    ChatResponse,
    DocumentResponse,
    IngestResponse,
    SearchRequest,
    SearchResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/documents",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document",
)
async def upload_document(
    file: UploadFile,
    owner_id: OwnerId,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> IngestResponse:
    """
    Store a .txt, .md, .pdf or .docx file and ingest it.

    An unsupported extension is rejected with 422 before anything is
    stored. Pipeline failures are reported with their error status; the
    document then keeps the failure status and can be re-ingested.
    """
    raw = await file.read()
    filename = file.filename or "unknown"
    outcome = await pipeline.upload(db, owner_id, filename, raw)
    return IngestResponse(**outcome._asdict())


@router.get(
    "/documents",
    response_model=list[DocumentResponse],
    summary="List the caller's documents",
)
async def list_documents(
    owner_id: OwnerId,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> list[DocumentResponse]:
    documents = await pipeline.list_documents(db, owner_id)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.post(
    "/documents/{document_id}/ingest",
    response_model=IngestResponse,
    summary="Re-ingest a document",
)
async def ingest_document(
    document_id: UUID,
    owner_id: OwnerId,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> IngestResponse:
    """Replace the document's chunks with a fresh extraction and embedding."""
    outcome = await pipeline.ingest(db, owner_id, document_id)
    return IngestResponse(**outcome._asdict())


@router.post(
    "/search",
    response_model=list[SearchResult],
    summary="Semantic search across the caller's documents",
)
async def search(
    request: SearchRequest,
    owner_id: OwnerId,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> list[SearchResult]:
    hits = await pipeline.search(
        db,
        owner_id,
        request.query,
        document_id=request.document_id,
        k=request.k,
    )
    return [
        SearchResult(
            content=hit.content,
            score=hit.score,
            filename=hit.filename,
            chunk_index=hit.chunk_index,
            document_id=hit.document_id,
        )
        for hit in hits
    ]


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Answer the latest user message",
)
async def chat(
    request: ChatRequest,
    owner_id: OwnerId,
    pipeline: Pipeline,
    db: AsyncSession = Depends(get_db),
) -> ChatResponse:
    """
    Run one grounded chat turn.

    Process:
        1. Embed the latest user message.
        2. Retrieve the caller's most relevant chunks via pgvector.
        3. Generate an answer from the system prompt plus full history.
        4. Append question and answer to ``conversation_id`` when given.
    """
    outcome = await pipeline.answer(
        db,
        owner_id,
        request.messages,
        document_id=request.document_id,
        conversation_id=request.conversation_id,
    )
    return ChatResponse(answer=outcome.answer_text, match_count=outcome.match_count)
