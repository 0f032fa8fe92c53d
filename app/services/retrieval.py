"""
Vector Retriever

Owner-scoped top-k similarity retrieval over embedded chunks.

Scoping is part of the SQL query (see ``RAGRepository.build_search_statement``),
so a chunk whose document belongs to another owner is never a candidate.
An explicit document filter naming someone else's document is rejected
outright instead of silently returning nothing.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    DimensionMismatch,
    DocumentNotFound,
    ValidationError,
)
from app.models.schemas import RetrievedChunk
from app.repositories.rag import RAGRepository

logger = logging.getLogger(__name__)

MAX_TOP_K = 50


class VectorRetriever:
    """
    Returns the ``k`` chunks most similar to a query vector for one owner.

    Ordering: score descending, ties broken by ascending ``chunk_index``.
    An empty list is a valid result (nothing embedded yet, no documents).
    """

    def __init__(
        self,
        repository: RAGRepository | None = None,
        dimension: int | None = None,
    ) -> None:
        self._repository = repository or RAGRepository()
        self._dimension = dimension or settings.EMBEDDING_DIMENSION

    async def retrieve(
        self,
        session: AsyncSession,
        query_vector: list[float],
        *,
        owner_id: uuid.UUID,
        document_id: uuid.UUID | None = None,
        k: int | None = None,
    ) -> list[RetrievedChunk]:
        """
        Run scoped similarity search.

        Raises:
            AuthorizationError: No owner, or ``document_id`` owned by another user.
            DocumentNotFound: ``document_id`` does not exist.
            ValidationError: ``k`` outside ``1..MAX_TOP_K``.
            DimensionMismatch: Query vector has the wrong length.
            StorageError: The record store failed.
        """
        if owner_id is None:
            raise AuthorizationError("Retrieval requires an authenticated owner")

        k = settings.RETRIEVAL_TOP_K if k is None else k
        if not 1 <= k <= MAX_TOP_K:
            raise ValidationError(f"k must be between 1 and {MAX_TOP_K}, got {k}")

        if len(query_vector) != self._dimension:
            raise DimensionMismatch(expected=self._dimension, actual=len(query_vector))

        if document_id is not None:
            await self._check_document_scope(session, document_id, owner_id)

        hits = await self._repository.search_similar(
            session,
            query_vector,
            owner_id=owner_id,
            document_id=document_id,
            limit=k,
        )

        results = [
            RetrievedChunk(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                score=score,
                filename=filename,
            )
            for chunk, filename, score in hits
        ]
        # Stable re-sort: the store may not honour the tie-break exactly
        results.sort(key=lambda r: (-r.score, r.chunk_index))

        logger.debug(
            "Retrieved %d chunks for owner %s (doc=%s, k=%d)",
            len(results),
            owner_id,
            document_id,
            k,
        )
        return results[:k]

    async def _check_document_scope(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        owner_id: uuid.UUID,
    ) -> None:
        document = await self._repository.get_document(session, document_id)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")
        if document.owner_id != owner_id:
            logger.warning(
                "Owner %s attempted to search document %s of another owner",
                owner_id,
                document_id,
            )
            raise AuthorizationError(f"Document {document_id} is not accessible")
