"""
RAG Repository

Data access layer for documents and chunks. Provides the atomic chunk
replacement used by re-ingestion and the owner-scoped pgvector
similarity search used by retrieval.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import Select, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.models.orm import ChunkRecord, DocumentRecord, DocumentStatus

logger = logging.getLogger(__name__)


class RAGRepository:
    """
    Repository for document and chunk persistence with vector search.

    All methods expect an externally managed ``AsyncSession``.

    Key guarantees:
        - ``replace_chunks``: the delete of the previous chunk set, the
          insert of the new one and the status change commit in
          one transaction, so readers see either the old or the new set.
        - ``search_similar``: ownership, document filter and eligibility
          are part of the SQL WHERE clause, never applied afterwards.
    """

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(
        self,
        session: AsyncSession,
        *,
        owner_id: uuid.UUID,
        filename: str,
        storage_path: str,
        document_id: uuid.UUID | None = None,
    ) -> DocumentRecord:
        """Insert a document in ``uploaded`` status."""
        document = DocumentRecord(
            id=document_id or uuid.uuid4(),
            owner_id=owner_id,
            filename=filename,
            storage_path=storage_path,
            status=DocumentStatus.UPLOADED.value,
            chunk_count=0,
        )
        session.add(document)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise StorageError(f"Could not create document '{filename}': {e}") from e
        await session.refresh(document)
        logger.info("Created document %s for owner %s", document.id, owner_id)
        return document

    async def get_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        *,
        owner_id: uuid.UUID | None = None,
    ) -> DocumentRecord | None:
        """Look up a document by its UUID, optionally restricted to one owner."""
        stmt = select(DocumentRecord).where(DocumentRecord.id == document_id)
        if owner_id is not None:
            stmt = stmt.where(DocumentRecord.owner_id == owner_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_documents(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
    ) -> Sequence[DocumentRecord]:
        """All documents of one owner, newest first."""
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.owner_id == owner_id)
            .order_by(DocumentRecord.created_at.desc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def list_unfinished_documents(
        self,
        session: AsyncSession,
    ) -> Sequence[DocumentRecord]:
        """Documents whose last ingestion did not reach ``ready``."""
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.status != DocumentStatus.READY.value)
            .order_by(DocumentRecord.created_at)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def set_status(
        self,
        session: AsyncSession,
        document: DocumentRecord,
        status: DocumentStatus,
        *,
        chunk_count: int | None = None,
        error_message: str | None = None,
    ) -> DocumentRecord:
        """Record a lifecycle transition and commit it."""
        document_id = document.id
        document.status = status.value
        document.error_message = error_message
        if chunk_count is not None:
            document.chunk_count = chunk_count
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise StorageError(
                f"Could not set status '{status}' on document {document_id}: {e}"
            ) from e
        logger.info("Document %s -> %s", document_id, status.value)
        return document

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def replace_chunks(
        self,
        session: AsyncSession,
        document: DocumentRecord,
        chunks: list[ChunkRecord],
        *,
        status: DocumentStatus = DocumentStatus.READY,
    ) -> DocumentRecord:
        """
        Atomically swap a document's chunk set and record ``status``.

        An empty ``chunks`` list with ``status=EMPTY_TEXT`` clears a
        document whose new text has nothing to index.

        Raises:
            StorageError: If any statement fails. Nothing is committed and
                the previous chunk set stays in place.
        """
        document_id = document.id
        try:
            await session.execute(
                delete(ChunkRecord).where(ChunkRecord.document_id == document_id)
            )
            session.add_all(chunks)
            document.status = status.value
            document.chunk_count = len(chunks)
            document.error_message = None
            await session.flush()
            await session.commit()
        except (SQLAlchemyError, ValueError) as e:
            await session.rollback()
            raise StorageError(
                f"Could not insert chunks for document {document_id}: {e}"
            ) from e

        logger.info(
            "Stored %d chunks for document %s (%s)", len(chunks), document_id, status.value
        )
        return document

    async def get_chunks_by_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
    ) -> Sequence[ChunkRecord]:
        """Get all chunks for a document, ordered by index."""
        stmt = (
            select(ChunkRecord)
            .where(ChunkRecord.document_id == document_id)
            .order_by(ChunkRecord.chunk_index)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Similarity search
    # ------------------------------------------------------------------

    @staticmethod
    def build_search_statement(
        query_embedding: list[float],
        *,
        owner_id: uuid.UUID,
        document_id: uuid.UUID | None = None,
        limit: int = 5,
    ) -> Select:
        """
        Build the scoped cosine-distance query.

        Candidates are restricted to embedded chunks of ``ready`` documents
        owned by ``owner_id`` (and to one document when ``document_id`` is
        set). Ties on distance fall back to document order.
        """
        distance = ChunkRecord.embedding.cosine_distance(query_embedding).label(
            "distance"
        )
        stmt = (
            select(ChunkRecord, DocumentRecord.filename, distance)
            .join(DocumentRecord, ChunkRecord.document_id == DocumentRecord.id)
            .where(
                DocumentRecord.owner_id == owner_id,
                DocumentRecord.status == DocumentStatus.READY.value,
                ChunkRecord.embedding.isnot(None),
            )
        )
        if document_id is not None:
            stmt = stmt.where(ChunkRecord.document_id == document_id)

        return stmt.order_by(
            distance,
            ChunkRecord.chunk_index,
            ChunkRecord.document_id,
        ).limit(limit)

    async def search_similar(
        self,
        session: AsyncSession,
        query_embedding: list[float],
        *,
        owner_id: uuid.UUID,
        document_id: uuid.UUID | None = None,
        limit: int = 5,
    ) -> list[tuple[ChunkRecord, str, float]]:
        """
        Search the owner's chunks by cosine similarity.

        Uses pgvector's ``cosine_distance`` operator, leveraging the HNSW
        index on ``chunks.embedding``. Distance is converted to a
        similarity score: ``score = 1 - distance``.

        Returns:
            ``(chunk, filename, score)`` tuples, most similar first.
        """
        stmt = self.build_search_statement(
            query_embedding,
            owner_id=owner_id,
            document_id=document_id,
            limit=limit,
        )
        try:
            result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Similarity search failed: {e}") from e

        return [
            (chunk, filename, 1.0 - float(distance))
            for chunk, filename, distance in result.all()
        ]
