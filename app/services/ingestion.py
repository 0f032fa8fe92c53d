"""
Ingestion Pipeline

Drives one document from stored bytes to embedded chunks:

    read bytes → extract text → normalize → chunk → embed → replace chunks

Status transitions (only this module writes ``documents.status``):
    uploaded | any  →  ready               chunks stored and embedded
                    →  empty_text          no visible text (or below MIN_EXTRACTED_CHARS)
                    →  error               read/extract/embedding failure
                    →  chunk_insert_error  chunk rows could not be written

Chunk rows are written only after every embedding succeeded. The delete of
the previous set, the insert of the new one and the status change commit
together, so retrieval never mixes two versions of a document.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    DocumentNotFound,
    RAGError,
    StorageError,
)
from app.models.orm import ChunkRecord, DocumentRecord, DocumentStatus
from app.models.schemas import IngestOutcome
from app.repositories.rag import RAGRepository
from app.services.chunking import TextChunker
from app.services.embeddings import EmbeddingClient, get_embedding_client
from app.services.extraction import TextExtractor
from app.services.storage import LocalObjectStorage

logger = logging.getLogger(__name__)


class ChunkEmbeddingFailure(Exception):
    """Pairs an embedding error with the index of the chunk that caused it."""

    def __init__(self, chunk_index: int, error: Exception) -> None:
        super().__init__(f"Embedding failed at chunk {chunk_index}: {error}")
        self.chunk_index = chunk_index
        self.error = error


def count_visible_chars(text: str) -> int:
    """Number of non-whitespace characters in ``text``."""
    return sum(1 for ch in text if not ch.isspace())


class IngestionPipeline:
    """
    Per-document ingestion with status tracking.

    Embeddings run through an ``asyncio.Semaphore`` of ``concurrency``
    slots (1 = sequential). Once a chunk fails no further chunk is
    started; the lowest failing index is the one recorded.

    Usage::

        pipeline = IngestionPipeline()
        async with session_factory() as session:
            outcome = await pipeline.ingest(session, document_id)
            print(outcome.status, outcome.chunk_count)
    """

    def __init__(
        self,
        repository: RAGRepository | None = None,
        storage: LocalObjectStorage | None = None,
        extractor: TextExtractor | None = None,
        chunker: TextChunker | None = None,
        embedder: EmbeddingClient | None = None,
        concurrency: int | None = None,
        min_chars: int | None = None,
    ) -> None:
        self._repository = repository or RAGRepository()
        self._storage = storage or LocalObjectStorage()
        self._extractor = extractor or TextExtractor()
        self._chunker = chunker or TextChunker(
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
        )
        self._embedder = embedder
        self._concurrency = max(1, concurrency or settings.INGEST_CONCURRENCY)
        self._min_chars = settings.MIN_EXTRACTED_CHARS if min_chars is None else min_chars

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = get_embedding_client()
        return self._embedder

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        *,
        owner_id: uuid.UUID | None = None,
    ) -> IngestOutcome:
        """
        (Re-)ingest a stored document.

        Args:
            session: Active async database session.
            document_id: Document to process.
            owner_id: When given, the document must belong to this owner.

        Returns:
            ``IngestOutcome`` with the final status and chunk count.
            ``empty_text`` is an outcome, not an error.

        Raises:
            DocumentNotFound: Unknown document.
            AuthorizationError: Document owned by someone else.
            ServiceUnavailable / ServiceError / FormatError / DimensionMismatch:
                Embedding failed; the document is left in ``error``.
            StorageError: Bytes unreadable (status ``error``) or chunk rows
                not written (status ``chunk_insert_error``).
        """
        document = await self._load(session, document_id, owner_id)
        # End the read transaction; storage reads and embedding calls can be slow.
        await session.commit()
        logger.info("Ingesting document %s ('%s')", document_id, document.filename)

        try:
            raw = await self._storage.read(document.storage_path)
            extracted = await self._extractor.extract(document.filename, raw)
        except RAGError as e:
            await self._fail(session, document, DocumentStatus.ERROR, str(e))
            raise

        pieces = self._chunker.split(extracted.content)
        visible = count_visible_chars(extracted.content)
        if visible < self._min_chars or not pieces:
            logger.warning(
                "Document %s has too little text (%d chars < %d)",
                document_id,
                visible,
                self._min_chars,
            )
            await self._store(session, document, [], DocumentStatus.EMPTY_TEXT)
            return IngestOutcome(document_id, DocumentStatus.EMPTY_TEXT.value, 0)

        try:
            vectors = await self._embed_all(pieces)
        except ChunkEmbeddingFailure as failure:
            logger.error(
                "Document %s: embedding failed at chunk %d/%d: %s",
                document_id,
                failure.chunk_index,
                len(pieces),
                failure.error,
            )
            await self._fail(session, document, DocumentStatus.ERROR, str(failure))
            raise failure.error from None

        records = [
            ChunkRecord(
                document_id=document_id,
                chunk_index=index,
                content=content,
                embedding=vector,
            )
            for index, (content, vector) in enumerate(zip(pieces, vectors, strict=True))
        ]
        await self._store(session, document, records, DocumentStatus.READY)

        logger.info("Document %s ready with %d chunks", document_id, len(records))
        return IngestOutcome(document_id, DocumentStatus.READY.value, len(records))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        owner_id: uuid.UUID | None,
    ) -> DocumentRecord:
        document = await self._repository.get_document(session, document_id)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")
        if owner_id is not None and document.owner_id != owner_id:
            raise AuthorizationError(f"Document {document_id} is not accessible")
        return document

    async def _embed_all(self, pieces: list[str]) -> list[list[float]]:
        """
        Embed every chunk, in order.

        Raises:
            ChunkEmbeddingFailure: Wraps the error of the lowest failing index.
        """
        semaphore = asyncio.Semaphore(self._concurrency)
        stop = asyncio.Event()

        async def embed_one(text: str) -> list[float] | None:
            async with semaphore:
                # Slots are granted in index order, so every lower index
                # has already started when a failure sets ``stop``.
                if stop.is_set():
                    return None
                try:
                    return await self.embedder.embed(text)
                except Exception:
                    stop.set()
                    raise

        results = await asyncio.gather(
            *(embed_one(text) for text in pieces),
            return_exceptions=True,
        )

        vectors: list[list[float]] = []
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                raise ChunkEmbeddingFailure(index, result)
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                vectors.append(result)
        return vectors

    async def _store(
        self,
        session: AsyncSession,
        document: DocumentRecord,
        records: list[ChunkRecord],
        status: DocumentStatus,
    ) -> None:
        try:
            await self._repository.replace_chunks(
                session, document, records, status=status
            )
        except StorageError as e:
            await self._fail(
                session, document, DocumentStatus.CHUNK_INSERT_ERROR, str(e)
            )
            raise

    async def _fail(
        self,
        session: AsyncSession,
        document: DocumentRecord,
        status: DocumentStatus,
        message: str,
    ) -> None:
        # A rollback may have expired the instance; reload before writing.
        await session.refresh(document)
        await self._repository.set_status(
            session, document, status, error_message=message[:2000]
        )
