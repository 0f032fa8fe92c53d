"""
Ingestion Pipeline Tests

Runs the full pipeline (object storage → extraction → chunking →
embedding → chunk replacement) against an in-memory SQLite database
with a deterministic embedding backend, and checks every document
status transition.

No external services required; runs entirely offline.
"""

from __future__ import annotations

import uuid

import pytest

from app.core.exceptions import (
    AuthorizationError,
    DimensionMismatch,
    DocumentNotFound,
    ServiceError,
    StorageError,
)
from app.models.orm import DocumentRecord, DocumentStatus
from app.repositories.rag import RAGRepository
from app.services.chunking import TextChunker
from app.services.extraction import TextExtractor
from app.services.ingestion import IngestionPipeline, count_visible_chars

GUIDE = "\n\n".join(
    f"Rule {i}. Never share one-time codes with anyone, even support staff. "
    "Report suspicious messages to the security team."
    for i in range(8)
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def repository() -> RAGRepository:
    return RAGRepository()


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(chunk_size=200, chunk_overlap=20)


@pytest.fixture
def pipeline(repository, storage, chunker, embedder) -> IngestionPipeline:
    return IngestionPipeline(
        repository=repository,
        storage=storage,
        extractor=TextExtractor(),
        chunker=chunker,
        embedder=embedder,
        concurrency=1,
    )


@pytest.fixture
def make_document(session, repository, storage, owner_id):
    """Store ``text`` and register it as an ``uploaded`` document."""

    async def _make(text: str, filename: str = "guide.md") -> DocumentRecord:
        key = await storage.save(owner_id, filename, text.encode("utf-8"))
        return await repository.create_document(
            session, owner_id=owner_id, filename=filename, storage_path=key
        )

    return _make


# ---------------------------------------------------------------------------
# Successful ingestion
# ---------------------------------------------------------------------------


class TestReady:
    """Documents with enough text end in ``ready``."""

    @pytest.mark.asyncio
    async def test_chunks_stored_with_embeddings(
        self, session, pipeline, repository, chunker, make_document
    ) -> None:
        document = await make_document(GUIDE)

        outcome = await pipeline.ingest(session, document.id)

        expected = chunker.split(GUIDE)
        assert outcome.status == DocumentStatus.READY.value
        assert outcome.chunk_count == len(expected) > 1
        assert document.status == DocumentStatus.READY.value
        assert document.chunk_count == len(expected)

        chunks = await repository.get_chunks_by_document(session, document.id)
        assert [c.chunk_index for c in chunks] == list(range(len(expected)))
        assert [c.content for c in chunks] == expected
        assert all(len(c.embedding) == 384 for c in chunks)

    @pytest.mark.asyncio
    async def test_embeds_each_chunk_in_order(
        self, session, pipeline, chunker, embedder, make_document
    ) -> None:
        document = await make_document(GUIDE)

        await pipeline.ingest(session, document.id)

        assert embedder.calls == chunker.split(GUIDE)

    @pytest.mark.asyncio
    async def test_reingest_replaces_previous_chunks(
        self, session, pipeline, repository, storage, make_document
    ) -> None:
        document = await make_document(GUIDE)
        await pipeline.ingest(session, document.id)
        old_chunks = await repository.get_chunks_by_document(session, document.id)
        old_ids = {c.id for c in old_chunks}

        revised = "Updated policy. Always lock your workstation when you leave it."
        (storage.root / document.storage_path).write_bytes(revised.encode())
        outcome = await pipeline.ingest(session, document.id)

        chunks = await repository.get_chunks_by_document(session, document.id)
        assert outcome.chunk_count == 1
        assert [c.content for c in chunks] == [revised]
        assert [c.chunk_index for c in chunks] == [0]
        assert not old_ids & {c.id for c in chunks}

    @pytest.mark.asyncio
    async def test_owner_check_passes_for_owner(
        self, session, pipeline, make_document, owner_id
    ) -> None:
        document = await make_document(GUIDE)

        outcome = await pipeline.ingest(session, document.id, owner_id=owner_id)

        assert outcome.status == DocumentStatus.READY.value

    @pytest.mark.asyncio
    async def test_short_document_is_indexed(
        self, session, repository, storage, embedder, make_document
    ) -> None:
        pipeline = IngestionPipeline(
            repository=repository,
            storage=storage,
            chunker=TextChunker(chunk_size=5, chunk_overlap=2),
            embedder=embedder,
        )
        document = await make_document("A. B. C.", filename="abc.txt")

        outcome = await pipeline.ingest(session, document.id)

        assert outcome.status == DocumentStatus.READY.value
        assert outcome.chunk_count == 2
        chunks = await repository.get_chunks_by_document(session, document.id)
        assert [c.content for c in chunks] == ["A. B.", "B. C."]

    @pytest.mark.asyncio
    async def test_no_transaction_held_while_embedding(
        self, session, repository, storage, chunker, make_embedder, make_document
    ) -> None:
        seen: list[bool] = []

        class RecordingEmbedder(make_embedder):
            async def _fetch(self, inputs):
                seen.append(session.in_transaction())
                return await super()._fetch(inputs)

        pipeline = IngestionPipeline(
            repository=repository,
            storage=storage,
            chunker=chunker,
            embedder=RecordingEmbedder(),
        )
        document = await make_document(GUIDE)
        await session.commit()

        await pipeline.ingest(session, document.id)

        assert seen and not any(seen)


# ---------------------------------------------------------------------------
# Empty text
# ---------------------------------------------------------------------------


class TestEmptyText:
    """Too little text is an outcome, not an error."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n\n  "])
    async def test_status_empty_text(
        self, session, pipeline, repository, embedder, make_document, text
    ) -> None:
        document = await make_document(text)

        outcome = await pipeline.ingest(session, document.id)

        assert outcome.status == DocumentStatus.EMPTY_TEXT.value
        assert outcome.chunk_count == 0
        assert document.status == DocumentStatus.EMPTY_TEXT.value
        assert await repository.get_chunks_by_document(session, document.id) == []
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_reingest_to_empty_clears_chunks(
        self, session, pipeline, repository, storage, make_document
    ) -> None:
        document = await make_document(GUIDE)
        await pipeline.ingest(session, document.id)

        (storage.root / document.storage_path).write_bytes(b"   ")
        await pipeline.ingest(session, document.id)

        assert document.status == DocumentStatus.EMPTY_TEXT.value
        assert await repository.get_chunks_by_document(session, document.id) == []

    @pytest.mark.asyncio
    async def test_minimum_length_is_configurable(
        self, session, repository, storage, chunker, embedder, make_document
    ) -> None:
        pipeline = IngestionPipeline(
            repository=repository,
            storage=storage,
            chunker=chunker,
            embedder=embedder,
            min_chars=20,
        )
        document = await make_document("too short")

        outcome = await pipeline.ingest(session, document.id)

        assert outcome.status == DocumentStatus.EMPTY_TEXT.value
        assert embedder.calls == []

    def test_count_visible_chars(self) -> None:
        assert count_visible_chars(" a b\n\tc ") == 3


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestEmbeddingFailure:
    """A failing chunk leaves the document in ``error`` naming its index."""

    @pytest.mark.asyncio
    async def test_dimension_mismatch_marks_error(
        self, session, repository, storage, chunker, make_embedder, make_document
    ) -> None:
        pipeline = IngestionPipeline(
            repository=repository,
            storage=storage,
            chunker=chunker,
            embedder=make_embedder(width=385),
        )
        document = await make_document(GUIDE)

        with pytest.raises(DimensionMismatch) as exc_info:
            await pipeline.ingest(session, document.id)

        assert exc_info.value.expected == 384
        assert exc_info.value.actual == 385
        assert document.status == DocumentStatus.ERROR.value
        assert "chunk 0" in document.error_message
        assert await repository.get_chunks_by_document(session, document.id) == []

    @pytest.mark.asyncio
    async def test_sequential_run_stops_at_first_failure(
        self, session, pipeline, chunker, embedder, make_document
    ) -> None:
        pieces = chunker.split(GUIDE)
        embedder.fail_on[pieces[1]] = ServiceError("boom", service="embedding")
        document = await make_document(GUIDE)

        with pytest.raises(ServiceError):
            await pipeline.ingest(session, document.id)

        assert embedder.calls == pieces[:2]

    @pytest.mark.asyncio
    async def test_parallel_run_records_lowest_failing_index(
        self, session, repository, storage, chunker, embedder, make_document
    ) -> None:
        pieces = chunker.split(GUIDE)
        assert len(pieces) >= 5
        embedder.fail_on[pieces[2]] = ServiceError("first", service="embedding")
        embedder.fail_on[pieces[4]] = ServiceError("second", service="embedding")
        pipeline = IngestionPipeline(
            repository=repository,
            storage=storage,
            chunker=chunker,
            embedder=embedder,
            concurrency=3,
            min_chars=20,
        )
        document = await make_document(GUIDE)

        with pytest.raises(ServiceError, match="first"):
            await pipeline.ingest(session, document.id)

        assert "chunk 2" in document.error_message

    @pytest.mark.asyncio
    async def test_failed_reingest_stops_serving_document(
        self, session, pipeline, repository, storage, embedder, make_document
    ) -> None:
        document = await make_document(GUIDE)
        await pipeline.ingest(session, document.id)

        revised = "A completely new version of the password policy document."
        (storage.root / document.storage_path).write_bytes(revised.encode())
        embedder.fail_on[revised] = ServiceError(
            "down", service="embedding", status=503
        )

        with pytest.raises(ServiceError):
            await pipeline.ingest(session, document.id)

        assert document.status == DocumentStatus.ERROR.value
        chunks = await repository.get_chunks_by_document(session, document.id)
        assert revised not in [c.content for c in chunks]


class TestStorageFailure:
    """Read and insert failures are recorded on the document."""

    @pytest.mark.asyncio
    async def test_missing_bytes_marks_error(
        self, session, pipeline, storage, make_document
    ) -> None:
        document = await make_document(GUIDE)
        (storage.root / document.storage_path).unlink()

        with pytest.raises(StorageError):
            await pipeline.ingest(session, document.id)

        assert document.status == DocumentStatus.ERROR.value

    @pytest.mark.asyncio
    async def test_insert_failure_marks_chunk_insert_error(
        self, session, storage, chunker, embedder, make_document
    ) -> None:
        class FailingRepository(RAGRepository):
            async def replace_chunks(self, session, document, chunks, *, status):
                await session.rollback()
                raise StorageError("disk full")

        pipeline = IngestionPipeline(
            repository=FailingRepository(),
            storage=storage,
            chunker=chunker,
            embedder=embedder,
            min_chars=20,
        )
        document = await make_document(GUIDE)

        with pytest.raises(StorageError):
            await pipeline.ingest(session, document.id)

        assert document.status == DocumentStatus.CHUNK_INSERT_ERROR.value
        assert document.error_message == "disk full"


class TestLookup:
    """Unknown and foreign documents are rejected before any work."""

    @pytest.mark.asyncio
    async def test_unknown_document(self, session, pipeline) -> None:
        with pytest.raises(DocumentNotFound):
            await pipeline.ingest(session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_foreign_document(
        self, session, pipeline, embedder, make_document, other_owner_id
    ) -> None:
        document = await make_document(GUIDE)

        with pytest.raises(AuthorizationError):
            await pipeline.ingest(session, document.id, owner_id=other_owner_id)

        assert document.status == DocumentStatus.UPLOADED.value
        assert embedder.calls == []
