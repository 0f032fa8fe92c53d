"""
RAG Pipeline Facade

Single entry point for the API layer. Composes storage, ingestion,
retrieval and the chat orchestrator into the four request workflows:

    upload   bytes → object storage → document row → ingestion
    ingest   re-run ingestion for an owned document
    search   query → embedding → scoped retrieval (debug surface)
    answer   chat turn, optionally recorded in an owned conversation
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, ValidationError
from app.models.orm import DocumentRecord
from app.models.schemas import AnswerOutcome, ChatMessage, IngestOutcome, RetrievedChunk
from app.repositories.conversations import ConversationRepository
from app.repositories.rag import RAGRepository
from app.services.chat import ChatTurnOrchestrator, PersistHook
from app.services.embeddings import EmbeddingClient, get_embedding_client
from app.services.extraction import check_extension
from app.services.ingestion import IngestionPipeline
from app.services.retrieval import VectorRetriever
from app.services.storage import LocalObjectStorage

logger = logging.getLogger(__name__)


class RAGPipeline:
    """
    Orchestrates the document lifecycle and chat turns for one owner.

    Usage::

        pipeline = RAGPipeline()
        async with session_factory() as session:
            outcome = await pipeline.upload(session, owner_id, "doc.pdf", raw)
            hits = await pipeline.search(session, owner_id, "phishing", k=5)
    """

    def __init__(
        self,
        repository: RAGRepository | None = None,
        conversations: ConversationRepository | None = None,
        storage: LocalObjectStorage | None = None,
        embedder: EmbeddingClient | None = None,
        ingestion: IngestionPipeline | None = None,
        retriever: VectorRetriever | None = None,
        orchestrator: ChatTurnOrchestrator | None = None,
    ) -> None:
        self._repository = repository or RAGRepository()
        self._conversations = conversations or ConversationRepository()
        self._storage = storage or LocalObjectStorage()
        self._embedder = embedder
        self._ingestion = ingestion or IngestionPipeline(
            repository=self._repository,
            storage=self._storage,
            embedder=embedder,
        )
        self._retriever = retriever or VectorRetriever(repository=self._repository)
        self._orchestrator = orchestrator or ChatTurnOrchestrator(
            embedder=embedder,
            retriever=self._retriever,
        )

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = get_embedding_client()
        return self._embedder

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
        filename: str,
        data: bytes,
    ) -> IngestOutcome:
        """
        Store an uploaded file, register it and ingest it inline.

        The extension is checked before anything is written, so an
        unsupported file never produces a document row.
        """
        check_extension(filename)
        if not data:
            raise ValidationError(f"File '{filename}' is empty")

        storage_path = await self._storage.save(owner_id, filename, data)
        document = await self._repository.create_document(
            session,
            owner_id=owner_id,
            filename=filename,
            storage_path=storage_path,
        )
        return await self._ingestion.ingest(session, document.id, owner_id=owner_id)

    async def ingest(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
        document_id: uuid.UUID,
    ) -> IngestOutcome:
        """Re-run ingestion for a document owned by ``owner_id``."""
        return await self._ingestion.ingest(session, document_id, owner_id=owner_id)

    async def list_documents(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
    ) -> Sequence[DocumentRecord]:
        return await self._repository.list_documents(session, owner_id)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
        query: str,
        *,
        document_id: uuid.UUID | None = None,
        k: int | None = None,
    ) -> list[RetrievedChunk]:
        """Embed ``query`` and return the owner's most similar chunks."""
        if not query.strip():
            raise ValidationError("query must not be empty")

        query_vector = await self.embedder.embed(query)
        results = await self._retriever.retrieve(
            session,
            query_vector,
            owner_id=owner_id,
            document_id=document_id,
            k=k,
        )
        logger.info(
            "Search for owner %s: query='%s', hits=%d",
            owner_id,
            query[:50],
            len(results),
        )
        return results

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def answer(
        self,
        session: AsyncSession,
        owner_id: uuid.UUID,
        messages: Sequence[ChatMessage],
        *,
        document_id: uuid.UUID | None = None,
        conversation_id: uuid.UUID | None = None,
    ) -> AnswerOutcome:
        """
        Run a chat turn. With ``conversation_id`` the question and answer
        are appended to that conversation after a successful generation.

        Raises:
            AuthorizationError: The conversation is missing or owned by
                another user.
        """
        persist: PersistHook | None = None
        if conversation_id is not None:
            conversation = await self._conversations.get_conversation(
                session, conversation_id, owner_id=owner_id
            )
            if conversation is None:
                raise AuthorizationError(
                    f"Conversation {conversation_id} is not accessible"
                )

            async def record_turn(question: str, answer: str) -> None:
                await self._conversations.append_turn(
                    session,
                    conversation_id,
                    user_content=question,
                    answer_content=answer,
                )

            persist = record_turn

        return await self._orchestrator.answer(
            session,
            owner_id=owner_id,
            messages=messages,
            document_id=document_id,
            persist=persist,
        )
