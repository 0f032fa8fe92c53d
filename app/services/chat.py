"""
Chat Turn Orchestrator

Runs one grounded chat turn as a strictly ordered pipeline:

    RECEIVED → EMBEDDED → RETRIEVED → CONTEXT_BUILT → GENERATING → PERSISTED

Any stage may move the turn to FAILED; the typed error is re-raised to the
caller. Embedding or retrieval failures abort before the generation call.
The generation service receives the system instruction followed by the
whole supplied history, unchanged, so it keeps multi-turn context itself.

The orchestrator never writes messages. Callers pass an optional
``persist`` hook that runs in the PERSISTED stage.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import RAGError, ValidationError
from app.models.schemas import AnswerOutcome, ChatMessage, RetrievedChunk
from app.services.context import ContextAssembler
from app.services.embeddings import EmbeddingClient, get_embedding_client
from app.services.llm import LLMService
from app.services.retrieval import VectorRetriever

logger = logging.getLogger(__name__)

SYSTEM_PROMPT: Final[str] = (
    "You are a cybersecurity awareness assistant. Answer in plain, practical "
    "and actionable language.\n"
    "Use the CONTEXT below when it is relevant to the question. If it does "
    "not help, answer from general knowledge.\n"
    "Never ask the user for sensitive data. If the user shares passwords or "
    "other private information, ask them to delete it.\n\n"
    "CONTEXT:\n"
    "{context}"
)

PersistHook = Callable[[str, str], Awaitable[None]]


class TurnState(StrEnum):
    RECEIVED = "received"
    EMBEDDED = "embedded"
    RETRIEVED = "retrieved"
    CONTEXT_BUILT = "context_built"
    GENERATING = "generating"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class ChatTurn:
    """Working state of one turn; ``history`` records every transition."""

    owner_id: uuid.UUID
    messages: list[ChatMessage]
    document_id: uuid.UUID | None = None
    state: TurnState = TurnState.RECEIVED
    history: list[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])
    matches: list[RetrievedChunk] = field(default_factory=list)
    context: str = ""
    answer: str = ""

    def advance(self, state: TurnState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Turn for owner %s -> %s", self.owner_id, state.value)

    @property
    def question(self) -> str:
        return self.messages[-1].content


def build_system_instruction(context: str) -> str:
    """Embed the assembled context into the system prompt."""
    return SYSTEM_PROMPT.format(context=context)


def validate_messages(messages: Sequence[ChatMessage]) -> None:
    """
    Check the incoming history before any external call.

    Raises:
        ValidationError: Empty history, or the latest message is not a
            non-blank user message.
    """
    if not messages:
        raise ValidationError("messages is required and must not be empty")
    latest = messages[-1]
    if latest.role != "user":
        raise ValidationError("the most recent message must have role 'user'")
    if not latest.content.strip():
        raise ValidationError("the most recent user message must not be empty")


class ChatTurnOrchestrator:
    """
    Composes embedding, retrieval, context assembly and generation.

    Usage::

        orchestrator = ChatTurnOrchestrator()
        outcome = await orchestrator.answer(
            session,
            owner_id=user_id,
            messages=[ChatMessage(role="user", content="How do I protect my password?")],
        )
        print(outcome.answer_text, outcome.match_count)
    """

    def __init__(
        self,
        embedder: EmbeddingClient | None = None,
        retriever: VectorRetriever | None = None,
        assembler: ContextAssembler | None = None,
        llm: LLMService | None = None,
        top_k: int | None = None,
    ) -> None:
        self._embedder = embedder
        self._retriever = retriever or VectorRetriever()
        self._assembler = assembler or ContextAssembler()
        self._llm = llm or LLMService()
        self._top_k = top_k or settings.RETRIEVAL_TOP_K

    @property
    def embedder(self) -> EmbeddingClient:
        # Built lazily so a misconfigured backend only fails the turn.
        if self._embedder is None:
            self._embedder = get_embedding_client()
        return self._embedder

    async def answer(
        self,
        session: AsyncSession,
        *,
        owner_id: uuid.UUID,
        messages: Sequence[ChatMessage],
        document_id: uuid.UUID | None = None,
        persist: PersistHook | None = None,
    ) -> AnswerOutcome:
        """Run a turn and return ``(answer_text, match_count)``."""
        turn = await self.run_turn(
            session,
            owner_id=owner_id,
            messages=messages,
            document_id=document_id,
            persist=persist,
        )
        return AnswerOutcome(answer_text=turn.answer, match_count=len(turn.matches))

    async def run_turn(
        self,
        session: AsyncSession,
        *,
        owner_id: uuid.UUID,
        messages: Sequence[ChatMessage],
        document_id: uuid.UUID | None = None,
        persist: PersistHook | None = None,
    ) -> ChatTurn:
        """
        Drive one turn through every stage and return its final state.

        Raises:
            ValidationError: Bad message history (before any external call).
            ServiceUnavailable / ServiceError / FormatError / DimensionMismatch:
                Embedding or generation failure.
            AuthorizationError / DocumentNotFound / StorageError:
                Retrieval scope or store failure.
        """
        validate_messages(messages)
        turn = ChatTurn(
            owner_id=owner_id,
            messages=list(messages),
            document_id=document_id,
        )

        try:
            query_vector = await self.embedder.embed(turn.question)
            turn.advance(TurnState.EMBEDDED)

            turn.matches = await self._retriever.retrieve(
                session,
                query_vector,
                owner_id=owner_id,
                document_id=document_id,
                k=self._top_k,
            )
            turn.advance(TurnState.RETRIEVED)

            turn.context = self._assembler.assemble(turn.matches)
            system = build_system_instruction(turn.context)
            turn.advance(TurnState.CONTEXT_BUILT)

            turn.advance(TurnState.GENERATING)
            turn.answer = await self._llm.generate(
                [{"role": "system", "content": system}]
                + [{"role": m.role, "content": m.content} for m in turn.messages]
            )

            if persist is not None:
                await persist(turn.question, turn.answer)
            turn.advance(TurnState.PERSISTED)
        except RAGError as e:
            failed_at = turn.state
            turn.advance(TurnState.FAILED)
            logger.warning(
                "Chat turn failed after %s for owner %s: %s",
                failed_at.value,
                owner_id,
                e,
            )
            raise

        logger.info(
            "Chat turn complete for owner %s: query='%s', matches=%d",
            owner_id,
            turn.question[:50],
            len(turn.matches),
        )
        return turn
