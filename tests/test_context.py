"""
Context Assembler Unit Tests
"""

from __future__ import annotations

import uuid

from app.models.schemas import RetrievedChunk
from app.services.context import NO_CONTEXT_MARKER, ContextAssembler


def _match(index: int, content: str, score: float = 0.5) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=uuid.uuid4(),
        document_id=uuid.uuid4(),
        chunk_index=index,
        content=content,
        score=score,
    )


def test_no_matches_emits_marker():
    assert ContextAssembler(max_sources=5).assemble([]) == NO_CONTEXT_MARKER


def test_sources_numbered_in_retrieval_order():
    context = ContextAssembler(max_sources=5).assemble(
        [_match(4, "Use long passphrases."), _match(1, "Lock your screen.")]
    )

    assert context == "# Source 1\nUse long passphrases.\n\n# Source 2\nLock your screen."


def test_keeps_at_most_max_sources():
    matches = [_match(i, f"tip {i}") for i in range(8)]

    context = ContextAssembler(max_sources=3).assemble(matches)

    assert "# Source 3\ntip 2" in context
    assert "# Source 4" not in context
    assert "tip 3" not in context


def test_overlapping_windows_not_deduplicated():
    matches = [_match(0, "same text"), _match(1, "same text")]

    context = ContextAssembler(max_sources=5).assemble(matches)

    assert context.count("same text") == 2
