"""
Context Assembler

Renders retrieved chunks into the grounding block of the system prompt.
Overlapping windows from the same document are kept as-is.
"""

from __future__ import annotations

from collections.abc import Sequence

from app.core.config import settings
from app.models.schemas import RetrievedChunk

NO_CONTEXT_MARKER = "[NO RELEVANT CONTEXT FOUND]"


class ContextAssembler:
    """
    Formats at most ``max_sources`` matches as numbered source blocks.

    Usage::

        assembler = ContextAssembler()
        context = assembler.assemble(matches)
    """

    def __init__(self, max_sources: int | None = None) -> None:
        self._max_sources = max_sources or settings.CONTEXT_MAX_SOURCES

    @property
    def max_sources(self) -> int:
        return self._max_sources

    def assemble(self, matches: Sequence[RetrievedChunk]) -> str:
        """
        Build the context string from matches in retrieval order.

        Returns ``NO_CONTEXT_MARKER`` when there are no matches, so the
        prompt can tell grounded from ungrounded answering.
        """
        selected = list(matches)[: self._max_sources]
        if not selected:
            return NO_CONTEXT_MARKER

        blocks = [
            f"# Source {i}\n{match.content}" for i, match in enumerate(selected, 1)
        ]
        return "\n\n".join(blocks)
