"""
Chunking Service

Splits normalized document text into overlapping fixed-size windows
suitable for embedding and vector retrieval.

Window law:
    window ``i`` covers ``[start, start + size)``; the next window starts
    at ``previous_end - overlap`` (clamped at 0). Iteration stops once a
    window reaches the end of the text, so every character is covered and
    starts are strictly increasing.

Defaults (800 chars, 100 overlap) stay inside the 256-token window of
all-MiniLM-L6-v2 for typical prose.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 800
DEFAULT_CHUNK_OVERLAP: int = 100

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_SPACES_AROUND_NEWLINE = re.compile(r" *\n *")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """
    Normalize extracted text before chunking.

    CR/CRLF become LF, control characters are dropped, horizontal
    whitespace runs collapse to one space, blank-line runs are bounded to
    two newlines and the result is stripped.
    """
    text = unicodedata.normalize("NFC", text or "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACES_AROUND_NEWLINE.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def _validate(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError(f"chunk_size ({size}) must be positive")
    if overlap < 0:
        raise ValueError(f"chunk_overlap ({overlap}) must not be negative")
    if overlap >= size:
        raise ValueError(
            f"chunk_overlap ({overlap}) must be less than chunk_size ({size})"
        )


@dataclass(frozen=True)
class ChunkWindows(Iterable[str]):
    """
    Lazy, restartable sequence of chunk strings over one text.

    Each call to ``iter()`` walks the text again from offset 0, so the
    same object can be consumed more than once.
    """

    text: str
    size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_CHUNK_OVERLAP

    def __post_init__(self) -> None:
        _validate(self.size, self.overlap)

    def spans(self) -> Iterator[tuple[int, int]]:
        """Yield ``(start, end)`` offsets of every window, blank ones included."""
        length = len(self.text)
        start = 0
        while start < length:
            end = min(start + self.size, length)
            yield start, end
            if end == length:
                break
            start = max(end - self.overlap, 0)

    def __iter__(self) -> Iterator[str]:
        for start, end in self.spans():
            window = self.text[start:end]
            if window.strip():
                yield window


def chunk(
    text: str,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> ChunkWindows:
    """
    Split pre-normalized text into overlapping windows.

    Raises:
        ValueError: If ``overlap >= size`` (the window would not advance).
    """
    return ChunkWindows(text=text, size=size, overlap=overlap)


class TextChunker:
    """
    Normalizes text and splits it into ordered chunk strings.

    The list position of each chunk is its ``chunk_index``; blank windows
    are dropped before indexing, so indices are contiguous from 0.

    Usage::

        chunker = TextChunker(chunk_size=800, chunk_overlap=100)
        pieces = chunker.split(raw_text)

    Args:
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared between consecutive chunks.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        _validate(chunk_size, chunk_overlap)
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    @property
    def chunk_size(self) -> int:
        """Maximum characters per chunk."""
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        """Characters shared between consecutive chunks."""
        return self._chunk_overlap

    def split(self, text: str) -> list[str]:
        """
        Normalize ``text`` and return its chunks in document order.

        Returns an empty list when nothing but whitespace remains after
        normalization; callers treat that as an empty-text outcome.
        """
        normalized = normalize_text(text)
        pieces = list(chunk(normalized, self._chunk_size, self._chunk_overlap))

        logger.info(
            "Split %d chars into %d chunks (size=%d, overlap=%d)",
            len(normalized),
            len(pieces),
            self._chunk_size,
            self._chunk_overlap,
        )
        return pieces
