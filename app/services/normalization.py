"""
Embedding Normalization

Converts the variably-shaped tensor output of a feature-extraction service
into one fixed-length vector per input text.

Accepted shapes for a single input, resolved in this order:
    1. ``[d0, d1, ...]``            already pooled vector, returned as-is
    2. ``[[...], [...], ...]``      token x dimension matrix, mean-pooled
    3. ``[[[...], ...], ...]``      batch of matrices, element 0 mean-pooled

Anything else (ragged rows, non-numeric leaves, empty input) raises
``FormatError`` naming the offending structure. Length checks against the
declared model dimension belong to the embedding client, not here.
"""

from __future__ import annotations

import numbers
from collections.abc import Sequence
from typing import Any

import numpy as np

from app.core.exceptions import FormatError

_PREVIEW_CHARS = 80


def _is_scalar(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _describe(value: Any) -> str:
    text = repr(value)
    if len(text) > _PREVIEW_CHARS:
        text = text[:_PREVIEW_CHARS] + "..."
    return f"{type(value).__name__} {text}"


def _as_python(raw: Any) -> Any:
    """Unwrap numpy arrays/scalars so shape checks see plain lists."""
    if isinstance(raw, np.ndarray):
        return raw.tolist()
    return raw


def _check_vector(values: Sequence[Any], path: str) -> None:
    for i, value in enumerate(values):
        if not _is_scalar(value):
            raise FormatError(
                f"Unexpected embedding structure: non-numeric leaf at {path}[{i}] "
                f"({_describe(value)})"
            )


def _check_matrix(rows: Sequence[Any], path: str) -> None:
    width: int | None = None
    for t, row in enumerate(rows):
        if not _is_sequence(row):
            raise FormatError(
                f"Unexpected embedding structure: expected a token row at "
                f"{path}[{t}], got {_describe(row)}"
            )
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise FormatError(
                f"Unexpected embedding structure: ragged token matrix at {path} "
                f"(row 0 has {width} values, row {t} has {len(row)})"
            )
        _check_vector(row, f"{path}[{t}]")


def mean_pool(matrix: Sequence[Sequence[float]]) -> list[float]:
    """
    Average a token x dimension matrix over the token axis.

    A matrix with no tokens (T=0) has no known width, so it pools to an
    empty vector instead of dividing by zero. Callers that need a fixed
    dimension reject it there: the embedding client raises
    ``DimensionMismatch`` with ``actual=0``.
    """
    if len(matrix) == 0:
        return []
    pooled = np.asarray(matrix, dtype=np.float64).mean(axis=0)
    return [float(v) for v in pooled]


def normalize(raw: Any) -> list[float]:
    """
    Resolve one input's raw tensor output into a single vector.

    Args:
        raw: Decoded JSON (nested lists) or a numpy array.

    Returns:
        The pooled vector as a list of floats.

    Raises:
        FormatError: If the structure matches none of the accepted shapes.
    """
    raw = _as_python(raw)
    if not _is_sequence(raw) or len(raw) == 0:
        raise FormatError(
            f"Unexpected embedding structure: expected a non-empty array, "
            f"got {_describe(raw)}"
        )

    first = raw[0]

    if _is_scalar(first):
        _check_vector(raw, "root")
        return [float(v) for v in raw]

    if _is_sequence(first) and (len(first) == 0 or not _is_sequence(first[0])):
        _check_matrix(raw, "root")
        return mean_pool(raw)

    if _is_sequence(first) and _is_sequence(first[0]):
        _check_matrix(first, "root[0]")
        return mean_pool(first)

    raise FormatError(
        f"Unexpected embedding structure: unsupported element {_describe(first)}"
    )


def normalize_batch(raw: Any, expected: int) -> list[list[float]]:
    """
    Resolve a batched response into one vector per input text.

    Each item may independently be a pooled vector or a token matrix.

    Raises:
        FormatError: If the response is not a list of ``expected`` items or
            any item has an unsupported shape.
    """
    raw = _as_python(raw)
    if not _is_sequence(raw):
        raise FormatError(
            f"Unexpected batch embedding structure: {_describe(raw)}"
        )
    if len(raw) != expected:
        raise FormatError(
            f"Unexpected batch embedding structure: {len(raw)} items "
            f"for {expected} inputs"
        )
    return [normalize(item) for item in raw]
