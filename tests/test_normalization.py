"""
Embedding Normalization Unit Tests

Verifies shape resolution (flat vector, token matrix, batched matrices),
mean pooling, batch handling and FormatError reporting.
"""

from __future__ import annotations

import numpy as np
import pytest

from app.core.exceptions import FormatError, ServiceError
from app.services.normalization import mean_pool, normalize, normalize_batch


class TestNormalize:
    """Tests for single-input shape resolution."""

    def test_flat_vector_returned_unchanged(self) -> None:
        assert normalize([0.1, -0.2, 0.3]) == [0.1, -0.2, 0.3]

    def test_integer_vector_becomes_floats(self) -> None:
        result = normalize([1, 2, 3])

        assert result == [1.0, 2.0, 3.0]
        assert all(isinstance(v, float) for v in result)

    def test_single_token_matrix(self) -> None:
        assert normalize([[1.0, 2.0, 3.0]]) == [1.0, 2.0, 3.0]

    def test_equal_rows_pool_to_that_row(self) -> None:
        row = [0.5, -1.5, 2.0]

        assert normalize([row, row, row]) == row

    def test_token_matrix_is_mean_pooled(self) -> None:
        assert normalize([[1.0, 2.0], [3.0, 4.0]]) == [2.0, 3.0]

    def test_batch_takes_first_matrix(self) -> None:
        raw = [[[1.0, 1.0], [3.0, 5.0]], [[100.0, 100.0]]]

        assert normalize(raw) == [2.0, 3.0]

    def test_numpy_array_accepted(self) -> None:
        raw = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)

        assert normalize(raw) == pytest.approx([2.0, 3.0])

    def test_deterministic(self) -> None:
        raw = [[0.1, 0.2], [0.3, 0.4]]

        assert normalize(raw) == normalize(raw)


class TestMalformed:
    """Shapes that must be rejected with FormatError."""

    @pytest.mark.parametrize(
        "raw",
        [
            [[1, "x"]],
            ["a", "b"],
            [],
            {"embedding": [1.0]},
            None,
            "0.1, 0.2",
            [[1.0, 2.0], [3.0]],
            [[1.0, 2.0], 3.0],
            [True, False],
        ],
    )
    def test_raises_format_error(self, raw: object) -> None:
        with pytest.raises(FormatError):
            normalize(raw)

    def test_error_names_structure(self) -> None:
        with pytest.raises(FormatError, match="non-numeric leaf"):
            normalize([[1, "x"]])

    def test_ragged_error_names_rows(self) -> None:
        with pytest.raises(FormatError, match="ragged"):
            normalize([[1.0, 2.0], [3.0]])

    def test_format_error_is_service_error(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalize([])

        assert exc_info.value.service == "embedding"


class TestMeanPool:
    """Tests for mean_pool."""

    def test_averages_each_dimension(self) -> None:
        assert mean_pool([[0.0, 10.0], [2.0, 20.0], [4.0, 30.0]]) == [2.0, 20.0]

    def test_empty_matrix_does_not_divide_by_zero(self) -> None:
        assert mean_pool([]) == []


class TestNormalizeBatch:
    """Tests for batched responses."""

    def test_mixed_items_normalized_independently(self) -> None:
        raw = [[1.0, 2.0], [[1.0, 3.0], [3.0, 5.0]]]

        assert normalize_batch(raw, 2) == [[1.0, 2.0], [2.0, 4.0]]

    def test_item_count_must_match(self) -> None:
        with pytest.raises(FormatError, match="2 items for 3 inputs"):
            normalize_batch([[1.0], [2.0]], 3)

    def test_non_list_rejected(self) -> None:
        with pytest.raises(FormatError):
            normalize_batch({"error": "loading"}, 1)
