"""Tests for per-user cluster reassignment and the error table oracle."""

from typing import List, Tuple

import numpy as np
import pytest

from src.common.exceptions import OracleContractViolation
from src.participation.reassign import (
    ErrorTable,
    Reassignment,
    choose_cluster,
    compute_error_row,
    reassign_user,
)


def test_strict_improvement_moves_to_lowest_index() -> None:
    """[5, 2, 2] from cluster 0 moves to cluster 1, not indifferent."""
    result = choose_cluster(np.array([5.0, 2.0, 2.0]), current=0)
    assert result == Reassignment(cluster=1, indifferent=0)


def test_stays_on_unique_optimum() -> None:
    """[1, 3, 3] from cluster 0 stays and is not indifferent."""
    result = choose_cluster(np.array([1.0, 3.0, 3.0]), current=0)
    assert result == Reassignment(cluster=0, indifferent=0)


def test_stays_on_tie() -> None:
    """[2, 2, 5] from cluster 0 stays but is indifferent."""
    result = choose_cluster(np.array([2.0, 2.0, 5.0]), current=0)
    assert result == Reassignment(cluster=0, indifferent=1)


def test_current_cluster_kept_when_tied_with_lower_index() -> None:
    """A tie never pulls the user to a lower-indexed cluster."""
    result = choose_cluster(np.array([1.0, 1.0, 1.0]), current=2)
    assert result == Reassignment(cluster=2, indifferent=1)


def test_tie_above_minimum_is_not_indifference() -> None:
    """Only ties at the minimum count."""
    result = choose_cluster(np.array([4.0, 1.0, 4.0]), current=1)
    assert result == Reassignment(cluster=1, indifferent=0)


def test_moved_user_is_never_indifferent() -> None:
    """A user that moves has indifference 0 even with ties at the new minimum."""
    result = choose_cluster(np.array([9.0, 3.0, 0.5, 0.5]), current=1)
    assert result == Reassignment(cluster=2, indifferent=0)


def test_single_cluster() -> None:
    """With K=1 the user stays and cannot be indifferent."""
    assert choose_cluster(np.array([7.0]), current=0) == Reassignment(0, 0)


def test_oracle_called_once_per_cluster_in_order() -> None:
    """The oracle is queried exactly once for each cluster, 0..K-1."""
    calls: List[Tuple[int, int]] = []

    def score(user: int, cluster: int) -> float:
        calls.append((user, cluster))
        return float((cluster - 2) ** 2)

    result = reassign_user(score, user=5, current=0, num_clusters=4)

    assert calls == [(5, 0), (5, 1), (5, 2), (5, 3)]
    assert result == Reassignment(cluster=2, indifferent=0)


def test_compute_error_row() -> None:
    """The error row holds one score per cluster."""
    row = compute_error_row(lambda u, k: u * 10.0 + k, user=3, num_clusters=3)
    np.testing.assert_array_equal(row, [30.0, 31.0, 32.0])


def test_matches_sequential_scan_on_random_rows() -> None:
    """Agrees with a strict-improvement scan starting from the current cluster."""
    rng = np.random.default_rng(7)
    for _ in range(500):
        errors = rng.integers(0, 4, size=5).astype(float)
        current = int(rng.integers(0, 5))

        best, assignment = errors[current], current
        for k in range(5):
            if errors[k] < best:
                best, assignment = errors[k], k
        indifferent = 0
        if assignment == current:
            indifferent = int(any(errors[k] == best for k in range(5) if k != current))

        assert choose_cluster(errors, current) == (assignment, indifferent)


def test_error_table_lookup() -> None:
    """ErrorTable answers score(user, cluster) from its matrix."""
    table = ErrorTable(np.array([[1.0, 2.0], [3.0, 4.0]]))

    assert table.num_users == 2
    assert table.num_clusters == 2
    assert table(1, 0) == 3.0


def test_error_table_rejects_non_finite() -> None:
    """NaN or infinite errors violate the oracle contract."""
    with pytest.raises(OracleContractViolation, match="non-finite"):
        ErrorTable(np.array([[1.0, np.nan], [np.inf, 0.0]]))


def test_error_table_rejects_wrong_shape() -> None:
    """The table must be (users, clusters)."""
    with pytest.raises(OracleContractViolation):
        ErrorTable(np.array([1.0, 2.0]))
