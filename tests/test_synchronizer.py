"""Tests for merging and redistributing shard results."""

import numpy as np
import pytest

from src.common.exceptions import CollectiveMismatchError
from src.participation.collective import run_local_group
from src.participation.executor import ShardResult
from src.participation.sharding import plan_all_shards
from src.participation.synchronizer import synchronize_results


def _local_result(start: int, length: int) -> ShardResult:
    """Distinctive per-user values so misplacement is visible."""
    users = np.arange(start, start + length, dtype=np.int32)
    return ShardResult(assignments=users * 3 + 1, indifference=users % 2)


@pytest.mark.parametrize("num_workers", [1, 2, 3, 4, 7])
@pytest.mark.parametrize("num_users", [0, 1, 5, 10, 23])
def test_every_worker_ends_with_identical_ordered_vectors(
    num_workers: int, num_users: int
) -> None:
    """After synchronization all workers hold the same vectors, ordered by user."""
    shards = plan_all_shards(num_users, num_workers)

    def body(comm):
        shard = shards[comm.rank]
        return synchronize_results(
            comm, _local_result(shard.start, shard.length), num_users
        )

    results = run_local_group(num_workers, body)

    users = np.arange(num_users, dtype=np.int32)
    for synced in results:
        np.testing.assert_array_equal(synced.participation, users * 3 + 1)
        np.testing.assert_array_equal(synced.indifference, users % 2)
        assert synced.participation.shape == (num_users,)


def test_placement_follows_reported_sizes() -> None:
    """Offsets come from the sizes in rank order, not from any planned range."""
    # Uneven split that the planner would never produce
    parts = [np.array([9, 8], dtype=np.int32), np.array([], dtype=np.int32),
             np.array([7, 6, 5], dtype=np.int32)]

    def body(comm):
        local = parts[comm.rank]
        return synchronize_results(comm, ShardResult(local, local % 2), 5)

    for synced in run_local_group(3, body):
        np.testing.assert_array_equal(synced.participation, [9, 8, 7, 6, 5])
        np.testing.assert_array_equal(synced.indifference, [1, 0, 1, 0, 1])


def test_size_mismatch_fails_on_every_worker() -> None:
    """Sizes that do not sum to N raise CollectiveMismatchError everywhere."""
    raised = []

    def body(comm):
        local = _local_result(0, 2)
        try:
            synchronize_results(comm, local, num_users=5)
        except CollectiveMismatchError as e:
            raised.append(comm.rank)
            assert e.details["sizes"] == [2, 2]
            raise

    with pytest.raises(CollectiveMismatchError, match="expected 5 users"):
        run_local_group(2, body)

    assert sorted(raised) == [0, 1]
