"""Tests for shard planning.

Covers coverage, balance and the degenerate worker/population sizes.
"""

import logging

import pytest

from src.participation.sharding import (
    ShardRange,
    displacements,
    plan_all_shards,
    plan_shard,
)


@pytest.mark.parametrize("num_workers", range(1, 13))
def test_shards_cover_population_exactly_once(num_workers: int) -> None:
    """Every user in [0, N) is owned by exactly one worker, in rank order."""
    for num_users in range(0, 65):
        shards = plan_all_shards(num_users, num_workers)

        owned = [user for shard in shards for user in shard.users()]
        assert owned == list(range(num_users))

        # Contiguous: each shard starts where the previous one stopped
        for previous, current in zip(shards, shards[1:]):
            assert current.start == previous.stop
        assert shards[-1].stop == num_users


@pytest.mark.parametrize("num_workers", range(1, 13))
def test_shards_are_balanced(num_workers: int) -> None:
    """Lengths differ by at most one and the larger shards come first."""
    for num_users in range(0, 65):
        lengths = [s.length for s in plan_all_shards(num_users, num_workers)]
        base, remainder = divmod(num_users, num_workers)

        assert lengths == [base + 1] * remainder + [base] * (num_workers - remainder)


def test_ten_users_three_workers() -> None:
    """N=10, P=3 gives [0, 4), [4, 7), [7, 10)."""
    assert plan_all_shards(10, 3) == [
        ShardRange(0, 4),
        ShardRange(4, 3),
        ShardRange(7, 3),
    ]


def test_single_worker_owns_everything() -> None:
    """With one worker the whole population is a single shard."""
    assert plan_shard(17, 1, 0) == ShardRange(0, 17)


def test_empty_population() -> None:
    """With N=0 every shard is empty."""
    for shard in plan_all_shards(0, 4):
        assert shard.length == 0
        assert list(shard.users()) == []


def test_more_workers_than_users() -> None:
    """High ranks get empty but valid shards when N < P."""
    shards = plan_all_shards(3, 5)

    assert [s.length for s in shards] == [1, 1, 1, 0, 0]
    assert shards[3] == ShardRange(3, 0)
    assert shards[4] == ShardRange(3, 0)


def test_planning_is_pure() -> None:
    """Identical arguments always give the identical range."""
    for rank in range(7):
        assert plan_shard(1000, 7, rank) == plan_shard(1000, 7, rank)


def test_tail_correction_never_fires(caplog: pytest.LogCaptureFixture) -> None:
    """The balanced formula always ends at N on its own."""
    with caplog.at_level(logging.WARNING, logger="src.participation.sharding"):
        for num_workers in range(1, 33):
            for num_users in range(0, 200):
                plan_shard(num_users, num_workers, num_workers - 1)

    assert caplog.records == []


def test_displacements_match_planned_starts() -> None:
    """Prefix sums of shard lengths reproduce the planned starts."""
    for num_workers in range(1, 9):
        for num_users in range(0, 40):
            shards = plan_all_shards(num_users, num_workers)
            offsets = displacements([s.length for s in shards])
            assert offsets == [s.start for s in shards]


@pytest.mark.parametrize(
    "num_users, num_workers, rank",
    [(-1, 2, 0), (10, 0, 0), (10, 3, 3), (10, 3, -1)],
)
def test_invalid_arguments(num_users: int, num_workers: int, rank: int) -> None:
    """Out-of-range arguments are rejected."""
    with pytest.raises(ValueError):
        plan_shard(num_users, num_workers, rank)
