"""Shard planning for participation learning.

Splits the user population [0, N) into contiguous, balanced, non-overlapping
ranges, one per worker. The first ``N mod P`` ranks get one extra user.
"""

import logging
from typing import List, NamedTuple

# Configure module logger
logger = logging.getLogger(__name__)


class ShardRange(NamedTuple):
    """Contiguous range of user ids owned by one worker."""

    start: int
    length: int

    @property
    def stop(self) -> int:
        return self.start + self.length

    def users(self) -> range:
        return range(self.start, self.stop)


def plan_shard(num_users: int, num_workers: int, rank: int) -> ShardRange:
    """Compute the range of users owned by ``rank``.

    Args:
        num_users: Population size N. Must be non-negative.
        num_workers: Worker count P. Must be positive.
        rank: Worker rank in [0, P).

    Returns:
        ShardRange for the worker. Empty when N < P and the rank is high.

    Raises:
        ValueError: If any argument is out of range.

    Example:
        >>> plan_shard(10, 3, 1)
        ShardRange(start=4, length=3)
    """
    if num_users < 0:
        raise ValueError(f"num_users must be non-negative, got {num_users}")
    if num_workers < 1:
        raise ValueError(f"num_workers must be positive, got {num_workers}")
    if not 0 <= rank < num_workers:
        raise ValueError(f"rank {rank} outside [0, {num_workers})")

    base, remainder = divmod(num_users, num_workers)
    length = base + (1 if rank < remainder else 0)
    start = base * rank + min(rank, remainder)

    # The last worker always ends exactly at N
    if rank == num_workers - 1 and start + length != num_users:
        logger.warning(
            "Shard plan did not end at the population size, correcting tail",
            extra={
                "num_users": num_users,
                "num_workers": num_workers,
                "planned_start": start,
                "planned_length": length,
            },
        )
        length = num_users - start

    return ShardRange(start, length)


def plan_all_shards(num_users: int, num_workers: int) -> List[ShardRange]:
    """Plan the shard of every rank, ordered by rank."""
    return [plan_shard(num_users, num_workers, rank) for rank in range(num_workers)]


def displacements(sizes: List[int]) -> List[int]:
    """Write offsets of each shard in the merged array (exclusive prefix sum).

    Example:
        >>> displacements([4, 3, 3])
        [0, 4, 7]
    """
    offsets = []
    offset = 0
    for size in sizes:
        offsets.append(offset)
        offset += size
    return offsets
