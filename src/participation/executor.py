"""Shard execution.

Runs the per-user reassignment over every user of a worker's shard.
"""

import logging
from typing import NamedTuple

import numpy as np

from src.participation.reassign import ErrorOracle, reassign_user
from src.participation.sharding import ShardRange
from src.participation.utils import allocate_vector

# Configure module logger
logger = logging.getLogger(__name__)


class ShardResult(NamedTuple):
    """Local results aligned to a shard: index i is user ``shard.start + i``."""

    assignments: np.ndarray
    indifference: np.ndarray


def execute_shard(
    shard: ShardRange,
    participation: np.ndarray,
    score: ErrorOracle,
    num_clusters: int,
) -> ShardResult:
    """Reassign every user of ``shard`` in increasing user order.

    Args:
        shard: Range of users owned by this worker. May be empty.
        participation: Current cluster of every user (length N).
        score: Training-error oracle.
        num_clusters: Number of clusters K.

    Returns:
        ShardResult with one entry per user of the shard.

    Raises:
        AllocationFailure: If the result buffers cannot be allocated.
    """
    assignments = allocate_vector(shard.length, "shard assignments")
    indifference = allocate_vector(shard.length, "shard indifference")

    for offset, user in enumerate(shard.users()):
        cluster, indifferent = reassign_user(
            score, user, int(participation[user]), num_clusters
        )
        assignments[offset] = cluster
        indifference[offset] = indifferent

    moved = int(np.count_nonzero(assignments != participation[shard.start:shard.stop]))
    logger.debug(
        "Shard reassigned",
        extra={
            "shard_start": shard.start,
            "shard_length": shard.length,
            "moved": moved,
        },
    )

    return ShardResult(assignments, indifference)
