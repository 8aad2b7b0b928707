"""Synchronization of shard results across workers.

Merges the variable-length results of every worker into full vectors ordered
by user id on the coordinator, then broadcasts them so that every worker ends
the step with identical participation and indifference vectors.
"""

import logging
from typing import NamedTuple

import numpy as np

from src.common.exceptions import CollectiveMismatchError
from src.participation.collective import Communicator
from src.participation.config import COORDINATOR_RANK
from src.participation.executor import ShardResult
from src.participation.sharding import displacements

# Configure module logger
logger = logging.getLogger(__name__)


class SyncResult(NamedTuple):
    """Full vectors, identical on every worker after synchronization."""

    participation: np.ndarray
    indifference: np.ndarray


def synchronize_results(
    comm: Communicator,
    local: ShardResult,
    num_users: int,
) -> SyncResult:
    """Gather every worker's shard results and broadcast the merged vectors.

    Placement in the merged vectors is derived only from the shard sizes the
    workers report, in rank order; worker-reported ranges are never trusted.

    Steps:
        1. Barrier: no worker communicates before all finished their shard.
        2. Size exchange: the coordinator gathers every shard length.
        3. Offsets: prefix sum of the lengths gives each worker's displacement.
        4. Variable-length gather of assignments, then indifference.
        5. Broadcast of both merged vectors to every worker.

    Args:
        comm: Communicator of the worker group.
        local: This worker's shard results.
        num_users: Population size N.

    Returns:
        SyncResult with length-N participation and indifference vectors.

    Raises:
        CollectiveMismatchError: On every worker, if the reported sizes do
            not add up to ``num_users``.
    """
    local_size = int(local.assignments.shape[0])

    comm.barrier()

    sizes = comm.gather_int(local_size)

    # Share the sizes so a mismatch fails identically on every worker
    sizes = comm.bcast(sizes)
    if len(sizes) != comm.size or sum(sizes) != num_users:
        raise CollectiveMismatchError(
            sizes,
            num_users,
            details={"sizes": sizes, "total": num_users, "workers": comm.size},
        )

    counts = displs = None
    if comm.rank == COORDINATOR_RANK:
        counts = sizes
        displs = displacements(sizes)
        logger.debug(
            "Merging shard results",
            extra={"sizes": counts, "displacements": displs},
        )

    merged_assignments = comm.gatherv(local.assignments, counts, displs, num_users)
    merged_indifference = comm.gatherv(local.indifference, counts, displs, num_users)

    participation = comm.bcast_array(merged_assignments, num_users)
    indifference = comm.bcast_array(merged_indifference, num_users)

    return SyncResult(participation, indifference)
