"""Participation learning step.

Recomputes the best cluster of every user with the work split across the
worker group, and leaves every worker holding the same new participation and
indifference vectors.
"""

import logging
import time
from functools import partial
from typing import Callable, NamedTuple

import numpy as np
from scipy.sparse import csc_matrix, spmatrix

from src.common.exceptions import ConfigurationError
from src.common.metrics import metrics_service
from src.participation.collective import Communicator, abort_on_failure
from src.participation.config import RefinementConfig
from src.participation.executor import execute_shard
from src.participation.reassign import ErrorOracle
from src.participation.sharding import plan_shard
from src.participation.synchronizer import synchronize_results

# Configure module logger
logger = logging.getLogger(__name__)

# training_error(train, model, user, cluster) -> error of the user under the cluster
TrainingError = Callable[[spmatrix, csc_matrix, int, int], float]


class StepResult(NamedTuple):
    """Output of one refinement step, identical on every worker."""

    participation: np.ndarray
    indifference: np.ndarray
    moved: int
    indifferent: int


def cluster_columns(cluster: int, cluster_capacity: int) -> slice:
    """Columns of the model store holding the weights of ``cluster``."""
    return slice(cluster * cluster_capacity, (cluster + 1) * cluster_capacity)


def prepare_model(
    model: spmatrix,
    num_clusters: int,
    cluster_capacity: int,
) -> csc_matrix:
    """Size the model store for every cluster and index it by column.

    The model is widened to ``num_clusters * cluster_capacity`` columns when
    narrower; it is never narrowed. The input is not modified.

    Returns:
        The model in CSC form, so each cluster's columns are cheap to slice.
    """
    prepared = csc_matrix(model, copy=True)
    n_rows, n_cols = prepared.shape
    required = num_clusters * cluster_capacity

    if required > n_cols:
        logger.debug(
            "Widening model store",
            extra={"from_columns": n_cols, "to_columns": required},
        )
        prepared.resize((n_rows, required))

    return prepared


def _validate_participation(
    participation: np.ndarray,
    num_users: int,
    num_clusters: int,
) -> np.ndarray:
    participation = np.asarray(participation)
    if participation.size and not np.issubdtype(participation.dtype, np.integer):
        raise ConfigurationError(
            f"Participation must hold integer cluster ids, "
            f"got dtype {participation.dtype}",
            details={"dtype": str(participation.dtype)},
        )
    if participation.shape != (num_users,):
        raise ConfigurationError(
            f"Participation has shape {participation.shape}, "
            f"expected ({num_users},)",
            details={"shape": participation.shape, "num_users": num_users},
        )
    if num_users and (participation.min() < 0 or participation.max() >= num_clusters):
        raise ConfigurationError(
            f"Participation contains clusters outside [0, {num_clusters})",
            details={
                "min": int(participation.min()),
                "max": int(participation.max()),
                "num_clusters": num_clusters,
            },
        )
    return participation


def refine_assignments(
    config: RefinementConfig,
    participation: np.ndarray,
    score: ErrorOracle,
    comm: Communicator,
) -> StepResult:
    """Run one reassignment step given a ready-to-use error oracle.

    Must be called by every worker of ``comm`` with the same participation
    vector and an oracle over the same data.

    Args:
        config: Worker topology and cluster count.
        participation: Current cluster of every user.
        score: Training-error oracle, score(user, cluster).
        comm: Communicator of the worker group.

    Returns:
        StepResult with the new vectors, identical on every worker.

    Raises:
        ConfigurationError: If the config disagrees with ``comm`` or the
            participation vector is invalid.
        AllocationFailure: If a result buffer cannot be allocated.
        CollectiveMismatchError: If shard sizes do not cover the population.
    """
    start_time = time.time()

    # Inputs may be bad on a single rank, so a failure must tear down the group
    with abort_on_failure(comm):
        config.validate()
        if (config.num_workers, config.worker_rank) != (comm.size, comm.rank):
            raise ConfigurationError(
                f"Config topology (rank {config.worker_rank} of {config.num_workers}) "
                f"does not match communicator (rank {comm.rank} of {comm.size})",
                details={
                    "config_rank": config.worker_rank,
                    "config_workers": config.num_workers,
                    "comm_rank": comm.rank,
                    "comm_workers": comm.size,
                },
            )

        num_users = len(participation)
        participation = _validate_participation(
            participation, num_users, config.num_clusters
        )

        shard = plan_shard(num_users, config.num_workers, config.worker_rank)
        logger.info(
            "Starting participation step",
            extra={
                "rank": config.worker_rank,
                "num_users": num_users,
                "num_clusters": config.num_clusters,
                "shard_start": shard.start,
                "shard_length": shard.length,
            },
        )

        local = execute_shard(shard, participation, score, config.num_clusters)
        synced = synchronize_results(comm, local, num_users)

    moved = int(np.count_nonzero(synced.participation != participation))
    indifferent = int(np.count_nonzero(synced.indifference))
    duration_ms = (time.time() - start_time) * 1000

    if config.is_coordinator:
        metrics_service.record_step(duration_ms, num_users, moved, indifferent)
        logger.info(
            "Participation step completed",
            extra={
                "num_users": num_users,
                "moved": moved,
                "indifferent": indifferent,
                "duration_ms": round(duration_ms, 2),
            },
        )

    return StepResult(synced.participation, synced.indifference, moved, indifferent)


def learn_participation(
    config: RefinementConfig,
    train: spmatrix,
    model: spmatrix,
    participation: np.ndarray,
    training_error: TrainingError,
    comm: Communicator,
) -> StepResult:
    """Learn the new cluster assignment of every user of ``train``.

    Args:
        config: Worker topology and cluster layout.
        train: Training matrix; its rows are the users.
        model: Per-cluster model store, read only.
        participation: Current cluster of every row of ``train``.
        training_error: Oracle called as training_error(train, model, user,
            cluster) with the prepared (CSC, widened) model.
        comm: Communicator of the worker group.

    Returns:
        StepResult, identical on every worker.
    """
    num_users = train.shape[0]
    with abort_on_failure(comm):
        if len(participation) != num_users:
            raise ConfigurationError(
                f"Participation covers {len(participation)} users, "
                f"training data has {num_users}",
                details={"participation": len(participation), "num_users": num_users},
            )

        prepared = prepare_model(model, config.num_clusters, config.cluster_capacity)
    score = partial(training_error, train, prepared)

    return refine_assignments(config, participation, score, comm)
