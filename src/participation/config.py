"""Configuration for a participation learning step.

Holds the worker topology and the cluster layout consumed by the step. The
values are fixed for the duration of a run.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.common.exceptions import ConfigurationError

if TYPE_CHECKING:
    from src.participation.collective import Communicator

# Default configuration constants
DEFAULT_NUM_WORKERS = 1
DEFAULT_WORKER_RANK = 0
DEFAULT_CLUSTER_CAPACITY = 0

# Rank that merges shard results before broadcasting them
COORDINATOR_RANK = 0


@dataclass(frozen=True)
class RefinementConfig:
    """Worker identity and cluster layout for one refinement run.

    Attributes:
        num_clusters: Number of user clusters K.
        num_workers: Size of the worker pool P.
        worker_rank: Identity of this worker, in [0, num_workers).
        cluster_capacity: Number of model columns owned by each cluster.
            The model store is widened to num_clusters * cluster_capacity.
    """

    num_clusters: int
    num_workers: int = DEFAULT_NUM_WORKERS
    worker_rank: int = DEFAULT_WORKER_RANK
    cluster_capacity: int = DEFAULT_CLUSTER_CAPACITY

    def validate(self) -> "RefinementConfig":
        """Check the configuration and return it unchanged.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if self.num_workers < 1:
            raise ConfigurationError(
                f"num_workers must be at least 1, got {self.num_workers}",
                details={"num_workers": self.num_workers},
            )
        if not 0 <= self.worker_rank < self.num_workers:
            raise ConfigurationError(
                f"worker_rank {self.worker_rank} outside [0, {self.num_workers})",
                details={
                    "worker_rank": self.worker_rank,
                    "num_workers": self.num_workers,
                },
            )
        if self.num_clusters < 1:
            raise ConfigurationError(
                f"num_clusters must be at least 1, got {self.num_clusters}",
                details={"num_clusters": self.num_clusters},
            )
        if self.cluster_capacity < 0:
            raise ConfigurationError(
                f"cluster_capacity must be non-negative, got {self.cluster_capacity}",
                details={"cluster_capacity": self.cluster_capacity},
            )
        return self

    @property
    def is_coordinator(self) -> bool:
        return self.worker_rank == COORDINATOR_RANK

    @classmethod
    def from_communicator(
        cls,
        comm: "Communicator",
        num_clusters: int,
        cluster_capacity: int = DEFAULT_CLUSTER_CAPACITY,
    ) -> "RefinementConfig":
        """Build a validated config whose topology matches ``comm``.

        Args:
            comm: Communicator the step will run on.
            num_clusters: Number of user clusters K.
            cluster_capacity: Model columns per cluster.

        Returns:
            Validated RefinementConfig.
        """
        return cls(
            num_clusters=num_clusters,
            num_workers=comm.size,
            worker_rank=comm.rank,
            cluster_capacity=cluster_capacity,
        ).validate()
