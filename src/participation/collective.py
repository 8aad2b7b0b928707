"""Blocking collective communication between refinement workers.

Two implementations share the ``Communicator`` interface:

- ``MPICommunicator`` runs one worker per MPI process via mpi4py.
- ``LocalCommunicator`` runs a group of workers as threads of one process,
  which is how single-machine runs and the test-suite drive the step.

Every collective blocks until all workers of the group have issued it. The
coordinator (rank 0) is the root of every gather and broadcast.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence

import numpy as np

from src.common.exceptions import CollectiveAbortedError
from src.participation.config import COORDINATOR_RANK
from src.participation.utils import VECTOR_DTYPE, allocate_vector

# Configure module logger
logger = logging.getLogger(__name__)


class Communicator(Protocol):
    """Collective operations used by the refinement step."""

    rank: int
    size: int

    def barrier(self) -> None:
        """Block until every worker reaches the barrier."""
        ...

    def gather_int(self, value: int) -> Optional[List[int]]:
        """Collect one int per worker on the coordinator, ordered by rank."""
        ...

    def bcast(self, value: Any) -> Any:
        """Send a small picklable value from the coordinator to every worker."""
        ...

    def gatherv(
        self,
        local: np.ndarray,
        counts: Optional[Sequence[int]],
        displs: Optional[Sequence[int]],
        total: int,
    ) -> Optional[np.ndarray]:
        """Place each worker's ``local`` at ``displs[rank]`` of a merged array.

        ``counts`` and ``displs`` are only read on the coordinator. Returns
        the merged array of length ``total`` there, None elsewhere.
        """
        ...

    def bcast_array(self, array: Optional[np.ndarray], total: int) -> np.ndarray:
        """Copy the coordinator's array of length ``total`` to every worker."""
        ...

    def abort(self, errorcode: int = 1) -> None:
        """Tear down the whole worker group."""
        ...


class MPICommunicator:
    """Communicator backed by an mpi4py communicator."""

    def __init__(self, comm: Any = None):
        """Wrap ``comm``, or MPI.COMM_WORLD when not given.

        Raises:
            ImportError: If mpi4py is not installed.
        """
        try:
            from mpi4py import MPI
        except ImportError as e:
            raise ImportError(
                "MPI execution requires mpi4py. "
                "Install it with: pip install 'clusterrefine[mpi]'"
            ) from e

        self._mpi = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

    def barrier(self) -> None:
        self.comm.Barrier()

    def gather_int(self, value: int) -> Optional[List[int]]:
        return self.comm.gather(int(value), root=COORDINATOR_RANK)

    def bcast(self, value: Any) -> Any:
        return self.comm.bcast(value, root=COORDINATOR_RANK)

    def gatherv(
        self,
        local: np.ndarray,
        counts: Optional[Sequence[int]],
        displs: Optional[Sequence[int]],
        total: int,
    ) -> Optional[np.ndarray]:
        sendbuf = [np.ascontiguousarray(local, dtype=VECTOR_DTYPE), self._mpi.INT]

        merged = None
        recvbuf = None
        if self.rank == COORDINATOR_RANK:
            merged = allocate_vector(total, "merged vector")
            recvbuf = [merged, tuple(counts), tuple(displs), self._mpi.INT]

        self.comm.Gatherv(sendbuf, recvbuf, root=COORDINATOR_RANK)
        return merged

    def bcast_array(self, array: Optional[np.ndarray], total: int) -> np.ndarray:
        if self.rank == COORDINATOR_RANK:
            buf = np.ascontiguousarray(array, dtype=VECTOR_DTYPE)
        else:
            buf = allocate_vector(total, "broadcast vector")
        self.comm.Bcast([buf, self._mpi.INT], root=COORDINATOR_RANK)
        return buf

    def abort(self, errorcode: int = 1) -> None:
        self.comm.Abort(errorcode)


class LocalGroup:
    """Shared state of an in-process worker group.

    Each collective is a pair of barrier waits around a slot exchange: every
    worker publishes into its slot, all wait, every worker reads a snapshot,
    all wait again so no slot is overwritten while still being read.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Group size must be positive, got {size}")
        self.size = size
        self._barrier = threading.Barrier(size)
        self._slots: List[Any] = [None] * size

    def communicator(self, rank: int) -> "LocalCommunicator":
        return LocalCommunicator(self, rank)

    def abort(self) -> None:
        """Break the barrier so every waiting or future collective fails."""
        self._barrier.abort()

    @property
    def aborted(self) -> bool:
        return self._barrier.broken

    def wait(self, operation: str, rank: int) -> None:
        try:
            self._barrier.wait()
        except threading.BrokenBarrierError as e:
            raise CollectiveAbortedError(operation, rank) from e

    def exchange(self, operation: str, rank: int, value: Any) -> List[Any]:
        self._slots[rank] = value
        self.wait(operation, rank)
        snapshot = list(self._slots)
        self.wait(operation, rank)
        return snapshot


class LocalCommunicator:
    """Communicator for one worker of a ``LocalGroup``."""

    def __init__(self, group: LocalGroup, rank: int):
        if not 0 <= rank < group.size:
            raise ValueError(f"rank {rank} outside [0, {group.size})")
        self.group = group
        self.rank = rank
        self.size = group.size

    def barrier(self) -> None:
        self.group.wait("barrier", self.rank)

    def gather_int(self, value: int) -> Optional[List[int]]:
        snapshot = self.group.exchange("gather", self.rank, int(value))
        return snapshot if self.rank == COORDINATOR_RANK else None

    def bcast(self, value: Any) -> Any:
        payload = value if self.rank == COORDINATOR_RANK else None
        return self.group.exchange("bcast", self.rank, payload)[COORDINATOR_RANK]

    def gatherv(
        self,
        local: np.ndarray,
        counts: Optional[Sequence[int]],
        displs: Optional[Sequence[int]],
        total: int,
    ) -> Optional[np.ndarray]:
        snapshot = self.group.exchange("gatherv", self.rank, local)
        if self.rank != COORDINATOR_RANK:
            return None

        merged = allocate_vector(total, "merged vector")
        for rank, part in enumerate(snapshot):
            offset, count = displs[rank], counts[rank]
            merged[offset:offset + count] = part[:count]
        return merged

    def bcast_array(self, array: Optional[np.ndarray], total: int) -> np.ndarray:
        payload = array if self.rank == COORDINATOR_RANK else None
        source = self.group.exchange("bcast_array", self.rank, payload)[COORDINATOR_RANK]

        # Every worker gets its own buffer
        buf = allocate_vector(total, "broadcast vector")
        buf[:] = source
        return buf

    def abort(self, errorcode: int = 1) -> None:
        logger.error(
            "Aborting local worker group",
            extra={"rank": self.rank, "errorcode": errorcode},
        )
        self.group.abort()


@contextmanager
def abort_on_failure(comm: Communicator, errorcode: int = 1) -> Iterator[None]:
    """Tear down the worker group if the enclosed block raises.

    Under MPI this terminates every process; in a local group it makes every
    peer's pending collective fail instead of waiting forever.
    """
    try:
        yield
    except Exception as e:
        logger.error(
            f"Worker failed, aborting group: {e}",
            extra={"rank": comm.rank, "error_type": type(e).__name__},
            exc_info=True,
        )
        comm.abort(errorcode)
        raise


def run_local_group(size: int, fn: Callable[[LocalCommunicator], Any]) -> List[Any]:
    """Run ``fn(comm)`` on every worker of a new local group.

    Args:
        size: Number of workers.
        fn: Worker body, called once per rank with that rank's communicator.

    Returns:
        Return values of ``fn`` ordered by rank.

    Raises:
        Exception: The first worker failure, preferring the original error
            over the CollectiveAbortedError it caused on the peers.
    """
    group = LocalGroup(size)

    def run_rank(rank: int) -> Any:
        comm = group.communicator(rank)
        try:
            return fn(comm)
        except BaseException:
            group.abort()
            raise

    with ThreadPoolExecutor(max_workers=size) as pool:
        futures = [pool.submit(run_rank, rank) for rank in range(size)]
        errors = [f.exception() for f in futures]

    failures = [e for e in errors if e is not None]
    if failures:
        root_causes = [e for e in failures if not isinstance(e, CollectiveAbortedError)]
        raise (root_causes or failures)[0]

    return [f.result() for f in futures]
