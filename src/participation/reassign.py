"""Per-user cluster reassignment.

For one user, scores every cluster with the training-error oracle, moves the
user to the cluster with the lowest error, and records whether an unchanged
assignment was a unique optimum or a tie.
"""

from typing import Callable, NamedTuple

import numpy as np

from src.common.exceptions import OracleContractViolation

# score(user, cluster) -> training error of the user under that cluster's model
ErrorOracle = Callable[[int, int], float]


class Reassignment(NamedTuple):
    """Outcome of reassigning a single user."""

    cluster: int
    indifferent: int


def compute_error_row(score: ErrorOracle, user: int, num_clusters: int) -> np.ndarray:
    """Score ``user`` against every cluster, in increasing cluster order.

    The oracle is called exactly once per cluster.
    """
    return np.fromiter(
        (score(user, cluster) for cluster in range(num_clusters)),
        dtype=np.float64,
        count=num_clusters,
    )


def choose_cluster(errors: np.ndarray, current: int) -> Reassignment:
    """Pick the new cluster for a user from its error row.

    A cluster replaces the current one only if its error is strictly lower;
    among strictly better clusters the lowest index wins. When the user stays,
    ``indifferent`` is 1 if another cluster reaches the same error.

    Args:
        errors: Training error of the user under each cluster.
        current: The user's current cluster.

    Returns:
        Reassignment with the new cluster and the indifference flag.

    Example:
        >>> choose_cluster(np.array([2.0, 2.0, 5.0]), 0)
        Reassignment(cluster=0, indifferent=1)
    """
    # First pass: the minimum, keeping the current cluster unless beaten
    best_cluster = current
    lowest = int(np.argmin(errors))
    if errors[lowest] < errors[current]:
        best_cluster = lowest
    best_error = errors[best_cluster]

    if best_cluster != current:
        return Reassignment(best_cluster, 0)

    # Second pass: any other cluster tied at the minimum
    ties = errors == best_error
    ties[current] = False
    return Reassignment(current, int(ties.any()))


def reassign_user(
    score: ErrorOracle,
    user: int,
    current: int,
    num_clusters: int,
) -> Reassignment:
    """Compute the new cluster and indifference flag of one user."""
    errors = compute_error_row(score, user, num_clusters)
    return choose_cluster(errors, current)


class ErrorTable:
    """Oracle backed by a precomputed (num_users, num_clusters) error matrix.

    Useful when training errors are computed in bulk, for example by a
    vectorized model evaluation, before reassignment runs.
    """

    def __init__(self, errors: np.ndarray):
        errors = np.asarray(errors, dtype=np.float64)
        if errors.ndim != 2:
            raise OracleContractViolation(
                f"Error table must be 2-dimensional, got shape {errors.shape}",
                details={"shape": errors.shape},
            )
        if not np.all(np.isfinite(errors)):
            bad_users = np.unique(np.nonzero(~np.isfinite(errors))[0])
            raise OracleContractViolation(
                f"Error table has non-finite values for {len(bad_users)} users",
                details={"users": bad_users[:10].tolist()},
            )
        self.errors = errors

    @property
    def num_users(self) -> int:
        return self.errors.shape[0]

    @property
    def num_clusters(self) -> int:
        return self.errors.shape[1]

    def __call__(self, user: int, cluster: int) -> float:
        return float(self.errors[user, cluster])
