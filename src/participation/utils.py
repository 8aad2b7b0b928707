"""Utility functions for participation learning.

This module provides helpers for buffer allocation, training data loading,
initial cluster assignment and participation artifact management.
"""

import logging
from pathlib import Path
from typing import NamedTuple, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from src.common.exceptions import AllocationFailure

# Configure module logger
logger = logging.getLogger(__name__)

# Element type of assignment and indifference vectors (MPI_INT on the wire)
VECTOR_DTYPE = np.int32

# Participation artifact filenames
PARTICIPATION_FILENAME = "participation.joblib"
INDIFFERENCE_FILENAME = "indifference.joblib"


def allocate_vector(size: int, what: str) -> np.ndarray:
    """Allocate an uninitialized int vector.

    Raises:
        AllocationFailure: If the memory cannot be obtained.
    """
    try:
        return np.empty(size, dtype=VECTOR_DTYPE)
    except MemoryError as e:
        raise AllocationFailure(what, size) from e


def initial_participation(
    n_users: int,
    num_clusters: int,
    random_state: int = 42,
) -> np.ndarray:
    """Assign every user to a uniformly random cluster.

    Every worker calling this with the same arguments gets the same vector.

    Args:
        n_users: Population size N.
        num_clusters: Number of clusters K.
        random_state: Seed for reproducibility.

    Returns:
        Participation vector of length n_users with values in [0, num_clusters).
    """
    if n_users < 0 or num_clusters < 1:
        raise ValueError(
            f"Need n_users >= 0 and num_clusters >= 1, "
            f"got {n_users} and {num_clusters}"
        )
    rng = np.random.default_rng(random_state)
    return rng.integers(0, num_clusters, size=n_users).astype(VECTOR_DTYPE)


class TrainingData(NamedTuple):
    """Training matrix of a refinement run and its starting assignment.

    Row i of ``train`` is user ``user_ids[i]``; column j is ``item_ids[j]``.
    """

    train: csr_matrix
    user_ids: np.ndarray
    item_ids: np.ndarray
    participation: np.ndarray


def load_training_data(
    csv_path: str,
    num_clusters: int,
    user_col: str = "user_id",
    item_col: str = "item_id",
    value_col: Optional[str] = None,
    random_state: int = 42,
) -> TrainingData:
    """Read interactions from CSV and set up the first refinement step.

    Users and items are renumbered densely in sorted id order, so every
    worker reading the same file builds the same matrix and, with the same
    seed, the same starting assignment.

    Args:
        csv_path: Path to CSV file containing interaction data.
        num_clusters: Number of clusters K for the starting assignment.
        user_col: Name of the column containing user identifiers.
        item_col: Name of the column containing item identifiers.
        value_col: Optional column of interaction weights; duplicates are
            summed. Without it every interaction counts as 1.
        random_state: Seed of the starting assignment.

    Returns:
        TrainingData with a CSR matrix of shape (n_users, n_items).

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.
    """
    if not Path(csv_path).exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    df = pd.read_csv(csv_path)

    required_columns = {user_col, item_col} | ({value_col} if value_col else set())
    missing = required_columns - set(df.columns)
    if missing:
        raise ValueError(f"CSV missing required columns: {missing}")
    if df.empty:
        raise ValueError("Cannot build training data from empty CSV")

    if value_col is None:
        interactions = df[[user_col, item_col]].drop_duplicates()
        values = np.ones(len(interactions), dtype=np.float32)
    else:
        interactions = df.groupby([user_col, item_col], as_index=False)[value_col].sum()
        values = interactions[value_col].to_numpy(dtype=np.float32)

    rows, user_ids = pd.factorize(interactions[user_col], sort=True)
    cols, item_ids = pd.factorize(interactions[item_col], sort=True)

    train = csr_matrix(
        (values, (rows, cols)),
        shape=(len(user_ids), len(item_ids)),
        dtype=np.float32,
    )
    train.eliminate_zeros()

    logger.info(
        "Loaded training data",
        extra={
            "csv_path": str(csv_path),
            "num_users": train.shape[0],
            "num_items": train.shape[1],
            "nnz": train.nnz,
        },
    )

    return TrainingData(
        train=train,
        user_ids=np.asarray(user_ids),
        item_ids=np.asarray(item_ids),
        participation=initial_participation(train.shape[0], num_clusters, random_state),
    )


def save_participation(
    output_dir: str,
    participation: np.ndarray,
    indifference: Optional[np.ndarray] = None,
) -> None:
    """Save a participation vector, and optionally its indifference, to disk.

    Args:
        output_dir: Directory path where artifacts will be saved.
        participation: Cluster of every user.
        indifference: Indifference flag of every user.

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    participation_path = output_path / PARTICIPATION_FILENAME
    joblib.dump(np.asarray(participation, dtype=VECTOR_DTYPE), participation_path)
    logger.info(f"Saved participation to {participation_path}")

    if indifference is not None:
        indifference_path = output_path / INDIFFERENCE_FILENAME
        joblib.dump(np.asarray(indifference, dtype=VECTOR_DTYPE), indifference_path)
        logger.info(f"Saved indifference to {indifference_path}")


def load_participation(model_dir: str) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Load a participation vector and, if present, its indifference vector.

    Args:
        model_dir: Directory path where artifacts are stored.

    Returns:
        Tuple of (participation, indifference or None).

    Raises:
        FileNotFoundError: If the directory or participation file is missing.
    """
    model_path = Path(model_dir)
    if not model_path.exists():
        raise FileNotFoundError(f"Artifact directory does not exist: {model_dir}")

    participation_file = model_path / PARTICIPATION_FILENAME
    if not participation_file.exists():
        raise FileNotFoundError(f"Participation file not found: {participation_file}")
    participation = joblib.load(participation_file)
    logger.info(f"Loaded participation for {len(participation)} users")

    indifference = None
    indifference_file = model_path / INDIFFERENCE_FILENAME
    if indifference_file.exists():
        indifference = joblib.load(indifference_file)

    return participation, indifference
