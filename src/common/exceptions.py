"""Custom exceptions for ClusterRefine.

Defines specific exception types for the failure modes of a refinement step.
"""

from typing import Any, Dict, Optional


class RefinementError(Exception):
    """Base exception for ClusterRefine errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(RefinementError):
    """Raised when the step configuration or its inputs are invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class AllocationFailure(RefinementError):
    """Raised when a shard or merge buffer cannot be allocated."""

    def __init__(self, what: str, size: int):
        message = f"Failed to allocate {what} ({size} entries)"
        super().__init__(
            message=message,
            details={"buffer": what, "size": size},
        )


class CollectiveMismatchError(RefinementError):
    """Raised when worker-reported shard sizes disagree with the population."""

    def __init__(
        self,
        sizes: list,
        total: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Shard sizes {sizes} sum to {sum(sizes)}, "
            f"expected {total} users"
        )
        super().__init__(
            message=message,
            details=details or {"sizes": list(sizes), "total": total},
        )


class OracleContractViolation(RefinementError):
    """Raised when a training-error oracle produces unusable scores."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class CollectiveAbortedError(RefinementError):
    """Raised when a collective cannot complete because a peer failed."""

    def __init__(self, operation: str, rank: int):
        message = f"Collective '{operation}' aborted on rank {rank}: a peer failed"
        super().__init__(
            message=message,
            details={"operation": operation, "rank": rank},
        )
