"""
Failure types for identity resolution.

Core code raises these internally; Resolver.identify turns them into a
Failure record so callers never see an exception.
"""
from dataclasses import dataclass
from typing import Optional

STORE_FAILURE = "store_failure"
CONSISTENCY_FAILURE = "consistency_failure"


class ResolutionError(Exception):
    """Base class for failures surfaced by the resolution core."""

    kind = "resolution_failure"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StoreFailure(ResolutionError):
    """Raised when an underlying persistence operation fails."""

    kind = STORE_FAILURE

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class ConsistencyFailure(ResolutionError):
    """Raised when a linkage invariant is found broken mid-operation."""

    kind = CONSISTENCY_FAILURE


@dataclass
class Failure:
    """A typed failure returned in place of a result."""
    kind: str
    message: str

    @classmethod
    def from_error(cls, error: ResolutionError) -> "Failure":
        return cls(kind=error.kind, message=error.message)
