"""Storage error translation.

Driver-level timeouts and unavailability are retryable from the caller's
point of view. They are re-raised as ``TransientStorageError`` so the service
layer and HTTP adapter never depend on driver exception types.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from cassandra import OperationTimedOut, ReadTimeout, Unavailable, WriteTimeout
from cassandra.cluster import NoHostAvailable


logger = structlog.get_logger(__name__)

TRANSIENT_DRIVER_ERRORS = (
    OperationTimedOut,
    ReadTimeout,
    WriteTimeout,
    Unavailable,
    NoHostAvailable,
)


class TransientStorageError(Exception):
    """Retryable persistence failure (timeout, unavailable replicas, contention)."""

    def __init__(
        self,
        message: str = "Storage temporarily unavailable, retry the request",
        code: str = "storage_unavailable",
    ):
        self.message = message
        self.code = code
        super().__init__(message)


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Re-raise transient driver errors as ``TransientStorageError``."""
    try:
        yield
    except TRANSIENT_DRIVER_ERRORS as e:
        logger.warning(
            "storage_transient_error",
            operation=operation,
            error_type=type(e).__name__,
            error=str(e),
        )
        raise TransientStorageError from e
