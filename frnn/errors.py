"""Error taxonomy for frnn tensors and kernels.

Indexing errors are raised by the offset calculator and either propagated
(strict mode) or logged and degraded by the Tensor accessors (lenient mode).
Construction mismatches always propagate. Device memory failures are first
reported through the ``report_*`` hooks, which only log.
"""

import logging

log = logging.getLogger(__name__)


class TensorError(Exception):
    """Base class for all frnn errors."""


class InvalidArgumentCount(TensorError, TypeError):
    """A multi-index access supplied the wrong number of indices."""

    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(
            f"Invalid number of indices: expected {expected}, got {got}"
        )


class IndexOutOfRange(TensorError, IndexError):
    """An index met or exceeded the size of its dimension."""

    def __init__(self, dimension: int, limit: int, got: int, message: str | None = None):
        self.dimension = dimension
        self.limit = limit
        self.got = got
        super().__init__(
            message
            or f"Index {got} out of range for dimension {dimension} (size {limit})"
        )


class DimensionMismatch(TensorError, ValueError):
    """Sizes or dimension lists that must agree do not."""


class ExpiredOperand(TensorError, ReferenceError):
    """An expression outlived a Tensor it borrows from."""


class AllocationFailure(TensorError, MemoryError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Could not allocate memory for {name}")


class CopyFailure(TensorError, RuntimeError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Could not copy {name} to/from the device")


def report_alloc_failure(name: str) -> None:
    """Log that the buffer ``name`` could not be allocated.

    Does not raise; the caller decides how to continue.
    """
    log.error("Error: Could not allocate memory for %s", name)


def report_copy_failure(name: str) -> None:
    """Log that the buffer ``name`` could not be copied host<->device."""
    log.error("Error: Could not copy %s to/from the device", name)
