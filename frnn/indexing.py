"""Row-major offset calculation for multi-dimensional indices.

For dimensions ``dims`` and indices ``idx`` of the same length::

    offset = sum(idx[d] * stride[d])
    stride[d] = prod(dims[d + 1:])      # last stride is 1

The walk runs from the first dimension toward the last. The index count is
checked once up front and the accumulated offset is plain loop state, so
concurrent readers never share scratch values.
"""

import enum
from typing import NamedTuple, Sequence

from frnn.errors import IndexOutOfRange, InvalidArgumentCount, TensorError


class IndexMode(enum.Enum):
    """How Tensor accessors surface indexing errors.

    STRICT raises. LENIENT logs the error and degrades: a bad dimension size
    query returns 0 and a bad multi-index resolves to flat offset 0.
    """

    STRICT = "strict"
    LENIENT = "lenient"


class OffsetResult(NamedTuple):
    """Either a resolved offset or the error that prevented it."""

    offset: int | None
    error: TensorError | None

    @property
    def ok(self) -> bool:
        return self.error is None


def strides(dims: Sequence[int]) -> tuple[int, ...]:
    out = [1] * len(dims)
    for d in range(len(dims) - 2, -1, -1):
        out[d] = out[d + 1] * dims[d + 1]
    return tuple(out)


def flat_offset(dims: Sequence[int], indices: Sequence[int]) -> int:
    """Map per-dimension indices to an offset into a row-major buffer.

    Args:
        dims: Size of each dimension.
        indices: One index per dimension.

    Returns:
        The flat offset.

    Raises:
        InvalidArgumentCount: ``len(indices) != len(dims)``.
        IndexOutOfRange: an index is negative or ``>= dims[d]``.
    """
    rank = len(dims)
    if len(indices) != rank:
        raise InvalidArgumentCount(rank, len(indices))

    offset = 0
    for d, (idx, stride) in enumerate(zip(indices, strides(dims))):
        if idx < 0 or idx >= dims[d]:
            raise IndexOutOfRange(d, dims[d], idx)
        offset += idx * stride
    return offset


def resolve_offset(dims: Sequence[int], indices: Sequence[int]) -> OffsetResult:
    try:
        return OffsetResult(flat_offset(dims, indices), None)
    except (InvalidArgumentCount, IndexOutOfRange) as e:
        return OffsetResult(None, e)


def unravel(offset: int, dims: Sequence[int]) -> tuple[int, ...]:
    """Inverse of ``flat_offset`` for an in-range offset."""
    idx = [0] * len(dims)
    for d in range(len(dims) - 1, -1, -1):
        if dims[d]:
            offset, idx[d] = divmod(offset, dims[d])
    return tuple(idx)
