"""Fixed-rank N-dimensional Tensor backed by a flat torch buffer.

A Tensor owns one contiguous buffer and the list of its dimension sizes; the
rank is set at construction and never changes. Basic usage::

    t = Tensor([2, 2, 2])            # rank 3, 8 zeros
    u = Tensor(t + t + t)            # evaluate a lazy expression
    t[1, 0, 1] = 5.0                 # multi-index write
    s = Tensor(m.slice(1, 0))        # transpose a rank-2 tensor

Multi-index errors follow the tensor's ``IndexMode``: strict raises, lenient
logs and falls back to flat element 0 (``size(dim)`` falls back to 0).
"""

import logging
import math

import torch

from frnn.config import get_settings
from frnn.errors import (
    CopyFailure,
    DimensionMismatch,
    IndexOutOfRange,
    report_copy_failure,
)
from frnn.expressions import TensorExpression, TensorSlice
from frnn.indexing import IndexMode, resolve_offset

log = logging.getLogger(__name__)


def _check_dims(dims, rank):
    dims = tuple(int(d) for d in dims)
    if rank is not None and len(dims) != rank:
        raise DimensionMismatch(
            f"Tensor of rank {rank} given {len(dims)} dimension sizes {list(dims)}"
        )
    if any(d < 0 for d in dims):
        raise DimensionMismatch(f"Negative dimension size in {list(dims)}")
    return dims


def _resolve_mode(index_mode):
    if index_mode is None:
        index_mode = get_settings().index_mode
    return IndexMode(index_mode)


class Tensor(TensorExpression):
    """Owner of a flat data buffer and its dimension sizes.

    Args:
        dims: Dimension sizes, or a ``TensorExpression`` to evaluate. When
            omitted, ``rank`` zero-sized dimensions are created.
        rank: Expected number of dimensions. Defaults to ``len(dims)``.
        dtype: Element type of the buffer. Defaults to torch's default dtype,
            or to the expression's own type when evaluating one.
        device: Device of the buffer. Defaults to the expression's device
            when evaluating one.
        index_mode: ``IndexMode`` (or its value) for multi-index access.
            Defaults to the ``FRNN_INDEX_MODE`` setting.
    """

    _owns_data = True

    def __init__(
        self,
        dims=None,
        *,
        rank=None,
        dtype=None,
        device=None,
        index_mode=None,
    ):
        self.index_mode = _resolve_mode(index_mode)
        if isinstance(dims, TensorExpression):
            self._dims = _check_dims(dims.dim_sizes(), rank)
            data = self._materialize(dims)
            if dtype is not None:
                data = data.to(dtype=dtype)
            if device is not None:
                data = data.to(device=device)
            self._data = data
            return
        if dims is None:
            if rank is None:
                raise DimensionMismatch("A default Tensor needs an explicit rank")
            dims = (0,) * rank
        self._dims = _check_dims(dims, rank)
        self._data = torch.zeros(math.prod(self._dims), dtype=dtype, device=device)

    @classmethod
    def from_data(cls, data, dims, *, rank=None, index_mode=None):
        """Adopt an existing buffer.

        Args:
            data: torch tensor (flattened, never resized) or a flat sequence.
            dims: Dimension sizes; their product must equal the element count.

        Raises:
            DimensionMismatch: the element count or the rank does not match.
        """
        buffer = torch.as_tensor(data).reshape(-1)
        dims = _check_dims(dims, rank)
        if buffer.numel() != math.prod(dims):
            raise DimensionMismatch(
                f"Buffer of {buffer.numel()} elements cannot hold dimensions "
                f"{list(dims)} ({math.prod(dims)} elements)"
            )
        tensor = cls.__new__(cls)
        tensor.index_mode = _resolve_mode(index_mode)
        tensor._dims = dims
        tensor._data = buffer.contiguous()
        return tensor

    @classmethod
    def evaluate_expression(cls, expression, *, rank=None, index_mode=None):
        return cls(expression, rank=rank, index_mode=index_mode)

    @staticmethod
    def _materialize(expression):
        size = expression.size()
        buffer = expression.evaluate().reshape(-1)
        if buffer.numel() != size:
            raise DimensionMismatch(
                f"Expression produced {buffer.numel()} elements, expected {size}"
            )
        # the walker may return a view of a source buffer; the new Tensor owns a copy
        return buffer.clone().contiguous()

    # TensorExpression protocol

    def size(self, dim=None):
        """Total element count, or the size of dimension ``dim``.

        An invalid ``dim`` raises ``IndexOutOfRange`` in strict mode and
        returns 0 (after logging) in lenient mode.
        """
        if dim is None:
            return self._data.numel()
        if 0 <= dim < len(self._dims):
            return self._dims[dim]
        error = IndexOutOfRange(
            dim, len(self._dims), dim,
            message=f"Dimension {dim} out of range for a rank {len(self._dims)} tensor",
        )
        if self.index_mode is IndexMode.STRICT:
            raise error
        log.error("%s", error)
        return 0

    def dim_sizes(self):
        return self._dims

    def element_at(self, i):
        return self._data[i].item()

    def evaluate(self):
        return self._data

    @property
    def device(self):
        return self._data.device

    @property
    def dtype(self):
        return self._data.dtype

    def rank(self):
        return len(self._dims)

    def data(self):
        return self._data

    # Element access

    def _offset(self, indices):
        result = resolve_offset(self._dims, indices)
        if result.ok:
            return result.offset
        if self.index_mode is IndexMode.STRICT:
            raise result.error
        log.error("%s; using element 0", result.error)
        return 0

    def at(self, *indices):
        """Read the element at one index per dimension."""
        return self._data[self._offset(indices)].item()

    def set_at(self, indices, value):
        """Write the element at one index per dimension."""
        self._data[self._offset(tuple(indices))] = value

    def __getitem__(self, key):
        if isinstance(key, tuple):
            return self.at(*key)
        return self.element_at(key)

    def __setitem__(self, key, value):
        if isinstance(key, tuple):
            self.set_at(key, value)
        else:
            self._data[key] = value

    def slice(self, *selectors):
        """View this Tensor with its dimensions remapped, e.g. ``m.slice(1, 0)``."""
        return TensorSlice(self, selectors)

    # Interop

    def to(self, device):
        """Copy of this Tensor on ``device``."""
        try:
            data = self._data.to(device, copy=True)
        except RuntimeError as e:
            report_copy_failure("tensor data")
            raise CopyFailure("tensor data") from e
        return Tensor.from_data(data, self._dims, index_mode=self.index_mode)

    def tolist(self):
        return self._data.tolist()

    def __len__(self):
        return self.size()

    def __iter__(self):
        return iter(self.tolist())

    def __repr__(self):
        return (
            f"Tensor(dims={list(self._dims)}, dtype={self._data.dtype}, "
            f"device={self._data.device})"
        )
