"""frnn — fixed-rank tensors and parallel reduction kernels for RNN work.

Provides:
- Tensor: N-dimensional array with lazy arithmetic expressions, row-major
  multi-index access and transposing slice views
- Reduction kernels: warp, block and grid sum reductions (CUDA, with a
  lane-accurate torch emulation on other devices)
- Softmax built on the grid reduction
- Cell: LSTM cell state record

Usage:
    import frnn

    a = frnn.Tensor([2, 3])
    b = frnn.Tensor(a + a + a)
    total = frnn.reduce_sum(b)
    probs = frnn.softmax(b)
"""

import logging

from frnn.cell import Cell
from frnn.errors import (
    AllocationFailure,
    CopyFailure,
    DimensionMismatch,
    ExpiredOperand,
    IndexOutOfRange,
    InvalidArgumentCount,
    TensorError,
)
from frnn.expressions import TensorExpression, TensorSlice, exp, sigmoid, tanh
from frnn.functional import reduce_sum, softmax
from frnn.indexing import IndexMode, flat_offset
from frnn.kernels import LaunchConfig
from frnn.tensor import Tensor

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "Tensor",
    "TensorExpression",
    "TensorSlice",
    "IndexMode",
    "flat_offset",
    "exp",
    "tanh",
    "sigmoid",
    "reduce_sum",
    "softmax",
    "LaunchConfig",
    "Cell",
    "TensorError",
    "InvalidArgumentCount",
    "IndexOutOfRange",
    "DimensionMismatch",
    "ExpiredOperand",
    "AllocationFailure",
    "CopyFailure",
]
