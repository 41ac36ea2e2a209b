"""Host-level operations built from the kernel suite.

    - reduce_sum(x)  → grid-wide sum of f(x) in a one-element buffer
    - softmax(x)     → f(x) / sum(f(x)) over every element of x

Both accept a ``Tensor``, any lazy expression (evaluated first) or a torch
tensor, and launch on whatever device the data lives on. Data that is not
float32 or float64 is converted to torch's default dtype first.
"""

import logging

import torch

from frnn.errors import AllocationFailure, report_alloc_failure
from frnn.expressions import TensorExpression
from frnn.kernels import (
    KERNEL_DTYPES,
    LaunchConfig,
    broadcast_block_value,
    grid_reduce_sum,
    softmax_normalize,
)
from frnn.tensor import Tensor

log = logging.getLogger(__name__)


def _flat(x):
    if isinstance(x, TensorExpression):
        data = x.evaluate().reshape(-1)
    else:
        data = torch.as_tensor(x).reshape(-1)
    if data.dtype not in KERNEL_DTYPES:
        # integer, bool and half buffers are summed in the default float type
        log.debug("promoting %s input to %s", data.dtype, torch.get_default_dtype())
        data = data.to(torch.get_default_dtype())
    return data.contiguous()


def _zeros(n, like, name):
    try:
        return torch.zeros(n, dtype=like.dtype, device=like.device)
    except RuntimeError as e:
        report_alloc_failure(name)
        raise AllocationFailure(name) from e


def reduce_sum(
    x,
    config: LaunchConfig | None = None,
    transform: str = "identity",
    vector_width: int = 1,
) -> torch.Tensor:
    """Sum ``f(x)`` over every element with the grid reduction kernel.

    Args:
        x: Tensor, expression or torch tensor (any shape, at least one element).
        config: Launch geometry. Defaults to ``LaunchConfig.for_size(n)``.
        transform: Per-element transform applied before summing.
        vector_width: Elements per load (1, 2 or 4).

    Returns:
        One-element torch tensor holding the sum.
    """
    data = _flat(x)
    n = data.numel()
    if config is None:
        config = LaunchConfig.for_size(n)
    out = _zeros(1, data, "reduction accumulator")
    return grid_reduce_sum(data, out, n, config, transform, vector_width)


def softmax(x, config: LaunchConfig | None = None, transform: str = "exp"):
    """Normalise ``f(x)`` so that all elements sum to one.

    Runs three launches: the grid reduction of ``f(x)`` into ``out[0]``, a
    single-source ``broadcast_block_value`` that copies the denominator to
    every element, and ``softmax_normalize``. The maximum is not subtracted
    first, so inputs large enough to overflow ``exp`` produce inf/nan.

    Args:
        x: Tensor, expression or torch tensor.
        config: Launch geometry for the reduction and the normalisation.
        transform: Per-element transform, ``exp`` for a softmax.

    Returns:
        A ``Tensor`` with the input's dimensions when given a Tensor or an
        expression, otherwise a flat torch tensor.
    """
    data = _flat(x)
    n = data.numel()
    if config is None:
        config = LaunchConfig.for_size(n)

    out = _zeros(n, data, "softmax output")
    grid_reduce_sum(data, out, n, config, transform)
    # one source block: every segment copies out[0]
    spread = LaunchConfig(config.threads_per_block, 1, config.warp_size)
    broadcast_block_value(out, n, spread)
    softmax_normalize(data, out, n, config, transform)

    if isinstance(x, TensorExpression):
        return Tensor.from_data(out, x.dim_sizes())
    return out
