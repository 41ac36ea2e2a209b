"""Parallel reduction kernels over flat buffers.

Every entry point takes raw one-dimensional torch buffers, an element count
``n`` and a caller-supplied ``LaunchConfig``. CUDA buffers run the compiled
kernels from ``frnn/csrc/reduce.cu``; all other buffers run the lane-accurate
emulation in ``frnn.kernels.emulate``. Both paths follow the same algorithm.

Host-side preconditions (raised as ValueError before launch):
    - ``1 <= n <= numel`` of every buffer involved.
    - Buffers are contiguous and share one device and dtype.
    - That dtype is float32 or float64.
    - ``vector_width`` is 1, 2 or 4.

Floating-point sums are deterministic only up to reassociation; atomically
accumulated results can differ in the last bits between launches.
"""

import logging

import torch

from frnn.expressions import get_transform
from frnn.kernels import emulate
from frnn.kernels._ext import load_extension
from frnn.kernels.emulate import (
    block_reduce_sum,
    block_reduce_sum_all,
    warp_all_reduce_sum,
    warp_reduce_sum,
)
from frnn.kernels.launch import LaunchConfig

log = logging.getLogger(__name__)

__all__ = [
    "KERNEL_DTYPES",
    "LaunchConfig",
    "warp_reduce_sum",
    "warp_all_reduce_sum",
    "block_reduce_sum",
    "block_reduce_sum_all",
    "grid_reduce_sum",
    "block_sum",
    "broadcast_block_value",
    "softmax_normalize",
]


KERNEL_DTYPES = (torch.float32, torch.float64)


def _check(n, *buffers):
    first = buffers[0]
    for buf in buffers:
        if buf.dim() != 1 or not buf.is_contiguous():
            raise ValueError("Kernel buffers must be flat and contiguous")
        if buf.dtype not in KERNEL_DTYPES:
            raise ValueError(
                f"Kernel buffers must be float32 or float64, got {buf.dtype}"
            )
        if buf.device != first.device or buf.dtype != first.dtype:
            raise ValueError(
                f"Kernel buffers must share device and dtype, got "
                f"{first.device}/{first.dtype} and {buf.device}/{buf.dtype}"
            )
    if n < 1 or any(n > buf.numel() for buf in buffers):
        raise ValueError(f"Element count {n} outside [1, {min(b.numel() for b in buffers)}]")


def _backend(buf, config):
    """The compiled module for CUDA buffers when usable, else None."""
    if not buf.is_cuda:
        return None
    ext = load_extension()
    if ext is None:
        return None
    if config.warp_size != 32:
        raise ValueError(f"CUDA launches use 32-lane warps, got {config.warp_size}")
    return ext


def grid_reduce_sum(inp, out, n, config, transform="identity", vector_width=1):
    """Add ``sum(f(inp[:n]))`` to ``out[0]``; ``out`` is zeroed by the caller."""
    _check(n, inp)
    _check(1, out)
    if out.device != inp.device or out.dtype != inp.dtype:
        raise ValueError("Accumulator must match the input's device and dtype")
    if vector_width not in (1, 2, 4):
        raise ValueError(f"vector_width must be 1, 2 or 4, got {vector_width}")
    get_transform(transform)

    ext = _backend(inp, config)
    if ext is not None:
        log.debug("grid_reduce_sum: CUDA n=%d %s", n, config)
        ext.grid_reduce_sum(
            inp, out, n, config.threads_per_block, config.blocks_per_grid,
            transform, vector_width,
        )
        return out
    log.debug("grid_reduce_sum: emulated n=%d %s", n, config)
    return emulate.grid_reduce_sum(inp, out, n, config, transform, vector_width)


def block_sum(inp, out, n, config, transform="identity", broadcast=False):
    """Per-segment block sums, see ``emulate.block_sum``."""
    _check(n, inp, out)
    get_transform(transform)
    ext = _backend(inp, config)
    if ext is not None:
        ext.block_sum(
            inp, out, n, config.threads_per_block, config.blocks_per_grid,
            transform, broadcast,
        )
        return out
    return emulate.block_sum(inp, out, n, config, transform, broadcast)


def broadcast_block_value(data, n, config):
    """Spread each block's first element over its segment."""
    _check(n, data)
    ext = _backend(data, config)
    if ext is not None:
        ext.broadcast_block_value(
            data, n, config.threads_per_block, config.blocks_per_grid
        )
        return data
    return emulate.broadcast_block_value(data, n, config)


def softmax_normalize(inp, out, n, config, transform="exp"):
    """``out[i] = f(inp[i]) / out[i]``; ``out`` must hold the denominators."""
    _check(n, inp, out)
    get_transform(transform)
    ext = _backend(inp, config)
    if ext is not None:
        ext.softmax_normalize(
            inp, out, n, config.threads_per_block, config.blocks_per_grid, transform
        )
        return out
    return emulate.softmax_normalize(inp, out, n, transform)


def cuda_extension_available():
    return torch.cuda.is_available() and load_extension() is not None
