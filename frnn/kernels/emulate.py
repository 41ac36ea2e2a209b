"""Lane-accurate emulation of the reduction kernels with torch ops.

Used for buffers that are not on a CUDA device. Each function follows the
matching CUDA kernel in ``frnn/csrc/reduce.cu`` step for step, but runs every
lane of a warp, block or grid at once: a "lane tensor" is a torch tensor whose
last axis is the lane axis.

Preconditions (checked by the dispatcher, not here): ``1 <= n <= numel`` for
every buffer, the launch config is valid, and the output accumulator of
``grid_reduce_sum`` is zeroed when a plain sum is wanted.
"""

import torch

from frnn.expressions import get_transform


def _shfl_down(lanes, offset):
    # a lane whose source is past the end of the warp reads its own value
    width = lanes.shape[-1]
    return torch.cat((lanes[..., offset:], lanes[..., width - offset:]), dim=-1)


def _shfl_xor(lanes, mask):
    idx = torch.arange(lanes.shape[-1], device=lanes.device) ^ mask
    return lanes[..., idx]


def warp_reduce_sum(lanes):
    """Shift-down reduction; lane 0 holds the warp total afterwards.

    Takes ``log2(warp_size)`` steps with offsets ``warp_size / 2, ..., 1``.
    """
    offset = lanes.shape[-1] // 2
    while offset > 0:
        lanes = lanes + _shfl_down(lanes, offset)
        offset //= 2
    return lanes


def warp_all_reduce_sum(lanes):
    """XOR butterfly reduction; every lane holds the warp total afterwards."""
    mask = lanes.shape[-1] // 2
    while mask > 0:
        lanes = lanes + _shfl_xor(lanes, mask)
        mask //= 2
    return lanes


def _split_warps(lanes, warp_size):
    *batch, threads = lanes.shape
    return lanes.reshape(*batch, threads // warp_size, warp_size)


def _first_warp(partials, warp_size):
    # shared[lane] for lanes that have a warp to read from, 0 for the rest
    *batch, warps = partials.shape
    first = partials.new_zeros(*batch, warp_size)
    first[..., :warps] = partials
    return first


def block_reduce_sum(lanes, warp_size=32):
    """Block reduction; thread 0 of each block holds the block total.

    Args:
        lanes: ``(..., threads_per_block)`` values, one per thread.
        warp_size: Lanes per warp.

    Returns:
        Lane tensor of the same shape. Only thread 0 is meaningful.
    """
    per_warp = warp_reduce_sum(_split_warps(lanes, warp_size))
    partials = per_warp[..., 0]
    first = warp_reduce_sum(_first_warp(partials, warp_size))
    out = per_warp.reshape(lanes.shape).clone()
    out[..., :warp_size] = first
    return out


def block_reduce_sum_all(lanes, warp_size=32):
    """Block reduction where every thread ends with the block total."""
    per_warp = warp_all_reduce_sum(_split_warps(lanes, warp_size))
    partials = per_warp[..., 0]
    total = warp_all_reduce_sum(_first_warp(partials, warp_size))
    # every warp re-reads the shared slots and all-reduces them
    warps = partials.shape[-1]
    return total.repeat(*([1] * (total.dim() - 1)), warps)


def _per_thread(values, stride):
    """Grid-stride accumulation: thread ``t`` sums ``values[t::stride]``."""
    pad = -values.numel() % stride
    if pad:
        values = torch.cat((values, values.new_zeros(pad)))
    return values.reshape(-1, stride).sum(dim=0)


def grid_reduce_sum(inp, out, n, config, transform="identity", vector_width=1):
    """Accumulate ``sum(f(inp[:n]))`` into ``out[0]``.

    Each thread walks the input with a grid stride, loading ``vector_width``
    contiguous elements per step; the ``n % vector_width`` leftovers go to
    threads ``0 .. n % vector_width - 1``. Per-thread partials are reduced per
    block, and thread 0 of every block adds its total to ``out[0]``.
    """
    fn = get_transform(transform)
    values = fn(inp[:n])
    stride = config.stride

    n_vec = n // vector_width
    head = values[: n_vec * vector_width].reshape(n_vec, vector_width).sum(dim=1)
    partial = _per_thread(head, stride)
    partial = partial + _per_thread(values[n_vec * vector_width:], stride)

    lanes = partial.reshape(config.blocks_per_grid, config.threads_per_block)
    block_totals = block_reduce_sum(lanes, config.warp_size)[:, 0]

    # one atomic add per block, all into slot 0
    slots = torch.zeros(config.blocks_per_grid, dtype=torch.long, device=out.device)
    out.index_add_(0, slots, block_totals.to(out.dtype))
    return out


def block_sum(inp, out, n, config, transform="identity", broadcast=False):
    """Reduce each segment of ``threads_per_block`` elements with one block.

    With ``broadcast`` every element of a segment receives the segment total
    (``block_reduce_sum_all``); otherwise only the segment's first element
    does (``block_reduce_sum``).
    """
    fn = get_transform(transform)
    threads = config.threads_per_block
    values = fn(inp[:n])
    pad = -n % threads
    if pad:
        values = torch.cat((values, values.new_zeros(pad)))
    lanes = values.reshape(-1, threads)
    if broadcast:
        out[:n] = block_reduce_sum_all(lanes, config.warp_size).reshape(-1)[:n]
    else:
        out[0:n:threads] = block_reduce_sum(lanes, config.warp_size)[:, 0]
    return out


def broadcast_block_value(data, n, config):
    """Copy each block's first element over the rest of its segment.

    Element ``i`` belongs to segment ``s = i // threads_per_block``. Segments
    past the first wave of ``blocks_per_grid`` blocks take the value of block
    ``s % blocks_per_grid``.
    """
    threads = config.threads_per_block
    segments = -(-n // threads)
    sources = (torch.arange(segments, device=data.device) % config.blocks_per_grid) * threads
    values = data[sources]
    data[:n] = values.repeat_interleave(threads)[:n]
    return data


def softmax_normalize(inp, out, n, transform="exp"):
    """``out[i] = f(inp[i]) / out[i]`` for ``i < n``.

    ``out`` must already hold the denominators. No max subtraction is done,
    so large inputs overflow ``exp``.
    """
    fn = get_transform(transform)
    out[:n] = fn(inp[:n]) / out[:n]
    return out
