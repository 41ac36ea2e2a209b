"""Build and load the CUDA extension on first use.

The kernels in ``frnn/csrc`` are compiled with ``torch.utils.cpp_extension``
the first time a CUDA buffer reaches the kernel suite and cached for the
process. When CUDA (or a compiler) is unavailable, or FRNN_USE_CUDA_EXT=0,
``load_extension()`` returns None and callers use the torch emulation.
"""

import functools
import logging
import os

import torch

from frnn.config import get_settings

log = logging.getLogger(__name__)

CSRC_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "csrc")
SOURCES = [
    os.path.join(CSRC_DIR, "torch_extension.cpp"),
    os.path.join(CSRC_DIR, "reduce.cu"),
]


@functools.lru_cache(maxsize=None)
def _build(verbose):
    from torch.utils.cpp_extension import load

    try:
        return load(
            name="frnn_kernels",
            sources=SOURCES,
            extra_cflags=["-O3", "-std=c++17"],
            extra_cuda_cflags=["-O3", "--use_fast_math", "-std=c++17"],
            verbose=verbose,
        )
    except (OSError, RuntimeError, ImportError) as e:
        log.warning("Could not build the frnn CUDA extension, using emulation: %s", e)
        return None


def load_extension():
    """The compiled kernel module, or None when it cannot be used."""
    settings = get_settings()
    if not settings.use_cuda_ext or not torch.cuda.is_available():
        return None
    return _build(settings.verbose_build)
