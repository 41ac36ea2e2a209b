"""Launch geometry for the kernel suite.

The geometry is always supplied by the caller; kernels never pick it. It is
validated here, on the host, so the kernels themselves carry no checks.
"""

from dataclasses import dataclass

from frnn.config import get_settings

MAX_WARPS_PER_BLOCK = 32


@dataclass(frozen=True)
class LaunchConfig:
    """Lanes per block, blocks per grid and warp width of one launch."""

    threads_per_block: int = 256
    blocks_per_grid: int = 32
    warp_size: int = 32

    def __post_init__(self):
        if self.warp_size < 1 or self.warp_size & (self.warp_size - 1):
            raise ValueError(f"warp_size must be a power of two, got {self.warp_size}")
        if (
            self.threads_per_block < self.warp_size
            or self.threads_per_block % self.warp_size
        ):
            raise ValueError(
                f"threads_per_block must be a positive multiple of {self.warp_size}, "
                f"got {self.threads_per_block}"
            )
        # the first warp reduces one partial per warp, one per lane
        max_warps = min(MAX_WARPS_PER_BLOCK, self.warp_size)
        if self.threads_per_block > max_warps * self.warp_size:
            raise ValueError(
                f"threads_per_block may not exceed {max_warps} warps, "
                f"got {self.threads_per_block}"
            )
        if self.blocks_per_grid < 1:
            raise ValueError(
                f"blocks_per_grid must be positive, got {self.blocks_per_grid}"
            )

    @property
    def warps_per_block(self) -> int:
        return self.threads_per_block // self.warp_size

    @property
    def stride(self) -> int:
        """Total number of threads in the grid."""
        return self.threads_per_block * self.blocks_per_grid

    @classmethod
    def for_size(cls, n: int, threads_per_block: int | None = None) -> "LaunchConfig":
        """Enough blocks to give every element a thread, capped at FRNN_MAX_BLOCKS."""
        settings = get_settings()
        if threads_per_block is None:
            threads_per_block = settings.threads_per_block
        blocks = -(-max(n, 1) // threads_per_block)
        return cls(threads_per_block, min(blocks, settings.max_blocks))
