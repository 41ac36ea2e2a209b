"""Environment-driven settings.

Settings are re-read on every ``get_settings()`` call so that tests (and
long-running processes) can change them through the environment.

Variables:
    FRNN_INDEX_MODE:         "lenient" (default) or "strict".
    FRNN_USE_CUDA_EXT:       set to 0 to never build/load the CUDA extension.
    FRNN_VERBOSE_BUILD:      set to 1 for verbose JIT compilation output.
    FRNN_THREADS_PER_BLOCK:  default lanes per block (256).
    FRNN_MAX_BLOCKS:         cap on blocks per grid (32).
"""

from dataclasses import dataclass
import os

INDEX_MODE_ENV = "FRNN_INDEX_MODE"
USE_CUDA_EXT_ENV = "FRNN_USE_CUDA_EXT"
VERBOSE_BUILD_ENV = "FRNN_VERBOSE_BUILD"
THREADS_PER_BLOCK_ENV = "FRNN_THREADS_PER_BLOCK"
MAX_BLOCKS_ENV = "FRNN_MAX_BLOCKS"

INDEX_MODES = ("lenient", "strict")


def _env_flag(name: str, default: str) -> bool:
    value = os.environ.get(name, default)
    return value.lower() not in {"0", "false", "no", ""}


def _env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    if minimum is not None and parsed < minimum:
        return minimum
    return parsed


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.environ.get(name, default).lower()
    if value not in choices:
        raise ValueError(
            f"Invalid {name} value: {value}. Must be one of: {', '.join(choices)}"
        )
    return value


@dataclass(frozen=True)
class Settings:
    index_mode: str = "lenient"
    use_cuda_ext: bool = True
    verbose_build: bool = False
    threads_per_block: int = 256
    max_blocks: int = 32


def get_settings() -> Settings:
    return Settings(
        index_mode=_env_choice(INDEX_MODE_ENV, "lenient", INDEX_MODES),
        use_cuda_ext=_env_flag(USE_CUDA_EXT_ENV, "1"),
        verbose_build=_env_flag(VERBOSE_BUILD_ENV, "0"),
        threads_per_block=_env_int(THREADS_PER_BLOCK_ENV, 256, minimum=1),
        max_blocks=_env_int(MAX_BLOCKS_ENV, 32, minimum=1),
    )
