"""Benchmark frnn reductions against PyTorch native implementations.

Measures wall-clock time using torch.cuda.Event for precise GPU timing
(avoids CPU-GPU synchronization overhead). Compares the grid reduction
(scalar and vectorized loads) and the softmax pipeline against torch.sum and
torch.softmax across multiple buffer sizes.

Usage:
    python benchmarks/benchmark.py
    python benchmarks/benchmark.py --sizes 65536 1048576
    python benchmarks/benchmark.py --warmup 20 --runs 100 --threads 512
"""

import argparse
import torch
from tabulate import tabulate

import frnn
from frnn import LaunchConfig


def benchmark_fn(fn, *args, warmup=10, runs=50, **kwargs):
    """Benchmark a function using CUDA events for precise GPU timing.

    Args:
        fn: Function to benchmark.
        *args: Arguments to pass to fn.
        warmup: Number of warmup iterations.
        runs: Number of timed iterations.
        **kwargs: Keyword arguments to pass to fn.

    Returns:
        Mean time in milliseconds.
    """
    for _ in range(warmup):
        fn(*args, **kwargs)

    torch.cuda.synchronize()

    start = torch.cuda.Event(enable_timing=True)
    end = torch.cuda.Event(enable_timing=True)

    times = []
    for _ in range(runs):
        start.record()
        fn(*args, **kwargs)
        end.record()
        torch.cuda.synchronize()
        times.append(start.elapsed_time(end))

    return sum(times) / len(times)


def _row(n, t_custom, t_torch):
    speedup = t_torch / t_custom if t_custom > 0 else float("inf")
    return {
        "size": f"{n}",
        "custom_ms": f"{t_custom:.3f}",
        "torch_ms": f"{t_torch:.3f}",
        "speedup": f"{speedup:.2f}x",
    }


def benchmark_reduce_sum(sizes, warmup, runs, threads, vector_width):
    """Benchmark reduce_sum: grid reduction vs torch.sum."""
    results = []
    for n in sizes:
        x = torch.randn(n, device="cuda", dtype=torch.float32)
        config = LaunchConfig.for_size(n, threads)

        t_custom = benchmark_fn(frnn.reduce_sum, x, config,
                                vector_width=vector_width,
                                warmup=warmup, runs=runs)
        t_torch = benchmark_fn(torch.sum, x, warmup=warmup, runs=runs)
        results.append(_row(n, t_custom, t_torch))

    return results


def benchmark_softmax(sizes, warmup, runs, threads):
    """Benchmark softmax: reduce/broadcast/normalize vs torch.softmax."""
    results = []
    for n in sizes:
        x = torch.randn(n, device="cuda", dtype=torch.float32)
        config = LaunchConfig.for_size(n, threads)

        t_custom = benchmark_fn(frnn.softmax, x, config, warmup=warmup, runs=runs)
        t_torch = benchmark_fn(torch.softmax, x, 0, warmup=warmup, runs=runs)
        results.append(_row(n, t_custom, t_torch))

    return results


def main():
    parser = argparse.ArgumentParser(description="Benchmark frnn kernels")
    parser.add_argument("--sizes", nargs="+", type=int,
                        default=[4096, 65536, 1048576, 16777216],
                        help="Buffer sizes to benchmark")
    parser.add_argument("--warmup", type=int, default=10)
    parser.add_argument("--runs", type=int, default=50)
    parser.add_argument("--threads", type=int, default=256,
                        help="Threads per block")
    args = parser.parse_args()

    device = torch.cuda.get_device_name(0)
    print(f"GPU: {device}")
    print(f"PyTorch: {torch.__version__}")
    print(f"CUDA: {torch.version.cuda}")
    print()

    for width in (1, 2, 4):
        print("=" * 70)
        print(f"REDUCE SUM — Grid Reduction, vector width {width}")
        print("=" * 70)
        results = benchmark_reduce_sum(args.sizes, args.warmup, args.runs,
                                       args.threads, width)
        print(tabulate(results, headers="keys", tablefmt="github"))
        print()

    print("=" * 70)
    print("SOFTMAX — Reduce, Broadcast, Normalize (not max-stabilised)")
    print("=" * 70)
    results = benchmark_softmax(args.sizes, args.warmup, args.runs, args.threads)
    print(tabulate(results, headers="keys", tablefmt="github"))
    print()


if __name__ == "__main__":
    main()
