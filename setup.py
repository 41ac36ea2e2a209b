"""Build system for frnn.

The CUDA kernels in frnn/csrc are shipped as package data and compiled with
torch.utils.cpp_extension the first time they are needed, so installing does
not require nvcc or a GPU.

Usage:
    pip install -e .                 # Development install
    pip install -e ".[test]"         # With pytest
    pip install -e ".[bench]"        # With the benchmark script's deps
"""

from setuptools import setup, find_packages

setup(
    name="frnn",
    version="0.1.0",
    description="Fixed-rank tensors with lazy expressions and parallel reduction kernels",
    packages=find_packages(exclude=["tests", "benchmarks"]),
    package_data={"frnn": ["csrc/*.cu", "csrc/*.cpp"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=["torch>=2.0.0"],
    extras_require={
        "test": ["pytest"],
        "bench": ["tabulate"],
    },
)
