"""Tests for the host-level reduce_sum and softmax operations.

Validates results against PyTorch's native sum and softmax across launch
geometries. CUDA-only cases are skipped when no GPU is present.
"""

import logging
import math

import pytest
import torch
import torch.nn.functional as F

import frnn
from frnn import LaunchConfig, Tensor
from frnn.errors import AllocationFailure


@pytest.fixture(autouse=True)
def seed():
    """Seed for reproducibility."""
    torch.manual_seed(42)


class TestReduceSum:
    """Test reduce_sum over tensors, expressions and torch buffers."""

    def test_thousand_ones(self):
        t = Tensor.from_data(torch.ones(1000), [10, 100])
        assert abs(frnn.reduce_sum(t).item() - 1000.0) < 1e-3

    @pytest.mark.parametrize("config", [
        LaunchConfig(32, 1),
        LaunchConfig(64, 5),
        LaunchConfig(256, 32),
    ])
    @pytest.mark.parametrize("vector_width", [1, 2, 4])
    def test_geometry_does_not_change_result(self, config, vector_width):
        x = torch.randn(3001, dtype=torch.float64)
        result = frnn.reduce_sum(x, config, vector_width=vector_width)
        assert torch.allclose(result, x.sum().reshape(1))

    def test_expression(self):
        a = Tensor.from_data(torch.arange(6, dtype=torch.float32), [2, 3])
        assert frnn.reduce_sum(a + a + 1).item() == 36.0

    def test_transform(self):
        x = torch.randn(100, dtype=torch.float64)
        result = frnn.reduce_sum(x, transform="exp")
        assert torch.allclose(result, torch.exp(x).sum().reshape(1))

    def test_integer_input_with_exp(self):
        result = frnn.reduce_sum(torch.tensor([1, 2, 3]), transform="exp")
        assert result.dtype == torch.float32
        expected = math.exp(1) + math.exp(2) + math.exp(3)
        assert math.isclose(result.item(), expected, rel_tol=1e-6)

    @pytest.mark.parametrize("dtype", [torch.int32, torch.int64, torch.bool, torch.float16])
    def test_non_kernel_dtypes_promoted(self, dtype):
        x = torch.ones(300, dtype=dtype)
        result = frnn.reduce_sum(x, LaunchConfig(64, 2))
        assert result.dtype == torch.float32
        assert result.item() == 300.0

    def test_integer_expression(self):
        i = Tensor.from_data(torch.arange(4, dtype=torch.int32), [2, 2])
        assert frnn.reduce_sum(i * 2).item() == 12.0


class TestSoftmax:
    """Test softmax against torch.softmax."""

    def test_small_vector(self):
        """softmax([1, 2, 3]) sums to one and matches exp(x_i) / sum(exp(x))."""
        x = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
        result = frnn.softmax(x)
        assert math.isclose(result.sum().item(), 1.0, rel_tol=1e-9)
        denominator = sum(math.exp(v) for v in (1.0, 2.0, 3.0))
        for i, v in enumerate((1.0, 2.0, 3.0)):
            assert math.isclose(result[i].item(), math.exp(v) / denominator, rel_tol=1e-9)

    @pytest.mark.parametrize("n", [1, 7, 256, 1000, 4097])
    def test_matches_torch(self, n):
        x = torch.randn(n, dtype=torch.float32)
        result = frnn.softmax(x, LaunchConfig(128, 4))
        assert torch.allclose(result, F.softmax(x, dim=0), atol=1e-6)

    def test_sums_to_one(self):
        x = torch.randn(2048)
        assert abs(frnn.softmax(x).sum().item() - 1.0) < 1e-4

    def test_tensor_keeps_dimensions(self):
        t = Tensor.from_data(torch.randn(4, 8), [4, 8])
        result = frnn.softmax(t)
        assert isinstance(result, Tensor)
        assert result.dim_sizes() == (4, 8)
        expected = F.softmax(t.data(), dim=0)
        assert torch.allclose(result.data(), expected, atol=1e-6)

    def test_expression_input(self):
        a = Tensor.from_data(torch.tensor([0.5, 1.0, 1.5]), [3])
        result = frnn.softmax(a + a)
        assert torch.allclose(result.data(), F.softmax(torch.tensor([1.0, 2.0, 3.0]), dim=0))

    def test_single_element(self):
        result = frnn.softmax(torch.tensor([3.0]))
        assert result.tolist() == [1.0]

    def test_not_stabilised(self):
        """No max subtraction: exp overflows for large inputs."""
        x = torch.tensor([1000.0, 1.0])
        result = frnn.softmax(x)
        assert torch.isnan(result[0])

    def test_integer_tensor(self):
        """Integer data is promoted, not truncated."""
        t = Tensor.from_data([1, 2, 3], [3])
        result = frnn.softmax(t)
        assert result.dtype == torch.get_default_dtype()
        expected = F.softmax(torch.tensor([1.0, 2.0, 3.0]), dim=0)
        assert torch.allclose(result.data(), expected, atol=1e-6)
        assert abs(sum(result.tolist()) - 1.0) < 1e-5

    def test_half_input(self):
        x = torch.tensor([0.5, -1.0, 2.0], dtype=torch.float16)
        result = frnn.softmax(x)
        assert result.dtype == torch.float32
        assert torch.allclose(result, F.softmax(x.float(), dim=0), atol=1e-6)

    def test_allocation_failure_is_reported(self, monkeypatch, caplog):
        def fail(*args, **kwargs):
            raise RuntimeError("out of memory")

        monkeypatch.setattr("frnn.functional.torch.zeros", fail)
        with caplog.at_level(logging.ERROR, logger="frnn.errors"):
            with pytest.raises(AllocationFailure):
                frnn.softmax(torch.ones(4))
        assert "softmax output" in caplog.text


@pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
class TestCuda:
    """Softmax and sums on CUDA buffers."""

    def test_softmax(self):
        x = torch.randn(10000, device="cuda")
        result = frnn.softmax(x, LaunchConfig(256, 16))
        assert torch.allclose(result, F.softmax(x, dim=0), atol=1e-5)

    def test_reduce_sum_vectorized(self):
        x = torch.ones(1000, device="cuda")
        for width in (1, 2, 4):
            assert abs(frnn.reduce_sum(x, vector_width=width).item() - 1000.0) < 1e-3

    def test_tensor_on_device(self):
        t = Tensor([3, 4], device="cuda")
        result = frnn.softmax(t)
        assert result.device.type == "cuda"
        assert torch.allclose(result.data(), torch.full((12,), 1 / 12, device="cuda"))
