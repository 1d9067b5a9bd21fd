"""Tests for the vector algebra helpers."""

import pytest
import torch

from h2gnn import vector as V
from h2gnn import DimensionMismatch, NullInput


class TestAsVector:

    def test_list_becomes_float64_tensor(self):
        x = V.as_vector([1, 2, 3])
        assert x.dtype == torch.float64
        assert x.shape == (3,)

    def test_tensor_is_cast(self):
        x = V.as_vector(torch.ones(2, 4, dtype=torch.float32))
        assert x.dtype == torch.float64
        assert x.shape == (2, 4)

    def test_none_raises(self):
        with pytest.raises(NullInput):
            V.as_vector(None)

    def test_empty_raises(self):
        with pytest.raises(NullInput):
            V.as_vector([])

    def test_scalar_raises(self):
        with pytest.raises(NullInput):
            V.as_vector(torch.tensor(1.0))


class TestAlgebra:

    def test_dot(self):
        u = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
        v = torch.tensor([4.0, -5.0, 6.0], dtype=torch.float64)
        assert V.dot(u, v).item() == pytest.approx(12.0)

    def test_batched_dot_keepdim(self):
        u = torch.ones(5, 3, dtype=torch.float64)
        assert V.dot(u, u, keepdim=True).shape == (5, 1)

    def test_dot_dimension_mismatch(self):
        with pytest.raises(DimensionMismatch) as excinfo:
            V.dot(torch.ones(2), torch.ones(3))
        assert excinfo.value.expected == 2
        assert excinfo.value.actual == 3

    def test_norm(self):
        x = torch.tensor([3.0, 4.0], dtype=torch.float64)
        assert V.norm(x).item() == pytest.approx(5.0)
        assert V.sqnorm(x).item() == pytest.approx(25.0)

    def test_guarded_norm_has_finite_gradient_at_origin(self):
        x = torch.zeros(4, dtype=torch.float64, requires_grad=True)
        n = V.norm(x, min_norm=V.MIN_NORM)
        n.backward()
        assert n.item() == pytest.approx(V.MIN_NORM)
        assert torch.isfinite(x.grad).all()

    def test_add_sub_scale(self):
        u = torch.tensor([1.0, 2.0], dtype=torch.float64)
        v = torch.tensor([0.5, -1.0], dtype=torch.float64)
        assert torch.equal(V.add(u, v), torch.tensor([1.5, 1.0], dtype=torch.float64))
        assert torch.equal(V.sub(u, v), torch.tensor([0.5, 3.0], dtype=torch.float64))
        assert torch.equal(V.scale(2.0, u), torch.tensor([2.0, 4.0], dtype=torch.float64))

    def test_add_dimension_mismatch(self):
        with pytest.raises(DimensionMismatch):
            V.add(torch.ones(2), torch.ones(3))

    def test_operations_do_not_modify_inputs(self):
        u = torch.tensor([1.0, 2.0], dtype=torch.float64)
        before = u.clone()
        V.add(u, u)
        V.scale(3.0, u)
        V.norm(u, min_norm=V.MIN_NORM)
        assert torch.equal(u, before)

    def test_zeros(self):
        z = V.zeros(5)
        assert z.shape == (5,)
        assert z.dtype == V.DEFAULT_DTYPE
        assert not z.any()
