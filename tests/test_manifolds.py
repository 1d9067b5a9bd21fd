"""Tests for manifold implementations."""

import math

import pytest
import torch
from h2gnn import (
    DimensionMismatch,
    Euclidean,
    InvalidCurvature,
    InvalidDimension,
    NullInput,
    OutOfBall,
    PoincareBall,
)


class TestManifoldProperties:
    """Property tests that should hold for all geometries."""

    def test_exp_at_zero_is_identity(self, manifold, generator):
        """exp_p(0) = p"""
        p = manifold.random_point(generator=generator)
        result = manifold.exp(p, torch.zeros_like(p))
        assert torch.allclose(result, p, atol=1e-10)

    def test_log_at_same_point_is_zero(self, manifold, generator):
        """log_p(p) = 0"""
        p = manifold.random_point(generator=generator)
        v = manifold.log(p, p)
        assert torch.allclose(v, torch.zeros_like(v), atol=1e-10)

    def test_exp_log_inverse(self, manifold, generator):
        """exp_p(log_p(q)) = q"""
        p = manifold.random_point(10, generator=generator)
        q = manifold.random_point(10, generator=generator)
        q_recovered = manifold.exp(p, manifold.log(p, q))
        assert torch.allclose(q_recovered, q, atol=1e-6)

    def test_log_exp_inverse(self, manifold, generator):
        """log_p(exp_p(v)) = v for moderate v"""
        p = manifold.random_point(generator=generator)
        v = 0.1 * manifold.random_tangent(p, generator=generator)
        v_recovered = manifold.log(p, manifold.exp(p, v))
        assert torch.allclose(v_recovered, v, atol=1e-8)

    def test_expmap0_logmap0_inverse(self, manifold, generator):
        q = manifold.random_point(10, generator=generator)
        assert torch.allclose(manifold.expmap0(manifold.logmap0(q)), q, atol=1e-10)

    def test_distance_symmetry(self, manifold, generator):
        """d(p, q) = d(q, p)"""
        p = manifold.random_point(10, generator=generator)
        q = manifold.random_point(10, generator=generator)
        assert torch.allclose(manifold.distance(p, q), manifold.distance(q, p), atol=1e-10)

    def test_distance_non_negative(self, manifold, generator):
        p = manifold.random_point(10, generator=generator)
        q = manifold.random_point(10, generator=generator)
        assert (manifold.distance(p, q) >= 0).all()

    def test_distance_zero_for_same_point(self, manifold, generator):
        """d(p, p) = 0"""
        p = manifold.random_point(10, generator=generator)
        assert (manifold.distance(p, p) < 1e-12).all()

    def test_distance_equals_log_norm(self, manifold, generator):
        """d(p, q) = ||log_p(q)||_p"""
        p = manifold.random_point(generator=generator)
        q = manifold.random_point(generator=generator)
        log_norm = manifold.norm(p, manifold.log(p, q))
        assert torch.allclose(manifold.distance(p, q), log_norm, atol=1e-8)

    def test_triangle_inequality(self, manifold, generator):
        a = manifold.random_point(50, generator=generator)
        b = manifold.random_point(50, generator=generator)
        c = manifold.random_point(50, generator=generator)
        lhs = manifold.distance(a, c)
        rhs = manifold.distance(a, b) + manifold.distance(b, c)
        assert (lhs <= rhs + 1e-9).all()

    def test_parallel_transport_preserves_inner_product(self, manifold, generator):
        """<PT(u), PT(v)>_q = <u, v>_p"""
        p = manifold.random_point(generator=generator)
        q = manifold.random_point(generator=generator)
        u = manifold.random_tangent(p, generator=generator)
        v = manifold.random_tangent(p, generator=generator)

        u_q = manifold.parallel_transport(u, p, q)
        v_q = manifold.parallel_transport(v, p, q)

        assert torch.allclose(manifold.inner(q, u_q, v_q), manifold.inner(p, u, v), atol=1e-8)

    def test_parallel_transport_to_same_point_is_identity(self, manifold, generator):
        p = manifold.random_point(generator=generator)
        v = manifold.random_tangent(p, generator=generator)
        assert torch.allclose(manifold.parallel_transport(v, p, p), v, atol=1e-10)

    def test_mobius_add_zero_is_identity(self, manifold, generator):
        v = manifold.random_point(10, generator=generator)
        zero = torch.zeros_like(v)
        assert torch.allclose(manifold.mobius_add(v, zero), v, atol=1e-10)
        assert torch.allclose(manifold.mobius_add(zero, v), v, atol=1e-10)

    def test_left_cancellation(self, manifold, generator):
        """(-u) ⊕ (u ⊕ v) = v"""
        u = manifold.random_point(10, max_radius=0.5, generator=generator)
        v = manifold.random_point(10, max_radius=0.5, generator=generator)
        assert torch.allclose(manifold.mobius_add(-u, manifold.mobius_add(u, v)), v, atol=1e-8)

    def test_scalar_mult_identities(self, manifold, generator):
        v = manifold.random_point(10, generator=generator)
        assert torch.allclose(manifold.mobius_scalar_mult(1.0, v), v, atol=1e-10)
        assert torch.allclose(manifold.mobius_scalar_mult(0.0, v), torch.zeros_like(v))
        assert torch.allclose(manifold.mobius_scalar_mult(2.0, v),
                              manifold.mobius_add(v, v), atol=1e-8)

    def test_scalar_mult_of_origin(self, manifold):
        zero = torch.zeros(8, dtype=torch.float64)
        assert torch.equal(manifold.mobius_scalar_mult(3.0, zero), zero)

    def test_scalar_mult_distributes_over_scalars(self, manifold, generator):
        """(s + t) ⊗ v = (s ⊗ v) ⊕ (t ⊗ v)"""
        v = manifold.random_point(generator=generator)
        lhs = manifold.mobius_scalar_mult(0.7, v)
        rhs = manifold.mobius_add(manifold.mobius_scalar_mult(0.3, v),
                                  manifold.mobius_scalar_mult(0.4, v))
        assert torch.allclose(lhs, rhs, atol=1e-8)

    def test_projected_points_are_valid(self, manifold, generator):
        x = 10.0 * torch.randn(20, 8, generator=generator, dtype=torch.float64)
        projected = manifold.project(x)
        assert manifold.is_valid(projected)
        assert torch.allclose(manifold.project(projected), projected)

    def test_random_points_are_valid(self, manifold, generator):
        assert manifold.is_valid(manifold.random_point(100, generator=generator))

    def test_dimension_mismatch(self, manifold):
        u = torch.zeros(2, dtype=torch.float64)
        v = torch.zeros(3, dtype=torch.float64)
        with pytest.raises(DimensionMismatch):
            manifold.mobius_add(u, v)
        with pytest.raises(DimensionMismatch):
            manifold.distance(u, v)
        with pytest.raises(DimensionMismatch):
            manifold.exp(u, v)

    def test_geodesic_endpoints(self, manifold, generator):
        p = manifold.random_point(generator=generator)
        q = manifold.random_point(generator=generator)
        assert torch.allclose(manifold.geodesic(p, q, 0.0), p, atol=1e-10)
        assert torch.allclose(manifold.geodesic(p, q, 1.0), q, atol=1e-8)


class TestWeightedMidpoint:

    @pytest.mark.parametrize('method', ['mobius', 'tangent', 'euclidean'])
    def test_identical_points(self, manifold, generator, method):
        p = manifold.random_point(generator=generator)
        points = p.expand(4, -1)
        mid = manifold.weighted_midpoint(points, method=method)
        assert torch.allclose(mid, p, atol=1e-8)

    @pytest.mark.parametrize('method', ['mobius', 'tangent', 'euclidean'])
    def test_one_hot_weights_select_point(self, manifold, generator, method):
        points = manifold.random_point(5, generator=generator)
        weights = torch.zeros(5, dtype=torch.float64)
        weights[2] = 1.0
        assert torch.allclose(manifold.weighted_midpoint(points, weights, method), points[2],
                              atol=1e-8)

    def test_batched_weights(self, manifold, generator):
        points = manifold.random_point(5, generator=generator)
        weights = torch.softmax(torch.randn(3, 5, generator=generator, dtype=torch.float64), -1)
        mid = manifold.weighted_midpoint(points, weights)
        assert mid.shape == (3, 8)
        assert manifold.is_valid(mid)

    def test_empty_raises(self, manifold):
        with pytest.raises(NullInput):
            manifold.weighted_midpoint(torch.zeros(0, 8, dtype=torch.float64))

    def test_weight_length_mismatch(self, manifold, generator):
        points = manifold.random_point(5, generator=generator)
        with pytest.raises(DimensionMismatch):
            manifold.weighted_midpoint(points, torch.ones(4, dtype=torch.float64))

    def test_unknown_method(self, manifold, generator):
        points = manifold.random_point(5, generator=generator)
        with pytest.raises(ValueError):
            manifold.weighted_midpoint(points, method='median')

    def test_mobius_sum(self, manifold, generator):
        points = manifold.random_point(3, max_radius=0.5, generator=generator)
        expected = manifold.mobius_add(manifold.mobius_add(points[0], points[1]), points[2])
        assert torch.allclose(manifold.mobius_sum(points), expected)

    def test_mobius_sum_empty(self, manifold):
        with pytest.raises(NullInput):
            manifold.mobius_sum(torch.zeros(0, 8, dtype=torch.float64))


class TestPoincareBall:
    """Poincaré-specific tests."""

    def test_reference_points(self, p1, p2):
        ball = PoincareBall(2)
        total = ball.mobius_add(p1, p2)
        assert total.norm() < 1
        d = ball.distance(p1, p2)
        assert torch.isfinite(d) and d > 0
        assert ball.distance(p1, p1) < 1e-12

    def test_mobius_add_formula(self, p1, p2):
        ball = PoincareBall(2)
        uv = float(p1 @ p2)
        u2 = float(p1 @ p1)
        v2 = float(p2 @ p2)
        expected = ((1 + 2 * uv + v2) * p1 + (1 - u2) * p2) / (1 + 2 * uv + u2 * v2)
        assert torch.allclose(ball.mobius_add(p1, p2), expected, atol=1e-12)

    def test_mobius_add_is_not_commutative(self, p1, p2):
        ball = PoincareBall(2)
        assert not torch.allclose(ball.mobius_add(p1, p2), ball.mobius_add(p2, p1))

    def test_distance_from_origin(self):
        ball = PoincareBall(2)
        x = torch.tensor([0.5, 0.0], dtype=torch.float64)
        expected = 2 * math.atanh(0.5)
        assert ball.distance(torch.zeros(2, dtype=torch.float64), x).item() == pytest.approx(expected)

    @pytest.mark.parametrize('curvature', [0.0, 1.0, 2.5])
    def test_non_negative_curvature_rejected(self, curvature):
        with pytest.raises(InvalidCurvature):
            PoincareBall(8, curvature=curvature)

    def test_curvature_scales_radius(self):
        ball = PoincareBall(8, curvature=-4.0)
        assert ball.curvature == pytest.approx(-4.0)
        assert ball.radius == pytest.approx(0.5)

    def test_boundary_projection(self, hyperbolic):
        x = torch.zeros(8, dtype=torch.float64)
        x[0] = 5.0
        projected = hyperbolic.project(x)
        assert projected.norm() < hyperbolic.radius
        assert projected.norm().item() == pytest.approx((1 - 1e-5) * hyperbolic.radius)
        assert hyperbolic.is_valid(projected)

    def test_interior_points_untouched_by_projection(self, hyperbolic, generator):
        x = hyperbolic.random_point(10, generator=generator)
        assert torch.equal(hyperbolic.project(x), x)

    def test_distance_finite_near_boundary(self, hyperbolic):
        x = torch.zeros(8, dtype=torch.float64)
        y = torch.zeros(8, dtype=torch.float64)
        x[0] = 10.0
        y[0] = -10.0
        d = hyperbolic.distance(hyperbolic.project(x), hyperbolic.project(y))
        assert torch.isfinite(d)

    def test_check_point_raises_out_of_ball(self, ball):
        x = torch.zeros(8, dtype=torch.float64)
        x[0] = 1.5
        assert not ball.is_valid(x)
        with pytest.raises(OutOfBall) as excinfo:
            ball.check_point(x)
        assert excinfo.value.max_norm == pytest.approx(1.5)

    def test_nan_is_invalid(self, ball):
        x = torch.full((8,), float('nan'), dtype=torch.float64)
        assert not ball.is_valid(x)

    def test_conformal_factor_at_origin(self, hyperbolic):
        zero = torch.zeros(8, dtype=torch.float64)
        assert hyperbolic.conformal_factor(zero).item() == pytest.approx(2.0)

    def test_riemannian_gradient_scaling(self, ball):
        x = torch.zeros(8, dtype=torch.float64)
        x[0] = 0.5
        grad = torch.ones(8, dtype=torch.float64)
        expected = (1 - 0.25) ** 2 / 4 * grad
        assert torch.allclose(ball.egrad2rgrad(x, grad), expected)

    def test_exp_from_origin_matches_expmap0(self, ball, generator):
        v = ball.random_tangent(torch.zeros(8, dtype=torch.float64), generator=generator)
        zero = torch.zeros(8, dtype=torch.float64, requires_grad=True)
        # requires_grad skips the origin shortcut, exercising the general formula
        assert torch.allclose(ball.exp(zero, v), ball.expmap0(v), atol=1e-10)

    def test_lorentz_roundtrip(self, hyperbolic, generator):
        x = hyperbolic.random_point(10, generator=generator)
        y = hyperbolic.to_lorentz(x)
        c = -hyperbolic.curvature
        minkowski = -y[:, 0] ** 2 + (y[:, 1:] ** 2).sum(-1)
        assert torch.allclose(minkowski, torch.full((10,), -1.0 / c, dtype=torch.float64))
        assert torch.allclose(hyperbolic.from_lorentz(y), x, atol=1e-10)

    def test_gradients_finite_for_coincident_points(self, ball, generator):
        p = ball.random_point(generator=generator).requires_grad_(True)
        ball.distance(p, p).backward()
        assert torch.isfinite(p.grad).all()

    def test_random_point_requires_dimension(self):
        with pytest.raises(InvalidDimension):
            PoincareBall().random_point()

    @pytest.mark.parametrize('max_radius', [0.0, 1.0, 1.5])
    def test_random_point_radius_bounds(self, ball, max_radius):
        with pytest.raises(ValueError):
            ball.random_point(max_radius=max_radius)

    def test_learnable_curvature(self, generator):
        ball = PoincareBall(8, curvature=-2.0, learnable=True)
        params = ball.parameters()
        assert len(params) == 1
        assert ball.curvature == pytest.approx(-2.0)

        p = ball.random_point(generator=generator)
        q = ball.random_point(generator=generator)
        ball.distance(p, q).backward()
        assert params[0].grad is not None
        assert torch.isfinite(params[0].grad).all()

    def test_fixed_curvature_has_no_parameters(self, ball):
        assert ball.parameters() == []


class TestEuclidean:

    def test_operations_are_flat(self, euclidean):
        p = torch.tensor([1.0, 2.0, 0, 0, 0, 0, 0, 0], dtype=torch.float64)
        q = torch.tensor([4.0, 6.0, 0, 0, 0, 0, 0, 0], dtype=torch.float64)
        assert torch.equal(euclidean.mobius_add(p, q), p + q)
        assert torch.equal(euclidean.log(p, q), q - p)
        assert euclidean.distance(p, q).item() == pytest.approx(5.0)
        assert euclidean.curvature == 0.0

    def test_no_projection(self, euclidean):
        x = torch.full((8,), 100.0, dtype=torch.float64)
        assert torch.equal(euclidean.project(x), x)
        assert euclidean.is_valid(x)

    def test_non_finite_rejected(self, euclidean):
        x = torch.full((8,), float('inf'), dtype=torch.float64)
        with pytest.raises(OutOfBall):
            euclidean.check_point(x)
