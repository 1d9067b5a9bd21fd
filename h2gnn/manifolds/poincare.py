"""Poincaré ball model of hyperbolic space with constant negative curvature."""

import math
import torch
import torch.nn as nn
from torch import Tensor
from typing import List, Optional

from .. import vector as V
from ..exceptions import InvalidCurvature, InvalidDimension, OutOfBall
from ..manifold import Manifold


# Relative margin kept between a clamped point and the ball boundary.
BALL_EPS = 1e-5

# Relative margin used by is_valid; projected points always pass it.
VALIDATION_EPS = 1e-10


class PoincareBall(Manifold):
    """
    Poincaré ball B^n_c = {x ∈ R^n : c‖x‖² < 1}, with c = |κ|.

    Every operation that produces a point clamps it to the radius
    (1 - eps)/√c, so compositions of operations never leave the ball.
    Tangent vectors are unconstrained.

    Example:
        >>> B = PoincareBall(2)
        >>> p1 = torch.tensor([0.3, 0.4], dtype=torch.float64)
        >>> p2 = torch.tensor([0.1, 0.6], dtype=torch.float64)
        >>> B.mobius_add(p1, p2).norm() < 1
        tensor(True)
        >>> B.distance(p1, p2) > 0
        tensor(True)

    Formulas (c = -κ):
        - u ⊕ v = ((1 + 2c⟨u,v⟩ + c‖v‖²)u + (1 - c‖u‖²)v) / (1 + 2c⟨u,v⟩ + c²‖u‖²‖v‖²)
        - t ⊗ v = tanh(t·artanh(√c‖v‖)) · v / (√c‖v‖)
        - d(u, v) = (2/√c)·artanh(√c‖(-u) ⊕ v‖)

    Args:
        n: Coordinate dimension; 0 leaves it unspecified (only needed by
            random_point)
        curvature: Negative curvature κ (default: -1.0)
        learnable: Store log(c) as a trainable scalar parameter
        eps: Relative boundary margin for projection (default: 1e-5)
    """

    def __init__(self, n: int = 0, curvature: float = -1.0, learnable: bool = False,
                 eps: float = BALL_EPS):
        if isinstance(curvature, Tensor):
            curvature = float(curvature.detach())
        if not curvature < 0:
            raise InvalidCurvature(curvature)
        if n < 0:
            raise InvalidDimension("n", n)

        self.n = n
        self.eps = eps
        self.learnable = learnable
        c = -float(curvature)
        if learnable:
            self.log_c = nn.Parameter(torch.tensor(math.log(c), dtype=V.DEFAULT_DTYPE))
            self._c = None
        else:
            self.log_c = None
            self._c = torch.tensor(c, dtype=V.DEFAULT_DTYPE)

    def __repr__(self):
        return (f"PoincareBall(n={self.n}, curvature={self.curvature:.4g}, "
                f"learnable={self.learnable})")

    @property
    def dim(self) -> int:
        """Coordinate dimension of the ball."""
        return self.n

    @property
    def c(self) -> Tensor:
        """Curvature magnitude |κ| as a (possibly trainable) scalar tensor."""
        if self.learnable:
            return self.log_c.exp()
        return self._c

    @property
    def curvature(self) -> float:
        return -float(self.c.detach())

    @property
    def radius(self) -> float:
        """Euclidean radius 1/√c of the ball."""
        return 1.0 / math.sqrt(-self.curvature)

    def parameters(self) -> List[nn.Parameter]:
        return [self.log_c] if self.learnable else []

    def _artanh(self, x: Tensor) -> Tensor:
        # artanh diverges at 1; keep the argument strictly inside (-1, 1)
        return torch.atanh(x.clamp(min=-1.0 + self.eps, max=1.0 - self.eps))

    # -------------------------------------------------------------------------
    # Möbius gyrovector operations
    # -------------------------------------------------------------------------

    def mobius_add(self, u: Tensor, v: Tensor) -> Tensor:
        """Möbius addition u ⊕ v, clamped to the ball."""
        V.check_same_dim(u, v)
        c = self.c
        uv = V.dot(u, v, keepdim=True)
        u2 = V.sqnorm(u, keepdim=True)
        v2 = V.sqnorm(v, keepdim=True)

        numerator = (1.0 + 2.0 * c * uv + c * v2) * u + (1.0 - c * u2) * v
        denominator = (1.0 + 2.0 * c * uv + c * c * u2 * v2).clamp_min(V.MIN_NORM)

        return self.project(numerator / denominator)

    def mobius_scalar_mult(self, t, v: Tensor) -> Tensor:
        """
        Möbius scalar multiplication t ⊗ v.

        ``t`` may be a float or a tensor broadcastable against v's batch
        shape with a trailing singleton, e.g. (M, 1). Zero vectors and t = 0
        map to the origin.
        """
        t = torch.as_tensor(t, dtype=v.dtype, device=v.device)
        sqrt_c = self.c.sqrt()
        v_norm = V.norm(v, keepdim=True, min_norm=V.MIN_NORM)

        new_norm = torch.tanh(t * self._artanh(sqrt_c * v_norm))
        result = new_norm * v / (sqrt_c * v_norm)

        # Handle zero vector
        is_zero = V.norm(v, keepdim=True) < V.MIN_NORM
        result = torch.where(is_zero, torch.zeros_like(result), result)
        return self.project(result)

    def conformal_factor(self, x: Tensor) -> Tensor:
        """Conformal factor λ_x = 2 / (1 - c‖x‖²), keepdim."""
        x2 = V.sqnorm(x, keepdim=True)
        return 2.0 / (1.0 - self.c * x2).clamp_min(V.MIN_NORM)

    # -------------------------------------------------------------------------
    # Exponential / logarithmic maps
    # -------------------------------------------------------------------------

    def expmap0(self, v: Tensor) -> Tensor:
        """exp_0(v) = tanh(√c‖v‖) · v / (√c‖v‖)."""
        sqrt_c = self.c.sqrt()
        v_norm = V.norm(v, keepdim=True, min_norm=V.MIN_NORM)
        return self.project(torch.tanh(sqrt_c * v_norm) * v / (sqrt_c * v_norm))

    def logmap0(self, q: Tensor) -> Tensor:
        """log_0(q) = artanh(√c‖q‖) · q / (√c‖q‖)."""
        sqrt_c = self.c.sqrt()
        q_norm = V.norm(q, keepdim=True, min_norm=V.MIN_NORM)
        return self._artanh(sqrt_c * q_norm) * q / (sqrt_c * q_norm)

    def exp(self, p: Tensor, v: Tensor) -> Tensor:
        """
        Exponential map: move from p along geodesic with velocity v.

        exp_p(v) = p ⊕ (tanh(√c λ_p‖v‖/2) · v / (√c‖v‖))

        Args:
            p: Point on manifold, shape (..., n)
            v: Tangent vector at p, shape (..., n)

        Returns:
            Point on manifold after geodesic flow
        """
        V.check_same_dim(p, v)
        if not p.requires_grad and not torch.any(p):
            return self.expmap0(v + torch.zeros_like(p))

        sqrt_c = self.c.sqrt()
        v_norm = V.norm(v, keepdim=True, min_norm=V.MIN_NORM)
        lambda_p = self.conformal_factor(p)

        second = torch.tanh(sqrt_c * lambda_p * v_norm / 2.0) * v / (sqrt_c * v_norm)
        return self.mobius_add(p, second)

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """
        Logarithmic map: tangent vector at p pointing toward q.

        log_p(q) = (2 / (√c λ_p)) · artanh(√c‖(-p) ⊕ q‖) · ((-p) ⊕ q) / ‖(-p) ⊕ q‖

        Args:
            p: Base point on manifold
            q: Target point on manifold

        Returns:
            Tangent vector v such that exp(p, v) = q
        """
        V.check_same_dim(p, q)
        if not p.requires_grad and not torch.any(p):
            return self.logmap0(q + torch.zeros_like(p))

        sqrt_c = self.c.sqrt()
        diff = self.mobius_add(-p, q)
        diff_norm = V.norm(diff, keepdim=True, min_norm=V.MIN_NORM)
        lambda_p = self.conformal_factor(p)

        return (2.0 / (sqrt_c * lambda_p)) * self._artanh(sqrt_c * diff_norm) * diff / diff_norm

    # -------------------------------------------------------------------------
    # Transport and distance
    # -------------------------------------------------------------------------

    def _gyration(self, u: Tensor, v: Tensor, w: Tensor) -> Tensor:
        """gyr[u, v]w, the rotation that corrects u ⊕ (v ⊕ w) into (u ⊕ v) ⊕ w."""
        c = self.c
        u2 = V.sqnorm(u, keepdim=True)
        v2 = V.sqnorm(v, keepdim=True)
        uv = V.dot(u, v, keepdim=True)
        uw = V.dot(u, w, keepdim=True)
        vw = V.dot(v, w, keepdim=True)
        c2 = c * c

        a = -c2 * uw * v2 + c * vw + 2.0 * c2 * uv * vw
        b = -c2 * vw * u2 - c * uw
        d = (1.0 + 2.0 * c * uv + c2 * u2 * v2).clamp_min(V.MIN_NORM)
        return w + 2.0 * (a * u + b * v) / d

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """
        Parallel transport tangent vector v from T_pM to T_qM.

        PT_{p→q}(v) = (λ_p / λ_q) · gyr[q, -p] v

        The gyration is a Euclidean rotation, so λ_q‖PT(v)‖ = λ_p‖v‖ and
        Riemannian inner products are preserved.
        """
        V.check_same_dim(v, p)
        V.check_same_dim(p, q)
        return self._gyration(q, -p, v) * self.conformal_factor(p) / self.conformal_factor(q)

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """
        Geodesic distance d(p, q) = (2/√c)·artanh(√c‖(-p) ⊕ q‖).

        Args:
            p: First point, shape (..., n)
            q: Second point, shape (..., n)

        Returns:
            Distance, shape (...)
        """
        sqrt_c = self.c.sqrt()
        diff_norm = V.norm(self.mobius_add(-p, q), min_norm=V.MIN_NORM)
        return (2.0 / sqrt_c) * self._artanh(sqrt_c * diff_norm)

    # -------------------------------------------------------------------------
    # Boundary handling
    # -------------------------------------------------------------------------

    def project(self, x: Tensor) -> Tensor:
        """
        Clamp x into the ball.

        Points with ‖x‖ ≥ (1 - eps)/√c are rescaled onto that radius; all
        other points are returned unchanged. Idempotent.
        """
        x_norm = V.norm(x, keepdim=True, min_norm=V.MIN_NORM)
        max_norm = (1.0 - self.eps) / self.c.sqrt()
        return torch.where(x_norm >= max_norm, x / x_norm * max_norm, x)

    def is_valid(self, x: Tensor) -> bool:
        """True when every point satisfies ‖x‖ < (1 - 1e-10)/√c (NaN fails)."""
        limit = (1.0 - VALIDATION_EPS) / self.c.detach().sqrt()
        return bool(torch.all(V.norm(x.detach()) < limit))

    def check_point(self, x: Tensor) -> Tensor:
        """Return x if it lies in the ball; raise OutOfBall otherwise."""
        if not self.is_valid(x):
            max_norm = float(V.norm(x.detach()).max()) if x.numel() else float('nan')
            raise OutOfBall(max_norm, self.radius)
        return x

    def egrad2rgrad(self, x: Tensor, grad: Tensor) -> Tensor:
        """Riemannian gradient ((1 - c‖x‖²)² / 4) · grad."""
        scale = (1.0 - self.c.detach() * V.sqnorm(x, keepdim=True)) ** 2 / 4.0
        return scale * grad

    # -------------------------------------------------------------------------
    # Model conversions and sampling
    # -------------------------------------------------------------------------

    def to_lorentz(self, x: Tensor) -> Tensor:
        """Map a ball point to the hyperboloid -x₀² + ‖x‖² = -1/c (dim + 1 coordinates)."""
        c = self.c
        x2 = V.sqnorm(x, keepdim=True)
        denom = (1.0 - c * x2).clamp_min(V.MIN_NORM)
        x0 = (1.0 + c * x2) / (c.sqrt() * denom)
        return torch.cat([x0, 2.0 * x / denom], dim=-1)

    def from_lorentz(self, y: Tensor) -> Tensor:
        """Inverse of to_lorentz."""
        if y.shape[-1] < 2:
            raise InvalidDimension("lorentz_dim", y.shape[-1])
        x0 = y[..., :1]
        return self.project(y[..., 1:] / (1.0 + self.c.sqrt() * x0))

    def random_point(self, *shape, max_radius: float = 0.8, generator=None,
                     dtype=V.DEFAULT_DTYPE) -> Tensor:
        """
        Generate random point(s) with norm below max_radius · (1/√c).

        Directions are isotropic Gaussian, radii uniform in [0, max_radius).
        """
        if self.n <= 0:
            raise InvalidDimension("n", self.n)
        if not 0.0 < max_radius < 1.0:
            raise ValueError(f"max_radius must lie in (0, 1), got {max_radius}")

        x = torch.randn(*shape, self.n, generator=generator, dtype=dtype)
        x_norm = V.norm(x, keepdim=True, min_norm=V.MIN_NORM)
        radius = torch.rand(*shape, 1, generator=generator, dtype=dtype) * max_radius
        return radius * self.radius * x / x_norm
