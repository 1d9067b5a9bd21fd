"""Base manifold class for h2gnn."""

from abc import ABC, abstractmethod
from typing import List, Optional
import torch
from torch import Tensor

from . import vector as V
from .exceptions import DimensionMismatch, NullInput


class Manifold(ABC):
    """Abstract base class for the geometries a layer stack can run in.

    This class defines the interface shared by the Poincaré ball and its flat
    (zero curvature) counterpart. Layers only talk to this interface, which
    is what lets the orchestrator switch geometry between epochs.
    """

    @property
    @abstractmethod
    def dim(self) -> int:
        """Coordinate dimension, or 0 when the space is dimension-agnostic."""
        pass

    @property
    @abstractmethod
    def curvature(self) -> float:
        """Sectional curvature κ as a Python float (0.0 for flat space)."""
        pass

    @abstractmethod
    def mobius_add(self, u: Tensor, v: Tensor) -> Tensor:
        """Gyrovector addition u ⊕ v."""
        pass

    @abstractmethod
    def mobius_scalar_mult(self, t, v: Tensor) -> Tensor:
        """Gyrovector scalar multiplication t ⊗ v."""
        pass

    @abstractmethod
    def exp(self, p: Tensor, v: Tensor) -> Tensor:
        """Exponential map: move from p along geodesic with velocity v.

        Args:
            p: Point on manifold, shape (..., dim)
            v: Tangent vector at p, shape (..., dim)

        Returns:
            Point on manifold after geodesic flow
        """
        pass

    @abstractmethod
    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """Logarithmic map: tangent vector at p pointing toward q.

        Args:
            p: Base point on manifold
            q: Target point on manifold

        Returns:
            Tangent vector v such that exp(p, v) = q
        """
        pass

    @abstractmethod
    def expmap0(self, v: Tensor) -> Tensor:
        """Exponential map at the origin."""
        pass

    @abstractmethod
    def logmap0(self, q: Tensor) -> Tensor:
        """Logarithmic map at the origin."""
        pass

    @abstractmethod
    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """Parallel transport tangent vector v from T_pM to T_qM.

        Args:
            v: Tangent vector at p
            p: Source point
            q: Destination point

        Returns:
            Tangent vector at q with the same Riemannian inner products as v
        """
        pass

    @abstractmethod
    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """Geodesic distance between points.

        Args:
            p: First point, shape (..., dim)
            q: Second point, shape (..., dim)

        Returns:
            Distance, shape (...)
        """
        pass

    @abstractmethod
    def project(self, x: Tensor) -> Tensor:
        """Clamp an ambient point onto the manifold."""
        pass

    @abstractmethod
    def is_valid(self, x: Tensor) -> bool:
        """True when every point in x satisfies the manifold's constraints."""
        pass

    @abstractmethod
    def check_point(self, x: Tensor) -> Tensor:
        """Return x unchanged, or raise OutOfBall if it violates the constraints."""
        pass

    @abstractmethod
    def conformal_factor(self, x: Tensor) -> Tensor:
        """λ_x, the scale of the metric relative to the Euclidean one (keepdim)."""
        pass

    def project_tangent(self, p: Tensor, v: Tensor) -> Tensor:
        """Project an ambient vector onto T_pM.

        Both geometries here use all of R^n as tangent space, so this is the
        identity.
        """
        return v

    def inner(self, p: Tensor, u: Tensor, v: Tensor) -> Tensor:
        """Riemannian inner product g_p(u, v) = λ_p² ⟨u, v⟩."""
        lam = self.conformal_factor(p).squeeze(-1)
        return lam * lam * V.dot(u, v)

    def norm(self, p: Tensor, v: Tensor) -> Tensor:
        """Riemannian norm of tangent vector v at point p."""
        return self.conformal_factor(p).squeeze(-1) * V.norm(v)

    def egrad2rgrad(self, x: Tensor, grad: Tensor) -> Tensor:
        """Convert a Euclidean gradient at x into the Riemannian gradient."""
        lam = self.conformal_factor(x)
        return grad / (lam * lam)

    def geodesic(self, p: Tensor, q: Tensor, t: float) -> Tensor:
        """
        Point along geodesic from p to q at parameter t.

        Computes the point γ(t) on the geodesic where γ(0) = p and γ(1) = q.
        """
        v = self.log(p, q)
        return self.exp(p, t * v)

    def attention_score(self, query: Tensor, key: Tensor) -> Tensor:
        """Distance-based similarity exp(-d(query, key))."""
        return torch.exp(-self.distance(query, key))

    def mobius_sum(self, points: Tensor) -> Tensor:
        """Left fold of ⊕ over the second-to-last dimension of ``points``."""
        if points.shape[-2] == 0:
            raise NullInput("Cannot add an empty list of points")
        result = points[..., 0, :]
        for i in range(1, points.shape[-2]):
            result = self.mobius_add(result, points[..., i, :])
        return result

    def weighted_midpoint(
        self,
        points: Tensor,
        weights: Optional[Tensor] = None,
        method: str = 'mobius',
    ) -> Tensor:
        """
        Weighted aggregate of ``points``.

        Args:
            points: Points, shape (N, D)
            weights: Weights, shape (N,) or (M, N) for M aggregates; rows are
                normalised to sum to one. Default: uniform.
            method: 'mobius' (⊕-fold of wᵢ ⊗ xᵢ), 'tangent' (mean taken in
                the tangent space at the origin) or 'euclidean' (projected
                coordinate average)

        Returns:
            Aggregate point(s), shape (D,) or (M, D)
        """
        if points is None or points.shape[0] == 0:
            raise NullInput("Cannot aggregate an empty set of points")
        n = points.shape[0]
        if weights is None:
            weights = torch.full((n,), 1.0 / n, dtype=points.dtype, device=points.device)
        if weights.shape[-1] != n:
            raise DimensionMismatch(n, weights.shape[-1])
        weights = weights / weights.sum(dim=-1, keepdim=True).clamp_min(V.MIN_NORM)

        if method == 'mobius':
            w = weights.unsqueeze(-1)
            result = self.mobius_scalar_mult(w[..., 0, :], points[0])
            for i in range(1, n):
                result = self.mobius_add(result, self.mobius_scalar_mult(w[..., i, :], points[i]))
            return self.project(result)
        elif method == 'tangent':
            tangent = weights @ self.logmap0(points)
            return self.project(self.expmap0(tangent))
        elif method == 'euclidean':
            return self.project(weights @ points)
        else:
            raise ValueError(f"Unknown aggregation method: {method}")

    def parameters(self) -> List[torch.nn.Parameter]:
        """Learnable parameters owned by the geometry itself (default: none)."""
        return []

    def random_point(self, *shape, max_radius: float = 0.8, generator=None,
                     dtype=V.DEFAULT_DTYPE) -> Tensor:
        """
        Generate random point(s) on manifold.

        Args:
            *shape: Batch shape of the output (the coordinate dimension is appended)
            max_radius: Largest allowed norm, as a fraction of the ball radius
            generator: Optional torch.Generator for reproducibility
            dtype: Tensor dtype

        Returns:
            Random point(s) on the manifold
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not implement random_point")

    def random_tangent(self, p: Tensor, generator=None) -> Tensor:
        """Generate random tangent vector at p."""
        v = torch.randn(p.shape, dtype=p.dtype, generator=generator)
        return self.project_tangent(p, v)
