"""Euclidean space manifold."""

import torch
from torch import Tensor

from .. import vector as V
from ..exceptions import InvalidDimension, OutOfBall
from ..manifold import Manifold


class Euclidean(Manifold):
    """
    Euclidean space R^n with flat metric (curvature 0).

    This is the trivial geometry where:
    - u ⊕ v = u + v and t ⊗ v = t·v
    - exp_p(v) = p + v
    - log_p(q) = q - p
    - distance(p, q) = ||q - p||

    It lets a layer stack built for the Poincaré ball run unchanged in flat
    space, which is what geometry mode ``euclidean`` does.

    Args:
        n: Dimension of the space (0 leaves it unspecified)
    """

    def __init__(self, n: int = 0):
        if n < 0:
            raise InvalidDimension("n", n)
        self.n = n

    def __repr__(self):
        return f"Euclidean(n={self.n})"

    @property
    def dim(self) -> int:
        return self.n

    @property
    def curvature(self) -> float:
        return 0.0

    @property
    def c(self) -> Tensor:
        return torch.tensor(0.0, dtype=V.DEFAULT_DTYPE)

    def mobius_add(self, u: Tensor, v: Tensor) -> Tensor:
        return V.add(u, v)

    def mobius_scalar_mult(self, t, v: Tensor) -> Tensor:
        return V.scale(torch.as_tensor(t, dtype=v.dtype, device=v.device), v)

    def exp(self, p: Tensor, v: Tensor) -> Tensor:
        """
        Exponential map: for Euclidean space, simply addition.

        Args:
            p: Point on manifold, shape (..., n)
            v: Tangent vector at p, shape (..., n)

        Returns:
            p + v
        """
        return V.add(p, v)

    def log(self, p: Tensor, q: Tensor) -> Tensor:
        """Logarithmic map: for Euclidean space, simply q - p."""
        return V.sub(q, p)

    def expmap0(self, v: Tensor) -> Tensor:
        return v

    def logmap0(self, q: Tensor) -> Tensor:
        return q

    def parallel_transport(self, v: Tensor, p: Tensor, q: Tensor) -> Tensor:
        """
        Parallel transport tangent vector v from T_pM to T_qM.

        In Euclidean space, tangent spaces are all identified, so parallel
        transport is the identity: PT(v) = v
        """
        V.check_same_dim(v, p)
        V.check_same_dim(p, q)
        return v

    def distance(self, p: Tensor, q: Tensor) -> Tensor:
        """Euclidean norm ||q - p||, shape (...)."""
        return V.norm(V.sub(q, p), min_norm=V.MIN_NORM)

    def project(self, x: Tensor) -> Tensor:
        # Every point is already on the manifold.
        return x

    def is_valid(self, x: Tensor) -> bool:
        """Flat space only rejects non-finite coordinates."""
        return bool(torch.isfinite(x.detach()).all())

    def check_point(self, x: Tensor) -> Tensor:
        if not self.is_valid(x):
            raise OutOfBall(float('nan'), float('inf'),
                            "Point has non-finite coordinates")
        return x

    def conformal_factor(self, x: Tensor) -> Tensor:
        return torch.ones_like(x[..., :1])

    def egrad2rgrad(self, x: Tensor, grad: Tensor) -> Tensor:
        return grad

    def random_point(self, *shape, max_radius: float = 0.8, generator=None,
                     dtype=V.DEFAULT_DTYPE) -> Tensor:
        """
        Generate random point(s) with norm below max_radius.

        Samples the same way as the Poincaré ball so that datasets drawn for
        either geometry are interchangeable.
        """
        if self.n <= 0:
            raise InvalidDimension("n", self.n)
        if not 0.0 < max_radius < 1.0:
            raise ValueError(f"max_radius must lie in (0, 1), got {max_radius}")
        x = torch.randn(*shape, self.n, generator=generator, dtype=dtype)
        x_norm = V.norm(x, keepdim=True, min_norm=V.MIN_NORM)
        radius = torch.rand(*shape, 1, generator=generator, dtype=dtype) * max_radius
        return radius * x / x_norm
