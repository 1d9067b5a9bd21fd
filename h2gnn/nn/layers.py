"""
h2gnn Neural Network Layers
===========================

Building blocks of the hyperbolic graph network. Every layer works the same
way: map ball points to a tangent space, apply an ordinary Euclidean
operation there, map the result back and clamp it into the ball.

Layers:
- HyperbolicLayer: Shared contract (input checks, output projection)
- HyperbolicLinear: W·log_0(x) + b mapped back with exp_0
- HyperbolicActivation: ReLU / Tanh / Sigmoid in the tangent space at 0
- HyperbolicDropout: Seeded coordinate dropout in the tangent space at 0
- FrechetMean: Iterative Karcher mean on the manifold
- HyperbolicBatchNorm: Re-centering and re-scaling around a learned center
"""

import math
import torch
import torch.nn as nn
import torch.nn.functional as F
from torch import Tensor
from typing import Optional

from .. import vector as V
from ..exceptions import DimensionMismatch, InvalidDimension, NullInput
from ..manifolds import PoincareBall
from .parameter import ManifoldParameter


def _check_positive(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidDimension(name, value)
    return value


# =============================================================================
# BASE LAYER
# =============================================================================

class HyperbolicLayer(nn.Module):
    """
    Base class for all layers of the stack.

    Subclasses implement ``forward(x, edge_index=None)`` where ``x`` has shape
    (..., in_dim) and lies on ``self.manifold``. Only message passing reads
    ``edge_index``; the other layers accept and ignore it so a stack can be
    run by plain iteration.

    Args:
        in_dim: Input dimension, or None for dimension-preserving layers
        out_dim: Output dimension, or None to match the input
        manifold: Geometry to operate in (default: PoincareBall(curvature=-1))
    """

    def __init__(self, in_dim: Optional[int], out_dim: Optional[int], manifold=None):
        super().__init__()
        self.in_dim = None if in_dim is None else _check_positive("in_dim", in_dim)
        self.out_dim = None if out_dim is None else _check_positive("out_dim", out_dim)
        self.manifold = manifold if manifold is not None else PoincareBall()

    def _check_input(self, x) -> Tensor:
        if x is None:
            raise NullInput(f"{self.__class__.__name__} received no input")
        x = V.as_vector(x)
        if self.in_dim is not None:
            V.check_dim(x, self.in_dim)
        return x

    def _finish(self, y: Tensor) -> Tensor:
        """Clamp a produced point into the ball and verify it stayed there."""
        return self.manifold.check_point(self.manifold.project(y))

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        raise NotImplementedError


# =============================================================================
# HYPERBOLIC LINEAR
# =============================================================================

class HyperbolicLinear(HyperbolicLayer):
    """
    Linear layer acting in the tangent space at the origin.

    Computes: exp_0(W · log_0(x) + b), clamped into the ball.

    The weight matrix and bias are ordinary Euclidean parameters; they are
    tangent vectors at the origin, so Riemannian optimizers rescale their
    gradients rather than moving them along geodesics.

    Args:
        in_dim: Size of input features
        out_dim: Size of output features
        manifold: Target geometry (default: unit Poincaré ball)
        bias: Include bias term (default: True)

    Example:
        >>> layer = HyperbolicLinear(8, 4)
        >>> x = PoincareBall(8).random_point(32)
        >>> y = layer(x)  # shape (32, 4), each row inside the ball
    """

    def __init__(self, in_dim: int, out_dim: int, manifold=None, bias: bool = True):
        _check_positive("in_dim", in_dim)
        _check_positive("out_dim", out_dim)
        super().__init__(in_dim, out_dim, manifold)

        self.weight = nn.Parameter(torch.empty(out_dim, in_dim, dtype=V.DEFAULT_DTYPE))
        if bias:
            self.bias = nn.Parameter(torch.empty(out_dim, dtype=V.DEFAULT_DTYPE))
        else:
            self.register_parameter('bias', None)

        self.reset_parameters()

    def reset_parameters(self):
        """Initialize weights with Kaiming uniform and a small bias."""
        nn.init.kaiming_uniform_(self.weight, a=math.sqrt(5))

        if self.bias is not None:
            fan_in, _ = nn.init._calculate_fan_in_and_fan_out(self.weight)
            bound = 1 / math.sqrt(fan_in) if fan_in > 0 else 0
            nn.init.uniform_(self.bias, -bound, bound)
            # Keep the initial map close to a rotation about the origin
            with torch.no_grad():
                self.bias.mul_(0.1)

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        """
        Args:
            x: Points in the ball, shape (..., in_dim)

        Returns:
            Points in the ball, shape (..., out_dim)

        Raises:
            NullInput: If x is None or empty
            DimensionMismatch: If x.shape[-1] != in_dim
        """
        x = self._check_input(x)
        tangent = self.manifold.logmap0(x)
        y = F.linear(tangent, self.weight, self.bias)
        return self._finish(self.manifold.expmap0(y))

    def extra_repr(self) -> str:
        return (f'in_dim={self.in_dim}, out_dim={self.out_dim}, '
                f'bias={self.bias is not None}, manifold={self.manifold!r}')


# =============================================================================
# ACTIVATION AND DROPOUT
# =============================================================================

_ACTIVATIONS = {
    'relu': torch.relu,
    'tanh': torch.tanh,
    'sigmoid': torch.sigmoid,
    'identity': lambda t: t,
}


class HyperbolicActivation(HyperbolicLayer):
    """
    Pointwise nonlinearity applied in the tangent space at the origin.

    Computes: exp_0(σ(log_0(x)))

    Args:
        kind: 'relu', 'tanh', 'sigmoid' or 'identity'
        dim: Expected input dimension (default: any)
        manifold: Geometry (default: unit Poincaré ball)
    """

    def __init__(self, kind: str = 'relu', dim: Optional[int] = None, manifold=None):
        super().__init__(dim, dim, manifold)
        if kind not in _ACTIVATIONS:
            raise ValueError(
                f"Unknown activation: {kind}. Expected one of {sorted(_ACTIVATIONS)}"
            )
        self.kind = kind

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        x = self._check_input(x)
        tangent = self.manifold.logmap0(x)
        return self._finish(self.manifold.expmap0(_ACTIVATIONS[self.kind](tangent)))

    def extra_repr(self) -> str:
        return f'kind={self.kind}'


class HyperbolicDropout(HyperbolicLayer):
    """
    Dropout of tangent-space coordinates at the origin.

    Surviving coordinates are rescaled by 1/(1 - rate) before mapping back.
    Masks are drawn from a generator owned by the layer, so two layers built
    with the same seed drop the same coordinates. Identity in eval mode.

    Args:
        rate: Drop probability in [0, 1)
        seed: Seed of the layer's generator (default: nondeterministic)
        dim: Expected input dimension (default: any)
        manifold: Geometry (default: unit Poincaré ball)
    """

    def __init__(self, rate: float = 0.1, seed: Optional[int] = None,
                 dim: Optional[int] = None, manifold=None):
        super().__init__(dim, dim, manifold)
        if not 0.0 <= rate < 1.0:
            raise ValueError(f"Dropout rate must lie in [0, 1), got {rate}")
        self.rate = rate
        self.seed = seed
        self.generator = torch.Generator()
        if seed is not None:
            self.generator.manual_seed(seed)
        else:
            self.generator.seed()

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        x = self._check_input(x)
        if not self.training or self.rate == 0.0:
            return self._finish(x)

        tangent = self.manifold.logmap0(x)
        keep = torch.rand(tangent.shape, generator=self.generator, dtype=tangent.dtype)
        mask = (keep >= self.rate).to(tangent.dtype) / (1.0 - self.rate)
        return self._finish(self.manifold.expmap0(tangent * mask))

    def __getstate__(self):
        state = self.__dict__.copy()
        state['generator'] = self.generator.get_state()
        return state

    def __setstate__(self, state):
        state = dict(state)
        generator = torch.Generator()
        generator.set_state(state.pop('generator'))
        super().__setstate__(state)
        self.generator = generator

    def extra_repr(self) -> str:
        return f'rate={self.rate}, seed={self.seed}'


# =============================================================================
# FRÉCHET MEAN
# =============================================================================

class FrechetMean(nn.Module):
    """
    Differentiable Fréchet (Karcher) mean on a Riemannian manifold.

    The Fréchet mean is the generalization of the arithmetic mean to manifolds:
        μ = argmin_p Σ_i w_i * d(p, x_i)²

    This is an approximation: starting from the projected weighted Euclidean
    mean, at most ``max_iter`` Riemannian gradient steps
    μ ← exp_μ(lr · Σ_i w_i log_μ(x_i)) are taken, stopping early once the
    tangent-space gradient norm drops below ``tol``. The number of steps used
    by the last call is kept in ``last_iterations``.

    Args:
        manifold: The Riemannian manifold
        max_iter: Iteration bound (default: 10)
        tol: Convergence tolerance on the gradient norm (default: 1e-6)
        lr: Step size of the internal optimization (default: 1.0)

    Applications:
        - Batch statistics for hyperbolic batch normalization
        - Pooling node features in geometric GNNs
    """

    def __init__(self, manifold, max_iter: int = 10, tol: float = 1e-6, lr: float = 1.0):
        super().__init__()
        if max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {max_iter}")
        if tol < 0.0:
            raise ValueError(f"tol must be non-negative, got {tol}")
        self.manifold = manifold
        self.max_iter = max_iter
        self.tol = tol
        self.lr = lr
        self.last_iterations = 0

    def forward(self, points: Tensor, weights: Optional[Tensor] = None) -> Tensor:
        """
        Compute weighted Fréchet mean.

        Args:
            points: Points on manifold, shape (N, D)
            weights: Optional weights, shape (N,). Default: uniform.

        Returns:
            Fréchet mean, shape (D,)
        """
        if points is None or points.numel() == 0:
            raise NullInput("Cannot average an empty set of points")
        if points.dim() != 2:
            raise ValueError(f"Expected 2D tensor, got {points.dim()}D")
        n = points.shape[0]

        if weights is None:
            weights = torch.ones(n, device=points.device, dtype=points.dtype) / n
        else:
            if weights.shape[-1] != n:
                raise DimensionMismatch(n, weights.shape[-1])
            weights = weights / weights.sum()

        mean = self.manifold.project((weights.unsqueeze(-1) * points).sum(dim=0))

        self.last_iterations = 0
        for _ in range(self.max_iter):
            grad = weights @ self.manifold.log(mean, points)
            if float(V.norm(grad.detach())) < self.tol:
                break
            mean = self.manifold.exp(mean, self.lr * grad)
            self.last_iterations += 1

        return mean

    def extra_repr(self) -> str:
        return f'max_iter={self.max_iter}, tol={self.tol}, lr={self.lr}'


# =============================================================================
# BATCH NORMALIZATION
# =============================================================================

class HyperbolicBatchNorm(HyperbolicLayer):
    """
    Riemannian batch normalization.

    In training mode the batch Fréchet mean μ and dispersion
    σ² = mean_i d(μ, x_i)² are computed; every point is mapped to the tangent
    space at μ, parallel transported to a learned center, rescaled by
    gamma / sqrt(σ² + eps) and mapped back with exp at the center.

    Running statistics (geodesic interpolation of the mean, exponential
    moving average of the dispersion) replace the batch statistics in eval
    mode.

    Args:
        dim: Feature dimension
        manifold: Geometry (default: unit Poincaré ball)
        momentum: Weight of the newest batch in the running statistics
        eps: Added to the dispersion before the square root
        max_iter: Fréchet mean iteration bound
        tol: Fréchet mean convergence tolerance
    """

    def __init__(self, dim: int, manifold=None, momentum: float = 0.1,
                 eps: float = 1e-5, max_iter: int = 10, tol: float = 1e-6):
        _check_positive("dim", dim)
        super().__init__(dim, dim, manifold)
        if not 0.0 <= momentum <= 1.0:
            raise ValueError(f"momentum must lie in [0, 1], got {momentum}")
        self.momentum = momentum
        self.eps = eps

        self.frechet = FrechetMean(self.manifold, max_iter=max_iter, tol=tol)
        self.center = ManifoldParameter(torch.zeros(dim, dtype=V.DEFAULT_DTYPE), self.manifold)
        self.gamma = nn.Parameter(torch.ones(1, dtype=V.DEFAULT_DTYPE))

        self.register_buffer('running_mean', torch.zeros(dim, dtype=V.DEFAULT_DTYPE))
        self.register_buffer('running_var', torch.ones((), dtype=V.DEFAULT_DTYPE))

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        """
        Args:
            x: Points in the ball, shape (N, dim) or (dim,)

        Returns:
            Normalized points, same shape as x
        """
        x = self._check_input(x)
        single = x.dim() == 1
        if single:
            x = x.unsqueeze(0)

        if self.training:
            mean = self.frechet(x)
            var = (self.manifold.distance(mean, x) ** 2).mean()
            with torch.no_grad():
                self.running_mean.copy_(
                    self.manifold.geodesic(self.running_mean, mean.detach(), self.momentum)
                )
                self.running_var.mul_(1.0 - self.momentum).add_(self.momentum * var.detach())
        else:
            mean = self.running_mean
            var = self.running_var

        tangent = self.manifold.log(mean, x)
        transported = self.manifold.parallel_transport(tangent, mean, self.center)
        scaled = transported * self.gamma / torch.sqrt(var + self.eps)
        out = self._finish(self.manifold.exp(self.center, scaled))
        return out.squeeze(0) if single else out

    def extra_repr(self) -> str:
        return f'dim={self.in_dim}, momentum={self.momentum}, eps={self.eps}'
