"""
Distance-based attention in hyperbolic space.

Scores come from geodesic distances instead of dot products:

    weight(q, k) = exp(-d(q, k) / T) / Σ_k' exp(-d(q, k') / T)

which is a softmax over negative distances. Values are combined with a
weighted midpoint on the manifold, so outputs stay inside the ball.
"""

import torch
import torch.nn.functional as F
from torch import Tensor
from typing import List, Optional, Tuple

from ..exceptions import DimensionMismatch, NullInput
from .layers import HyperbolicLayer, HyperbolicLinear, _check_positive


AGGREGATIONS = ('mobius', 'tangent', 'euclidean')


def _check_aggregation(aggregation: str) -> str:
    if aggregation not in AGGREGATIONS:
        raise ValueError(f"Unknown aggregation: {aggregation}. Expected one of {AGGREGATIONS}")
    return aggregation


class HyperbolicAttention(HyperbolicLayer):
    """
    Single-head attention using geodesic distances.

    Queries, keys and values are produced from the input by three
    HyperbolicLinear projections; ``attend`` can also be called directly on
    prepared queries, keys and values.

    Args:
        dim: Feature dimension
        manifold: Geometry (default: unit Poincaré ball)
        temperature: Softmax temperature (default: 1.0)
        aggregation: How values are combined: 'mobius' (⊕-fold of w ⊗ v),
            'tangent' or 'euclidean' (see Manifold.weighted_midpoint)

    Example:
        >>> attn = HyperbolicAttention(8)
        >>> x = PoincareBall(8).random_point(5)
        >>> out, weights = attn.forward_with_weights(x)  # (5, 8), (5, 5)
    """

    def __init__(self, dim: int, manifold=None, temperature: float = 1.0,
                 aggregation: str = 'mobius'):
        _check_positive("dim", dim)
        super().__init__(dim, dim, manifold)
        if temperature <= 0.0:
            raise ValueError(f"temperature must be positive, got {temperature}")
        self.temperature = temperature
        self.aggregation = _check_aggregation(aggregation)

        self.q_proj = HyperbolicLinear(dim, dim, self.manifold)
        self.k_proj = HyperbolicLinear(dim, dim, self.manifold)
        self.v_proj = HyperbolicLinear(dim, dim, self.manifold)

    def attention_weights(self, queries: Tensor, keys: Tensor) -> Tensor:
        """Softmax of -d(q, k) / T, shape (N_q, N_k)."""
        distances = self.manifold.distance(queries.unsqueeze(-2), keys.unsqueeze(-3))
        return F.softmax(-distances / self.temperature, dim=-1)

    def attend(self, queries: Tensor, keys: Tensor, values: Tensor) -> Tuple[Tensor, Tensor]:
        """
        Compute hyperbolic attention.

        Args:
            queries: Query points, shape (N_q, D) or (D,)
            keys: Key points, shape (N_k, D)
            values: Value points, shape (N_k, D)

        Returns:
            output: Attended points, shape (N_q, D) (or (D,) for a single query)
            attention_weights: Attention distribution, shape (N_q, N_k)
        """
        for name, t in (('queries', queries), ('keys', keys), ('values', values)):
            if t is None:
                raise NullInput(f"Attention received no {name}")
        queries = self._check_input(queries)
        keys = self._check_input(keys)
        values = self._check_input(values)

        single = queries.dim() == 1
        if single:
            queries = queries.unsqueeze(0)
        keys = keys.reshape(-1, self.in_dim)
        values = values.reshape(-1, self.in_dim)
        if keys.shape[0] != values.shape[0]:
            raise DimensionMismatch(
                keys.shape[0], values.shape[0],
                f"Got {keys.shape[0]} keys but {values.shape[0]} values",
            )

        weights = self.attention_weights(queries, keys)
        output = self._finish(
            self.manifold.weighted_midpoint(values, weights, method=self.aggregation)
        )
        if single:
            return output.squeeze(0), weights
        return output, weights

    def forward_with_weights(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tuple[Tensor, Tensor]:
        """Self-attention over the rows of x, returning the weights as well."""
        x = self._check_input(x)
        return self.attend(self.q_proj(x), self.k_proj(x), self.v_proj(x))

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        return self.forward_with_weights(x)[0]

    def extra_repr(self) -> str:
        return (f'dim={self.in_dim}, temperature={self.temperature}, '
                f'aggregation={self.aggregation}')


class MultiHeadHyperbolicAttention(HyperbolicLayer):
    """
    Multi-head hyperbolic attention.

    Every head is an independent HyperbolicAttention over the full feature
    dimension. The head outputs for each query are combined by a uniform
    midpoint (using the same aggregation as the heads) and the attention
    weights are averaged over heads, so there is exactly one output and one
    weight row per query.

    Args:
        dim: Feature dimension
        num_heads: Number of attention heads
        manifold: Geometry (default: unit Poincaré ball)
        temperature: Softmax temperature (default: 1.0)
        aggregation: Value aggregation method (default: 'mobius')
    """

    def __init__(self, dim: int, num_heads: int = 4, manifold=None,
                 temperature: float = 1.0, aggregation: str = 'mobius'):
        _check_positive("dim", dim)
        _check_positive("num_heads", num_heads)
        super().__init__(dim, dim, manifold)
        self.num_heads = num_heads
        self.aggregation = _check_aggregation(aggregation)
        self.heads = torch.nn.ModuleList([
            HyperbolicAttention(dim, self.manifold, temperature, aggregation)
            for _ in range(num_heads)
        ])

    def _combine(self, outputs: List[Tensor]) -> Tensor:
        """Uniform midpoint of the head outputs, computed per query."""
        h = len(outputs)
        if self.aggregation == 'mobius':
            combined = self.manifold.mobius_scalar_mult(1.0 / h, outputs[0])
            for out in outputs[1:]:
                combined = self.manifold.mobius_add(
                    combined, self.manifold.mobius_scalar_mult(1.0 / h, out)
                )
            return combined
        stacked = torch.stack(outputs)
        if self.aggregation == 'tangent':
            return self.manifold.expmap0(self.manifold.logmap0(stacked).mean(dim=0))
        return stacked.mean(dim=0)

    def forward_with_weights(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tuple[Tensor, Tensor]:
        """
        Args:
            x: Points in the ball, shape (N, dim)

        Returns:
            output: shape (N, dim)
            attention_weights: Head-averaged weights, shape (N, N)
        """
        x = self._check_input(x)
        outputs, weights = [], []
        for head in self.heads:
            out, w = head.forward_with_weights(x)
            outputs.append(out)
            weights.append(w)
        return self._finish(self._combine(outputs)), torch.stack(weights).mean(dim=0)

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        return self.forward_with_weights(x)[0]

    def extra_repr(self) -> str:
        return f'dim={self.in_dim}, num_heads={self.num_heads}, aggregation={self.aggregation}'
