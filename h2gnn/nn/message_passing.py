"""Graph message passing in hyperbolic space."""

import torch
import torch.nn as nn
import torch.nn.functional as F
from torch import Tensor
from typing import Optional

from .. import vector as V
from ..exceptions import DimensionMismatch, NullInput
from .attention import _check_aggregation
from .layers import HyperbolicLayer, HyperbolicLinear


def neighbourhood_mask(edge_index, num_nodes: int) -> Tensor:
    """
    Boolean (N, N) mask of undirected neighbourhoods including self-loops.

    Args:
        edge_index: Integer pairs (source, target), shape (E, 2)
        num_nodes: Number of nodes N

    Raises:
        NullInput: If edge_index is None
        DimensionMismatch: If edge_index is not (E, 2) or names a node >= N
    """
    if edge_index is None:
        raise NullInput("Message passing requires an edge_index")
    edges = torch.as_tensor(edge_index, dtype=torch.long)
    if edges.numel() == 0:
        edges = edges.reshape(0, 2)
    if edges.dim() != 2 or edges.shape[-1] != 2:
        raise DimensionMismatch(2, edges.shape[-1], "edge_index must have shape (E, 2)")
    if edges.numel() and (int(edges.min()) < 0 or int(edges.max()) >= num_nodes):
        raise DimensionMismatch(
            num_nodes, int(edges.max()) + 1,
            f"Edge refers to a node outside 0..{num_nodes - 1}",
        )

    mask = torch.eye(num_nodes, dtype=torch.bool)
    mask[edges[:, 0], edges[:, 1]] = True
    mask[edges[:, 1], edges[:, 0]] = True
    return mask


class HyperbolicMessagePassing(HyperbolicLayer):
    """
    Neighbourhood aggregation followed by a hyperbolic linear map.

    Each node is replaced by the weighted midpoint of itself and its
    neighbours (edges are treated as undirected), then passed through a
    HyperbolicLinear layer.

    With ``learn_weights`` the weight of neighbour j for node i is
        softmax_j(-exp(s) · d(x_i, x_j))
    with a learnable scalar s, so closer neighbours count more; otherwise
    all neighbours count equally.

    Args:
        in_dim: Input feature dimension
        out_dim: Output feature dimension
        manifold: Geometry (default: unit Poincaré ball)
        learn_weights: Learn distance-based weights (default: True)
        aggregation: Midpoint method (default: 'mobius')
    """

    def __init__(self, in_dim: int, out_dim: int, manifold=None,
                 learn_weights: bool = True, aggregation: str = 'mobius'):
        super().__init__(in_dim, out_dim, manifold)
        self.learn_weights = learn_weights
        self.aggregation = _check_aggregation(aggregation)
        self.linear = HyperbolicLinear(in_dim, out_dim, self.manifold)
        if learn_weights:
            self.log_scale = nn.Parameter(torch.zeros(1, dtype=V.DEFAULT_DTYPE))
        else:
            self.register_parameter('log_scale', None)

    def neighbour_weights(self, x: Tensor, mask: Tensor) -> Tensor:
        """Row-stochastic (N, N) aggregation weights, zero outside the mask."""
        if self.learn_weights:
            distances = self.manifold.distance(x.unsqueeze(1), x.unsqueeze(0))
            scores = (-self.log_scale.exp() * distances).masked_fill(~mask, float('-inf'))
            return F.softmax(scores, dim=-1)
        weights = mask.to(x.dtype)
        return weights / weights.sum(dim=-1, keepdim=True)

    def forward(self, x: Tensor, edge_index: Optional[Tensor] = None) -> Tensor:
        """
        Args:
            x: Node points, shape (N, in_dim)
            edge_index: Edges as (source, target) pairs, shape (E, 2)

        Returns:
            Node points, shape (N, out_dim)
        """
        x = self._check_input(x)
        if x.dim() == 1:
            x = x.unsqueeze(0)
        mask = neighbourhood_mask(edge_index, x.shape[0])
        weights = self.neighbour_weights(x, mask)
        aggregated = self.manifold.weighted_midpoint(x, weights, method=self.aggregation)
        return self.linear(aggregated)

    def extra_repr(self) -> str:
        return (f'in_dim={self.in_dim}, out_dim={self.out_dim}, '
                f'learn_weights={self.learn_weights}, aggregation={self.aggregation}')
