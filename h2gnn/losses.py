"""
Training objectives.

- Task loss: link prediction with the Fermi-Dirac decoder
  p(i ~ j) = σ((r - d(x_i, x_j)²) / t), binary cross-entropy on the edges
  and on sampled non-edges.
- Geometric loss: variance of the embedding norms plus the mean squared
  drift of hyperbolic distances from hop distances over connected pairs.
- Depth loss: mean squared error between each node's distance from the
  origin and its hierarchy-depth label, added to the task loss when the
  dataset carries labels.
"""

import math
from typing import Optional

import numpy as np
import torch
import torch.nn.functional as F
from torch import Tensor

from . import vector as V
from .graph import adjacency_matrix


def fermi_dirac_logits(distances: Tensor, r: float = 2.0, t: float = 1.0) -> Tensor:
    """Logits (r - d²) / t of the Fermi-Dirac edge probability."""
    return (r - distances ** 2) / t


def negative_edges(edges: Tensor, num_nodes: int, ratio: float = 1.0,
                   generator: Optional[torch.Generator] = None) -> Tensor:
    """
    Sample node pairs (i < j) that are not connected by an edge.

    At most ceil(ratio · E) pairs are returned, drawn without replacement.

    Returns:
        Long tensor of shape (K, 2)
    """
    adj = adjacency_matrix(edges.numpy(), num_nodes)
    rows, cols = np.triu_indices(num_nodes, k=1)
    free = ~adj[rows, cols]
    candidates = torch.as_tensor(np.stack([rows[free], cols[free]], axis=1), dtype=torch.long)

    k = min(candidates.shape[0], math.ceil(ratio * edges.shape[0]))
    if k == 0:
        return torch.zeros((0, 2), dtype=torch.long)
    order = torch.randperm(candidates.shape[0], generator=generator)[:k]
    return candidates[order]


def task_loss(manifold, embeddings: Tensor, edges: Tensor, negatives: Tensor,
              r: float = 2.0, t: float = 1.0) -> Tensor:
    """Binary cross-entropy of edge / non-edge classification; 0 without pairs."""
    pairs = torch.cat([edges, negatives], dim=0)
    if pairs.shape[0] == 0:
        return embeddings.new_zeros(())
    targets = torch.cat([
        torch.ones(edges.shape[0], dtype=embeddings.dtype),
        torch.zeros(negatives.shape[0], dtype=embeddings.dtype),
    ])
    distances = manifold.distance(embeddings[pairs[:, 0]], embeddings[pairs[:, 1]])
    return F.binary_cross_entropy_with_logits(fermi_dirac_logits(distances, r, t), targets)


def geometric_loss(manifold, embeddings: Tensor, hops: Tensor) -> Tensor:
    """
    Norm variance plus distance drift.

    Args:
        manifold: Geometry the embeddings live in
        embeddings: Node points, shape (N, D)
        hops: Hop distances, shape (N, N), -1 for unreachable pairs
    """
    norms = V.norm(embeddings, min_norm=V.MIN_NORM)
    variance = ((norms - norms.mean()) ** 2).mean()

    i, j = torch.triu_indices(hops.shape[0], hops.shape[1], offset=1)
    connected = hops[i, j] > 0
    if not connected.any():
        return variance
    i, j = i[connected], j[connected]
    distances = manifold.distance(embeddings[i], embeddings[j])
    drift = ((distances - hops[i, j].to(embeddings.dtype)) ** 2).mean()
    return variance + drift


def depth_loss(manifold, embeddings: Tensor, depths: Tensor) -> Tensor:
    """Mean squared error of d(0, x_i) against the depth label of node i."""
    origin = torch.zeros_like(embeddings)
    radii = manifold.distance(origin, embeddings)
    return ((radii - depths.to(embeddings.dtype)) ** 2).mean()
