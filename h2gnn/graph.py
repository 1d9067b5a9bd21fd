"""Graph topology helpers (numpy) used by the losses and the diagnostics."""

from typing import Optional

import numpy as np


def adjacency_matrix(edges, num_nodes: int, directed: bool = False) -> np.ndarray:
    """
    Boolean adjacency matrix without self-loops.

    Args:
        edges: (source, target) pairs, array-like of shape (E, 2)
        num_nodes: Number of nodes
        directed: Keep edge direction (default: False)
    """
    edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
    adj = np.zeros((num_nodes, num_nodes), dtype=bool)
    adj[edges[:, 0], edges[:, 1]] = True
    if not directed:
        adj[edges[:, 1], edges[:, 0]] = True
    np.fill_diagonal(adj, False)
    return adj


def hop_distances(edges, num_nodes: int, directed: bool = False) -> np.ndarray:
    """
    All-pairs shortest path lengths in hops by breadth-first expansion.

    Returns:
        (N, N) int64 array; -1 marks unreachable pairs.
    """
    adj = adjacency_matrix(edges, num_nodes, directed).astype(np.int64)
    dist = np.full((num_nodes, num_nodes), -1, dtype=np.int64)
    np.fill_diagonal(dist, 0)

    frontier = np.eye(num_nodes, dtype=bool)
    visited = frontier.copy()
    hop = 0
    while frontier.any():
        hop += 1
        frontier = ((frontier.astype(np.int64) @ adj) > 0) & ~visited
        dist[frontier] = hop
        visited |= frontier
    return dist


def clustering_coefficient(edges, num_nodes: int) -> float:
    """
    Average local clustering coefficient of the undirected graph.

    Only nodes with at least two neighbours take part; a graph without such
    nodes has coefficient 0.
    """
    adj = adjacency_matrix(edges, num_nodes).astype(np.int64)
    degree = adj.sum(axis=1)
    triangles = np.diag(adj @ adj @ adj) / 2.0
    eligible = degree >= 2
    if not eligible.any():
        return 0.0
    pairs = degree[eligible] * (degree[eligible] - 1) / 2.0
    return float(np.mean(triangles[eligible] / pairs))


def infer_root(edges, num_nodes: int) -> Optional[int]:
    """
    The node with zero in-degree that reaches the most nodes along edge
    direction (lowest index on ties). Nodes without outgoing edges are not
    candidates; None if there is no candidate.
    """
    adj = adjacency_matrix(edges, num_nodes, directed=True)
    in_degree = adj.sum(axis=0)
    out_degree = adj.sum(axis=1)
    candidates = np.flatnonzero((in_degree == 0) & (out_degree > 0))
    if candidates.size == 0:
        return None
    reach = (hop_distances(edges, num_nodes, directed=True) >= 0).sum(axis=1)
    return int(candidates[np.argmax(reach[candidates])])
