"""
Synthetic hierarchical graphs.

Trees are laid out the way hyperbolic embeddings of hierarchies look: the
root sits at the origin, every level lies on a larger sphere, and children
point roughly in the direction of their parent.
"""

import logging
import math
from typing import List, Optional

import torch
from torch import Tensor

from . import vector as V
from .exceptions import InvalidCurvature, InvalidDimension
from .manifolds import PoincareBall
from .types import HyperbolicDataset

logger = logging.getLogger(__name__)

# Largest node radius, as a fraction of the ball radius.
MAX_NODE_RADIUS = 0.9


def _check_positive(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidDimension(name, value)
    return value


def _generator(seed: Optional[int]) -> torch.Generator:
    generator = torch.Generator()
    if seed is not None:
        generator.manual_seed(seed)
    else:
        generator.seed()
    return generator


def random_hyperbolic_point(dim: int, max_radius: float = 0.8, curvature: float = -1.0,
                            generator: Optional[torch.Generator] = None) -> Tensor:
    """
    A random point of the Poincaré ball with norm below max_radius / √|κ|.

    Args:
        dim: Coordinate dimension
        max_radius: Fraction of the ball radius, in (0, 1)
        curvature: Negative curvature κ
        generator: Optional torch.Generator for reproducibility
    """
    _check_positive("dim", dim)
    return PoincareBall(dim, curvature).random_point(max_radius=max_radius, generator=generator)


def create_hierarchical_dataset(
    num_nodes: int,
    hierarchy_depth: int = 3,
    dim: int = 8,
    branching_factor: int = 2,
    radius_step: float = 0.2,
    seed: Optional[int] = None,
    curvature: float = -1.0,
) -> HyperbolicDataset:
    """
    Generate a rooted tree embedded in the Poincaré ball of curvature κ.

    Nodes are attached breadth-first: node 0 is the root and every node takes
    up to ``branching_factor`` children until ``hierarchy_depth`` is reached.
    Nodes left over once the tree is full are attached to randomly chosen
    inner nodes. A node at depth k is placed at radius
    min(k · radius_step, 0.9) / √|κ| in a direction close to its parent's.

    Args:
        num_nodes: Number of nodes
        hierarchy_depth: Deepest level of the tree
        dim: Coordinate dimension
        branching_factor: Children per node before the next node is used
        radius_step: Radius added per level, as a fraction of the ball radius
        seed: Seed for directions and leftover attachment
        curvature: Negative curvature κ of the target ball

    Returns:
        HyperbolicDataset with (parent, child) edges and depth labels
    """
    _check_positive("num_nodes", num_nodes)
    _check_positive("hierarchy_depth", hierarchy_depth)
    _check_positive("dim", dim)
    _check_positive("branching_factor", branching_factor)
    if radius_step <= 0:
        raise ValueError(f"radius_step must be positive, got {radius_step}")
    if curvature >= 0:
        raise InvalidCurvature(curvature)
    ball_radius = 1.0 / math.sqrt(-curvature)

    generator = _generator(seed)

    parents = [-1]
    depths = [0]
    children = [0]
    cursor = 0
    for node in range(1, num_nodes):
        while cursor < node and (children[cursor] >= branching_factor
                                 or depths[cursor] >= hierarchy_depth):
            cursor += 1
        if cursor < node:
            parent = cursor
        else:
            inner = [j for j in range(node) if depths[j] < hierarchy_depth]
            parent = inner[int(torch.randint(len(inner), (1,), generator=generator))]
        parents.append(parent)
        depths.append(depths[parent] + 1)
        children[parent] += 1
        children.append(0)

    directions = torch.zeros(num_nodes, dim, dtype=V.DEFAULT_DTYPE)
    nodes = torch.zeros(num_nodes, dim, dtype=V.DEFAULT_DTYPE)
    for node in range(1, num_nodes):
        noise = torch.randn(dim, generator=generator, dtype=V.DEFAULT_DTYPE)
        direction = directions[parents[node]] + 0.5 * noise
        direction = direction / V.norm(direction, min_norm=V.MIN_NORM)
        directions[node] = direction
        nodes[node] = min(depths[node] * radius_step, MAX_NODE_RADIUS) * ball_radius * direction

    edges = [[parents[node], node] for node in range(1, num_nodes)]
    logger.debug(f"Generated hierarchy: {num_nodes} nodes, depth {max(depths)}, dim {dim}")
    return HyperbolicDataset(nodes=nodes, edges=edges, depths=depths)


def generate_datasets(
    count: int,
    num_nodes: int = 15,
    hierarchy_depth: int = 3,
    dim: int = 8,
    branching_factor: int = 2,
    radius_step: float = 0.2,
    seed: Optional[int] = None,
    curvature: float = -1.0,
) -> List[HyperbolicDataset]:
    """
    Generate ``count`` hierarchical datasets; dataset i uses seed ``seed + i``.
    """
    _check_positive("count", count)
    datasets = [
        create_hierarchical_dataset(
            num_nodes,
            hierarchy_depth=hierarchy_depth,
            dim=dim,
            branching_factor=branching_factor,
            radius_step=radius_step,
            seed=None if seed is None else seed + i,
            curvature=curvature,
        )
        for i in range(count)
    ]
    logger.info(f"Generated {count} hierarchical datasets of {num_nodes} nodes")
    return datasets
