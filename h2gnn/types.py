"""
Value types exchanged with the orchestrator.

All types are frozen dataclasses. Tensors handed in are copied and detached,
so a value never changes after construction.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import torch
from torch import Tensor

from . import vector as V
from .exceptions import DimensionMismatch, NullInput


@dataclass(frozen=True, eq=False)
class Embedding:
    """A point of the ball together with the metadata reported by ``predict``."""
    vector: Tensor
    norm: float
    curvature: float
    confidence: float
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "vector", V.as_vector(self.vector).detach().clone())
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must lie in [0, 1], got {self.confidence}")

    @property
    def dim(self) -> int:
        return self.vector.shape[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vector": self.vector.tolist(),
            "norm": self.norm,
            "curvature": self.curvature,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
        }


def _as_edges(edges, num_nodes: int) -> Tensor:
    if edges is None:
        edges = []
    edges = torch.as_tensor(edges, dtype=torch.long)
    if edges.numel() == 0:
        return edges.reshape(0, 2)
    if edges.dim() != 2 or edges.shape[-1] != 2:
        raise DimensionMismatch(2, edges.shape[-1], "Edges must be (source, target) pairs")
    if int(edges.min()) < 0 or int(edges.max()) >= num_nodes:
        raise DimensionMismatch(
            num_nodes, int(edges.max()) + 1,
            f"Edge refers to a node outside 0..{num_nodes - 1}",
        )
    return edges.clone()


@dataclass(frozen=True, eq=False)
class HyperbolicDataset:
    """
    A small graph: node points, directed (source, target) edges and optional
    hierarchy-depth labels.

    Args:
        nodes: Node points, shape (N, D)
        edges: Edge pairs, shape (E, 2) (default: none)
        depths: Optional per-node hierarchy depth, shape (N,)

    Raises:
        NullInput: If there are no nodes
        DimensionMismatch: If shapes disagree or an edge names a missing node
    """
    nodes: Tensor
    edges: Optional[Tensor] = None
    depths: Optional[Tensor] = None

    def __post_init__(self):
        if self.nodes is None:
            raise NullInput("A dataset needs at least one node")
        nodes = V.as_vector(self.nodes).detach().clone()
        if nodes.dim() != 2:
            raise DimensionMismatch(2, nodes.dim(), "Nodes must be a list of vectors")
        object.__setattr__(self, "nodes", nodes)
        object.__setattr__(self, "edges", _as_edges(self.edges, nodes.shape[0]))

        if self.depths is not None:
            depths = torch.as_tensor(self.depths, dtype=torch.long).clone()
            if depths.shape != (nodes.shape[0],):
                raise DimensionMismatch(nodes.shape[0], tuple(depths.shape),
                                        "Need exactly one depth label per node")
            object.__setattr__(self, "depths", depths)

    @property
    def num_nodes(self) -> int:
        return self.nodes.shape[0]

    @property
    def num_edges(self) -> int:
        return self.edges.shape[0]

    @property
    def dim(self) -> int:
        return self.nodes.shape[1]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HyperbolicDataset":
        """Build from ``{"nodes": [[float]], "edges": [[int, int]], "depths": [int]}``."""
        if data is None or data.get("nodes") is None:
            raise NullInput("Dataset dictionary has no nodes")
        depths = data.get("depths", data.get("labels"))
        return cls(nodes=data["nodes"], edges=data.get("edges"), depths=depths)

    def to_dict(self) -> Dict[str, Any]:
        result = {"nodes": self.nodes.tolist(), "edges": self.edges.tolist()}
        if self.depths is not None:
            result["depths"] = self.depths.tolist()
        return result


@dataclass(frozen=True)
class TrainingRecord:
    """Losses of one completed epoch, averaged over the datasets of that epoch."""
    epoch: int
    task_loss: float
    geometric_loss: float
    loss: float
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "taskLoss": self.task_loss,
            "geometricLoss": self.geometric_loss,
            "loss": self.loss,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingRecord":
        """Inverse of ``to_dict``; snake_case keys are accepted too."""
        def pick(camel, snake):
            return data[camel] if camel in data else data[snake]

        kwargs = dict(
            epoch=int(data["epoch"]),
            task_loss=float(pick("taskLoss", "task_loss")),
            geometric_loss=float(pick("geometricLoss", "geometric_loss")),
            loss=float(data["loss"]),
        )
        if data.get("timestamp") is not None:
            kwargs["timestamp"] = float(data["timestamp"])
        return cls(**kwargs)


@dataclass(frozen=True)
class GeometricInsights:
    """
    Structural summary of a set of embeddings.

    ``geodesic_distances`` holds the pairwise distance matrix, shape (N, N),
    and takes no part in equality.
    """
    hierarchy_depth: float
    clustering_coefficient: float
    curvature: float
    geodesic_distances: Optional[Tensor] = field(default=None, compare=False)

    def __post_init__(self):
        if self.geodesic_distances is not None:
            object.__setattr__(self, "geodesic_distances", self.geodesic_distances.detach().clone())

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "hierarchyDepth": self.hierarchy_depth,
            "clusteringCoefficient": self.clustering_coefficient,
            "curvature": self.curvature,
        }
        if self.geodesic_distances is not None:
            result["geodesicDistances"] = self.geodesic_distances.tolist()
        return result


@dataclass(frozen=True, eq=False)
class PredictResult:
    """
    Output of ``H2GNN.predict``.

    Attributes:
        embeddings: Node embeddings, shape (N, D)
        confidence: Per-node confidence in [0, 1], shape (N,)
        geometric_insights: Hierarchy depth, clustering coefficient, curvature
        attention_weights: Attention distribution of the final attention
            layer, shape (N, N), or None if the stack has no attention
        predictions: Predicted hierarchy depth per node, the geodesic
            distance from the origin, shape (N,)
    """
    embeddings: Tensor
    confidence: Tensor
    geometric_insights: GeometricInsights
    attention_weights: Optional[Tensor] = None
    predictions: Optional[Tensor] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "embeddings", self.embeddings.detach().clone())
        object.__setattr__(self, "confidence", self.confidence.detach().clone())
        if self.attention_weights is not None:
            object.__setattr__(self, "attention_weights", self.attention_weights.detach().clone())
        if self.predictions is not None:
            object.__setattr__(self, "predictions", self.predictions.detach().clone())

    def as_embeddings(self) -> List[Embedding]:
        """One Embedding value per node."""
        norms = V.norm(self.embeddings)
        curvature = self.geometric_insights.curvature
        return [
            Embedding(
                vector=self.embeddings[i],
                norm=float(norms[i]),
                curvature=curvature,
                confidence=float(self.confidence[i]),
                timestamp=self.timestamp,
            )
            for i in range(self.embeddings.shape[0])
        ]

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "embeddings": self.embeddings.tolist(),
            "confidence": self.confidence.tolist(),
            "geometricInsights": self.geometric_insights.to_dict(),
        }
        if self.predictions is not None:
            result["predictions"] = self.predictions.tolist()
        return result


def as_datasets(datasets) -> List[HyperbolicDataset]:
    """Normalise one dataset, a dict, or a sequence of either into a list."""
    if datasets is None:
        raise NullInput("No datasets given")
    if isinstance(datasets, (HyperbolicDataset, dict)):
        datasets = [datasets]
    result = [d if isinstance(d, HyperbolicDataset) else HyperbolicDataset.from_dict(d)
              for d in datasets]
    if not result:
        raise NullInput("No datasets given")
    return result
