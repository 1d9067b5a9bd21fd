"""
H²GNN: hyperbolic graph network orchestrator.

Owns the configuration, the layer stack and the training history. Training
runs synchronously in the caller's thread; cancellation is cooperative and
checked once per epoch.

Architecture::

    nodes ──► [MessagePassing → BatchNorm → ReLU → Dropout] × num_layers
          ──► (multi-head) attention ──► HyperbolicLinear ──► embeddings
"""

import copy
import logging
import math
from dataclasses import replace
from enum import Enum
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple, Union

import torch
import torch.nn as nn
from torch import Tensor

from . import vector as V
from .config import Config, GeometryMode, load_config
from .exceptions import ConfigurationError, DimensionMismatch, DivergedTraining, H2GNNError
from .graph import clustering_coefficient, hop_distances, infer_root
from .losses import depth_loss, geometric_loss, negative_edges, task_loss
from .manifolds import Euclidean, PoincareBall
from .nn import (
    HyperbolicActivation,
    HyperbolicAttention,
    HyperbolicBatchNorm,
    HyperbolicDropout,
    HyperbolicLinear,
    HyperbolicMessagePassing,
    ManifoldParameter,
    MultiHeadHyperbolicAttention,
)
from .optim import RiemannianSGD
from .types import GeometricInsights, HyperbolicDataset, PredictResult, TrainingRecord, as_datasets

logger = logging.getLogger(__name__)

_ATTENTION = (HyperbolicAttention, MultiHeadHyperbolicAttention)


class TrainingState(Enum):
    IDLE = "idle"
    TRAINING = "training"


class TrainingOutcome(Enum):
    CONVERGED = "converged"
    MAX_EPOCHS_REACHED = "max_epochs_reached"
    CANCELLED = "cancelled"


class _Prepared(NamedTuple):
    nodes: Tensor
    edges: Tensor
    hops: Tensor
    negatives: Tensor
    depths: Optional[Tensor]


class H2GNN:
    """
    Hyperbolic geometric graph network.

    Args:
        config: Config, dict of config values, or None for defaults

    Example:
        >>> from h2gnn import H2GNN, Config, generate_datasets
        >>> model = H2GNN(Config(embedding_dim=8, num_layers=2, max_epochs=20, seed=0))
        >>> records = model.train(generate_datasets(3, seed=0))
        >>> result = model.predict(generate_datasets(1, seed=99)[0])
        >>> result.geometric_insights.hierarchy_depth
    """

    def __init__(self, config: Optional[Union[Config, dict]] = None):
        self.config = load_config(config)
        self.state = TrainingState.IDLE
        self.last_outcome: Optional[TrainingOutcome] = None
        self._history: List[TrainingRecord] = []
        self._stop_requested = False

        self.manifold = self._make_manifold(self.config.geometry_mode)
        if self.config.seed is None:
            self.layers = self._build_layers()
        else:
            with torch.random.fork_rng(devices=[]):
                torch.manual_seed(self.config.seed)
                self.layers = self._build_layers()
        self.layers.eval()

    def __repr__(self):
        return (f"H2GNN(embedding_dim={self.config.embedding_dim}, "
                f"num_layers={self.config.num_layers}, manifold={self.manifold!r}, "
                f"state={self.state.value})")

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _make_manifold(self, mode: GeometryMode, curvature: Optional[float] = None):
        dim = self.config.embedding_dim
        if mode is GeometryMode.EUCLIDEAN:
            return Euclidean(dim)
        if mode is GeometryMode.ADAPTIVE:
            return PoincareBall(dim, curvature or self.config.curvature, learnable=True)
        return PoincareBall(dim, self.config.curvature)

    def _build_layers(self) -> nn.ModuleList:
        cfg = self.config
        dim = cfg.embedding_dim
        layers = []
        for i in range(cfg.num_layers):
            layers.extend([
                HyperbolicMessagePassing(dim, dim, self.manifold),
                HyperbolicBatchNorm(dim, self.manifold, max_iter=cfg.batchnorm_max_iter,
                                    tol=cfg.batchnorm_tol),
                HyperbolicActivation('relu', dim, self.manifold),
                HyperbolicDropout(cfg.dropout, None if cfg.seed is None else cfg.seed + i,
                                  dim, self.manifold),
            ])
        if cfg.num_heads > 1:
            layers.append(MultiHeadHyperbolicAttention(
                dim, cfg.num_heads, self.manifold, temperature=cfg.attention_temperature))
        else:
            layers.append(HyperbolicAttention(
                dim, self.manifold, temperature=cfg.attention_temperature))
        layers.append(HyperbolicLinear(dim, dim, self.manifold))
        return nn.ModuleList(layers)

    def _bind_manifold(self, manifold) -> None:
        """Point every layer and ball-valued parameter at ``manifold``."""
        for module in self.layers.modules():
            if hasattr(module, 'manifold'):
                module.manifold = manifold
        with torch.no_grad():
            for param in self.layers.parameters():
                if isinstance(param, ManifoldParameter):
                    param.manifold = manifold
                    param.data = manifold.project(param.data)
            for module in self.layers.modules():
                if isinstance(module, HyperbolicBatchNorm):
                    module.running_mean.copy_(manifold.project(module.running_mean))
        self.manifold = manifold

    def set_geometry_mode(self, mode: Union[GeometryMode, str]) -> None:
        """
        Switch the geometry used by every future forward pass.

        ``euclidean`` computes in flat space, ``hyperbolic`` in the ball of
        the configured curvature and ``adaptive`` in a ball whose curvature
        is learned during training, starting from the current curvature.
        """
        if self.state is TrainingState.TRAINING:
            raise H2GNNError("Cannot switch geometry while training")
        try:
            mode = GeometryMode(mode)
        except ValueError:
            raise ConfigurationError(f"Unknown geometry mode: {mode}") from None

        current = self.curvature if self.curvature < 0 else None
        self._bind_manifold(self._make_manifold(mode, current))
        self.config = replace(self.config, geometry_mode=mode)
        logger.info(f"Geometry mode set to {mode.value} (curvature {self.curvature:.4g})")

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def curvature(self) -> float:
        """Curvature currently in use (0.0 in Euclidean mode)."""
        return self.manifold.curvature

    @property
    def history(self) -> Tuple[TrainingRecord, ...]:
        """All training records so far, oldest first."""
        return tuple(self._history)

    @property
    def is_training(self) -> bool:
        return self.state is TrainingState.TRAINING

    # -------------------------------------------------------------------------
    # Forward pass
    # -------------------------------------------------------------------------

    def _forward(self, nodes: Tensor, edges: Tensor) -> Tuple[Tensor, Optional[Tensor]]:
        h = nodes
        weights = None
        for layer in self.layers:
            if isinstance(layer, _ATTENTION):
                h, weights = layer.forward_with_weights(h)
            else:
                h = layer(h, edges)
        return h, weights

    def _check_dataset(self, dataset: HyperbolicDataset) -> None:
        if dataset.dim != self.config.embedding_dim:
            raise DimensionMismatch(self.config.embedding_dim, dataset.dim)
        self.manifold.check_point(dataset.nodes)

    def _prepare(self, dataset: HyperbolicDataset, generator: torch.Generator) -> _Prepared:
        self._check_dataset(dataset)
        hops = torch.as_tensor(hop_distances(dataset.edges.numpy(), dataset.num_nodes))
        negatives = negative_edges(dataset.edges, dataset.num_nodes,
                                   self.config.negative_ratio, generator)
        return _Prepared(dataset.nodes, dataset.edges, hops, negatives, dataset.depths)

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def _make_optimizer(self) -> RiemannianSGD:
        cfg = self.config
        tangent = []
        for module in self.layers.modules():
            if isinstance(module, HyperbolicLinear):
                tangent.extend(p for p in (module.weight, module.bias) if p is not None)
        tangent_ids = {id(p) for p in tangent}
        points = [p for p in self.layers.parameters() if isinstance(p, ManifoldParameter)]
        plain = [p for p in self.layers.parameters()
                 if id(p) not in tangent_ids and not isinstance(p, ManifoldParameter)]
        plain.extend(self.manifold.parameters())

        groups = [{'params': tangent, 'manifold': self.manifold}]
        if points:
            groups.append({'params': points})
        if plain:
            groups.append({'params': plain})
        return RiemannianSGD(groups, lr=cfg.learning_rate, momentum=cfg.momentum,
                             grad_clip=cfg.grad_clip)

    def _check_parameters(self, epoch: int) -> None:
        for name, param in self.layers.named_parameters():
            if not torch.isfinite(param).all():
                raise DivergedTraining(epoch, "Parameter became non-finite", {"parameter": name})
        for param in self.manifold.parameters():
            if not torch.isfinite(param).all():
                raise DivergedTraining(epoch, "Curvature became non-finite")

    def _adopt_config(self, config: Config) -> None:
        if config.architecture() != self.config.architecture():
            changed = sorted(k for k, v in config.architecture().items()
                             if self.config.architecture()[k] != v)
            raise ConfigurationError("Config changes the layer stack", {"fields": changed})
        mode = config.geometry_mode
        switch = mode is not self.config.geometry_mode
        self.config = config
        if switch:
            self.set_geometry_mode(mode)

    def stop(self) -> None:
        """Request cancellation; honoured at the next epoch boundary."""
        self._stop_requested = True

    def train(
        self,
        datasets: Union[HyperbolicDataset, dict, Iterable[Union[HyperbolicDataset, dict]]],
        config: Optional[Union[Config, dict]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[TrainingRecord]:
        """
        Train on one or more datasets.

        Every epoch runs one optimization step per dataset and appends one
        TrainingRecord with the dataset-averaged losses. Training ends when
        the loss has improved by less than ``tolerance`` for ``patience``
        consecutive epochs, after ``max_epochs`` epochs, or when cancelled.
        Datasets with depth labels add the depth regression to the task
        loss.

        Args:
            datasets: A dataset, a dataset dict, or a sequence of either
            config: Replacement training configuration; its architecture
                fields must match the current ones, a different geometry
                mode is switched to as by ``set_geometry_mode``
            should_stop: Polled once per epoch; returning True cancels

        Returns:
            The records appended by this call

        Raises:
            ConfigurationError: If ``config`` changes the architecture
            DimensionMismatch: If a dataset has the wrong node dimension
            OutOfBall: If a dataset has nodes outside the ball
            DivergedTraining: On a non-finite loss or parameter
        """
        if self.state is TrainingState.TRAINING:
            raise H2GNNError("Training is already in progress")
        datasets = as_datasets(datasets)
        if config is not None:
            self._adopt_config(load_config(config))
        cfg = self.config

        generator = torch.Generator()
        generator.manual_seed(cfg.seed if cfg.seed is not None else 0)
        prepared = [self._prepare(d, generator) for d in datasets]
        optimizer = self._make_optimizer()

        self.state = TrainingState.TRAINING
        self._stop_requested = False
        self.layers.train()
        logger.info(f"Training on {len(prepared)} dataset(s) for up to {cfg.max_epochs} epochs "
                    f"in {cfg.geometry_mode.value} geometry")

        records = []
        outcome = TrainingOutcome.MAX_EPOCHS_REACHED
        best = math.inf
        stale = 0
        start_epoch = len(self._history)
        try:
            for step in range(1, cfg.max_epochs + 1):
                if self._stop_requested or (should_stop is not None and should_stop()):
                    outcome = TrainingOutcome.CANCELLED
                    logger.info(f"Training cancelled before epoch {start_epoch + step}")
                    break

                epoch = start_epoch + step
                self._check_parameters(epoch)
                task_total = 0.0
                geometric_total = 0.0
                for data in prepared:
                    optimizer.zero_grad()
                    embeddings, _ = self._forward(data.nodes, data.edges)
                    task = task_loss(self.manifold, embeddings, data.edges, data.negatives)
                    if data.depths is not None:
                        task = task + depth_loss(self.manifold, embeddings, data.depths)
                    geometric = geometric_loss(self.manifold, embeddings, data.hops)
                    loss = task + cfg.geometric_loss_weight * geometric
                    if not torch.isfinite(loss):
                        raise DivergedTraining(epoch, "Loss became non-finite",
                                               {"loss": loss.item()})
                    loss.backward()
                    optimizer.step()
                    self._check_parameters(epoch)
                    task_total += task.item()
                    geometric_total += geometric.item()

                n = len(prepared)
                record = TrainingRecord(
                    epoch=epoch,
                    task_loss=task_total / n,
                    geometric_loss=geometric_total / n,
                    loss=(task_total + cfg.geometric_loss_weight * geometric_total) / n,
                )
                self._history.append(record)
                records.append(record)

                message = (f"Epoch {epoch}: loss={record.loss:.6f} task={record.task_loss:.6f} "
                           f"geometric={record.geometric_loss:.6f}")
                if step % cfg.log_every == 0:
                    logger.info(message)
                else:
                    logger.debug(message)

                if best - record.loss < cfg.tolerance:
                    stale += 1
                else:
                    stale = 0
                best = min(best, record.loss)
                if stale >= cfg.patience:
                    outcome = TrainingOutcome.CONVERGED
                    logger.info(f"Converged after epoch {epoch} (loss {record.loss:.6f})")
                    break
        finally:
            self.layers.eval()
            self.state = TrainingState.IDLE
            self._stop_requested = False

        self.last_outcome = outcome
        if outcome is TrainingOutcome.MAX_EPOCHS_REACHED:
            logger.info(f"Reached max epochs ({cfg.max_epochs})")
        return records

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def _confidence(self, embeddings: Tensor, weights: Optional[Tensor]) -> Tensor:
        if weights is None:
            origin = torch.zeros_like(embeddings)
            return torch.exp(-self.manifold.distance(origin, embeddings)).clamp(0.0, 1.0)
        if weights.shape[-1] == 1:
            return torch.ones(weights.shape[0], dtype=weights.dtype)
        top = weights.topk(2, dim=-1).values
        return (top[:, 0] - top[:, 1]).clamp(0.0, 1.0)

    def geometric_insights(self, embeddings: Tensor, edges: Tensor) -> GeometricInsights:
        """
        Hierarchy depth, clustering coefficient and pairwise geodesic
        distances of an embedded graph.

        The hierarchy depth is the largest geodesic distance from the root,
        the root being the zero in-degree node that reaches the most nodes
        (or, without such a node, the embedding closest to the origin).
        """
        n = embeddings.shape[0]
        root = infer_root(edges.numpy(), n)
        if root is None:
            root = int(V.norm(embeddings).argmin())
        pairwise = self.manifold.distance(embeddings.unsqueeze(1), embeddings.unsqueeze(0))
        pairwise = pairwise.masked_fill(torch.eye(n, dtype=torch.bool), 0.0)
        distances = pairwise[root]
        return GeometricInsights(
            hierarchy_depth=float(distances.max()),
            clustering_coefficient=clustering_coefficient(edges.numpy(), n),
            curvature=self.curvature,
            geodesic_distances=pairwise,
        )

    def predict(self, dataset: Union[HyperbolicDataset, dict]) -> PredictResult:
        """
        Embed a dataset with the current parameters.

        Nothing is modified: the stack stays in evaluation mode (running
        batch statistics, no dropout) and no gradients are recorded.

        Raises:
            H2GNNError: If called while training (use ``clone()`` instead)
            DimensionMismatch: If the node dimension is wrong
            OutOfBall: If an input node lies outside the ball
        """
        if self.state is TrainingState.TRAINING:
            raise H2GNNError("predict() called during training; predict on a clone() instead")
        dataset = as_datasets(dataset)[0]
        self._check_dataset(dataset)

        with torch.no_grad():
            embeddings, weights = self._forward(dataset.nodes, dataset.edges)
            self.manifold.check_point(embeddings)
            confidence = self._confidence(embeddings, weights)
            predictions = self.manifold.distance(torch.zeros_like(embeddings), embeddings)
            insights = self.geometric_insights(embeddings, dataset.edges)

        return PredictResult(
            embeddings=embeddings,
            confidence=confidence,
            geometric_insights=insights,
            attention_weights=weights,
            predictions=predictions,
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def clone(self) -> "H2GNN":
        """Independent copy (parameters, history, geometry) for use elsewhere."""
        if self.state is TrainingState.TRAINING:
            raise H2GNNError("Cannot clone while training")
        return copy.deepcopy(self)

    def export_state(self) -> dict:
        """Configuration, geometry and history as plain values (no weights)."""
        return {
            "config": self.config.to_dict(),
            "curvature": self.curvature,
            "geometryMode": self.config.geometry_mode.value,
            "state": self.state.value,
            "lastOutcome": None if self.last_outcome is None else self.last_outcome.value,
            "history": [record.to_dict() for record in self._history],
        }

    def import_state(self, state: dict) -> None:
        """
        Restore configuration, geometry and history from ``export_state``.

        Weights are untouched, so the exported architecture must match this
        instance. An adaptive model resumes from the exported curvature.

        Raises:
            H2GNNError: If called while training
            ConfigurationError: If the state has no config or its
                architecture differs
        """
        if self.state is TrainingState.TRAINING:
            raise H2GNNError("Cannot import state while training")
        if not state or state.get("config") is None:
            raise ConfigurationError("Exported state has no config")
        config = load_config(state["config"])
        self._adopt_config(config)

        curvature = state.get("curvature")
        if config.geometry_mode is GeometryMode.ADAPTIVE and curvature is not None:
            self._bind_manifold(self._make_manifold(GeometryMode.ADAPTIVE, float(curvature)))

        outcome = state.get("lastOutcome")
        self.last_outcome = None if outcome is None else TrainingOutcome(outcome)
        self._history = [TrainingRecord.from_dict(r) for r in state.get("history") or []]
        logger.info(f"Imported state: {len(self._history)} records, "
                    f"{config.geometry_mode.value} geometry (curvature {self.curvature:.4g})")


def create_h2gnn(config: Optional[Union[Config, dict]] = None, **overrides) -> H2GNN:
    """Create an orchestrator from a Config or dict, with keyword overrides."""
    return H2GNN(load_config(config, **overrides))
