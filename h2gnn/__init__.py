"""h2gnn: Hyperbolic Geometric Graph Networks in the Poincaré ball."""

from . import vector
from .manifold import Manifold
from .manifolds import Euclidean, PoincareBall
from .exceptions import (
    H2GNNError,
    ConfigurationError,
    DimensionMismatch,
    InvalidCurvature,
    InvalidDimension,
    NullInput,
    OutOfBall,
    DivergedTraining,
)
from .config import Config, GeometryMode, LogLevel, LoggingConfig, load_config
from .types import (
    Embedding,
    HyperbolicDataset,
    TrainingRecord,
    GeometricInsights,
    PredictResult,
)
from .datasets import random_hyperbolic_point, create_hierarchical_dataset, generate_datasets

# Neural Network
from . import nn
from .nn import (
    ManifoldParameter,
    HyperbolicLinear,
    HyperbolicAttention,
    MultiHeadHyperbolicAttention,
    HyperbolicBatchNorm,
    HyperbolicActivation,
    HyperbolicDropout,
    HyperbolicMessagePassing,
)
from .optim import RiemannianSGD

# Orchestrator
from .model import H2GNN, TrainingState, TrainingOutcome, create_h2gnn

__version__ = "0.1.0"

__all__ = [
    # Core
    'vector',
    'Manifold',
    'Euclidean',
    'PoincareBall',
    # Errors
    'H2GNNError',
    'ConfigurationError',
    'DimensionMismatch',
    'InvalidCurvature',
    'InvalidDimension',
    'NullInput',
    'OutOfBall',
    'DivergedTraining',
    # Configuration
    'Config',
    'GeometryMode',
    'LogLevel',
    'LoggingConfig',
    'load_config',
    # Data model
    'Embedding',
    'HyperbolicDataset',
    'TrainingRecord',
    'GeometricInsights',
    'PredictResult',
    'random_hyperbolic_point',
    'create_hierarchical_dataset',
    'generate_datasets',
    # Neural Network
    'nn',
    'ManifoldParameter',
    'HyperbolicLinear',
    'HyperbolicAttention',
    'MultiHeadHyperbolicAttention',
    'HyperbolicBatchNorm',
    'HyperbolicActivation',
    'HyperbolicDropout',
    'HyperbolicMessagePassing',
    'RiemannianSGD',
    # Orchestrator
    'H2GNN',
    'TrainingState',
    'TrainingOutcome',
    'create_h2gnn',
]
