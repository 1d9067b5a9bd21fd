"""Neural network components for h2gnn."""

from .parameter import ManifoldParameter
from .layers import (
    HyperbolicLayer,
    HyperbolicLinear,
    HyperbolicActivation,
    HyperbolicDropout,
    FrechetMean,
    HyperbolicBatchNorm,
)
from .attention import HyperbolicAttention, MultiHeadHyperbolicAttention
from .message_passing import HyperbolicMessagePassing, neighbourhood_mask

__all__ = [
    # Parameter
    'ManifoldParameter',
    # Layers
    'HyperbolicLayer',
    'HyperbolicLinear',
    'HyperbolicActivation',
    'HyperbolicDropout',
    'FrechetMean',
    'HyperbolicBatchNorm',
    # Attention
    'HyperbolicAttention',
    'MultiHeadHyperbolicAttention',
    # Graph
    'HyperbolicMessagePassing',
    'neighbourhood_mask',
]
