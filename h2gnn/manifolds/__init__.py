"""Manifold implementations."""

from .euclidean import Euclidean
from .poincare import PoincareBall, BALL_EPS, VALIDATION_EPS

__all__ = [
    'Euclidean',
    'PoincareBall',
    'BALL_EPS',
    'VALIDATION_EPS',
]
