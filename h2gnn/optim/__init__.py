"""Riemannian optimizers for ball-constrained and tangent-space parameters."""

from .rsgd import RiemannianSGD

__all__ = [
    'RiemannianSGD',
]
