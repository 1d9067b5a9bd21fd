"""
Exception classes for h2gnn.

Every failure raised by the geometry primitives, the layers and the training
orchestrator derives from :class:`H2GNNError`. Validation failures also derive
from ``ValueError`` and numeric failures from ``ArithmeticError`` so callers
can catch them with the builtin families as well.
"""

from typing import Optional


class H2GNNError(Exception):
    """Base exception for all h2gnn errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(H2GNNError, ValueError):
    """Raised when a configuration value is invalid."""
    pass


class DimensionMismatch(H2GNNError, ValueError):
    """Raised when vectors or parameters have incompatible dimensions."""

    def __init__(self, expected, actual, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        if message is None:
            message = f"Dimension mismatch: expected {expected}, got {actual}"
        super().__init__(message, {"expected": expected, "actual": actual})


class InvalidCurvature(H2GNNError, ValueError):
    """Raised when a hyperbolic construct is given a curvature >= 0."""

    def __init__(self, curvature: float):
        self.curvature = curvature
        super().__init__(
            f"Curvature must be negative, got {curvature}",
            {"curvature": curvature},
        )


class InvalidDimension(H2GNNError, ValueError):
    """Raised when a layer or space is constructed with a non-positive dimension."""

    def __init__(self, name: str, value):
        self.name = name
        self.value = value
        super().__init__(
            f"{name} must be a positive integer, got {value}",
            {name: value},
        )


class NullInput(H2GNNError, ValueError):
    """Raised when a layer or primitive is invoked without input."""
    pass


class OutOfBall(H2GNNError, ArithmeticError):
    """Raised when a produced point still lies on or outside the ball after clamping."""

    def __init__(self, max_norm: float, radius: float, message: Optional[str] = None):
        self.max_norm = max_norm
        self.radius = radius
        if message is None:
            message = f"Point left the Poincaré ball: norm {max_norm} >= radius {radius}"
        super().__init__(message, {"norm": max_norm, "radius": radius})


class DivergedTraining(H2GNNError, ArithmeticError):
    """Raised when a training step produces a non-finite loss or parameter."""

    def __init__(self, epoch: int, message: str, details: Optional[dict] = None):
        self.epoch = epoch
        details = dict(details or {})
        details.setdefault("epoch", epoch)
        super().__init__(message, details)
