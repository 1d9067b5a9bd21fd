"""
Configuration management for h2gnn.

An explicit :class:`Config` value is handed to every orchestrator; there is
no module-level state. Values are validated on construction, and
``from_dict`` accepts both snake_case keys and the camelCase keys of the
external interface (``embeddingDim``, ``learningRate``, ...).
"""

import re
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Dict, Any, Optional, Union
from enum import Enum

from .exceptions import ConfigurationError, InvalidCurvature, InvalidDimension

logger = logging.getLogger(__name__)


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class GeometryMode(str, Enum):
    """Geometry the layer stack computes in."""
    EUCLIDEAN = "euclidean"    # curvature 0
    HYPERBOLIC = "hyperbolic"  # the configured negative curvature
    ADAPTIVE = "adaptive"      # a single learned negative curvature


def _snake_case(key: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


@dataclass
class Config:
    """
    Orchestrator configuration.

    Architecture fields (embedding_dim, num_layers, num_heads, dropout,
    attention_temperature, batchnorm_*, curvature, geometry_mode) fix the
    shape of the layer stack. The remaining fields only steer training and
    may differ between calls to ``train``.
    """
    curvature: float = -1.0
    embedding_dim: int = 8
    num_layers: int = 3
    learning_rate: float = 0.01
    max_epochs: int = 100
    geometry_mode: GeometryMode = GeometryMode.HYPERBOLIC

    num_heads: int = 4
    dropout: float = 0.1
    attention_temperature: float = 1.0
    batchnorm_max_iter: int = 10
    batchnorm_tol: float = 1e-6

    tolerance: float = 1e-6
    patience: int = 5
    geometric_loss_weight: float = 0.1
    negative_ratio: float = 1.0
    momentum: float = 0.0
    grad_clip: Optional[float] = None
    seed: Optional[int] = None
    log_every: int = 10

    def __post_init__(self):
        if isinstance(self.geometry_mode, str) and not isinstance(self.geometry_mode, GeometryMode):
            try:
                self.geometry_mode = GeometryMode(self.geometry_mode.lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown geometry mode: {self.geometry_mode}",
                    {"allowed": [m.value for m in GeometryMode]},
                ) from None
        self.validate()

    def validate(self) -> None:
        """Validate configuration parameters."""
        if not self.curvature < 0:
            raise InvalidCurvature(self.curvature)
        for name in ("embedding_dim", "num_layers", "num_heads"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidDimension(name, value)
        if not isinstance(self.geometry_mode, GeometryMode):
            raise ConfigurationError(f"Unknown geometry mode: {self.geometry_mode}")
        if self.learning_rate <= 0:
            raise ConfigurationError(f"Learning rate must be positive, got {self.learning_rate}")
        if self.max_epochs < 1:
            raise ConfigurationError(f"Max epochs must be at least 1, got {self.max_epochs}")
        if not (0 <= self.dropout < 1):
            raise ConfigurationError(f"Dropout must lie in [0, 1), got {self.dropout}")
        if self.attention_temperature <= 0:
            raise ConfigurationError(
                f"Attention temperature must be positive, got {self.attention_temperature}"
            )
        if self.batchnorm_max_iter < 1:
            raise ConfigurationError(
                f"Batch norm iteration bound must be at least 1, got {self.batchnorm_max_iter}"
            )
        if self.batchnorm_tol < 0 or self.tolerance < 0:
            raise ConfigurationError("Tolerances must be non-negative")
        if self.patience < 1:
            raise ConfigurationError(f"Patience must be at least 1, got {self.patience}")
        if self.geometric_loss_weight < 0:
            raise ConfigurationError(
                f"Geometric loss weight must be non-negative, got {self.geometric_loss_weight}"
            )
        if self.negative_ratio < 0:
            raise ConfigurationError(f"Negative ratio must be non-negative, got {self.negative_ratio}")
        if self.momentum < 0:
            raise ConfigurationError(f"Momentum must be non-negative, got {self.momentum}")
        if self.grad_clip is not None and self.grad_clip <= 0:
            raise ConfigurationError(f"Gradient clip must be positive, got {self.grad_clip}")
        if self.log_every < 1:
            raise ConfigurationError(f"log_every must be at least 1, got {self.log_every}")

    def architecture(self) -> Dict[str, Any]:
        """
        The fields that determine the layer stack.

        The geometry mode is not among them: a model switches it in place.
        """
        return {
            "curvature": self.curvature,
            "embedding_dim": self.embedding_dim,
            "num_layers": self.num_layers,
            "num_heads": self.num_heads,
            "dropout": self.dropout,
            "attention_temperature": self.attention_temperature,
            "batchnorm_max_iter": self.batchnorm_max_iter,
            "batchnorm_tol": self.batchnorm_tol,
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "Config":
        """Create configuration from a dictionary with snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in config_dict.items():
            name = _snake_case(key)
            if name in known:
                kwargs[name] = value
            else:
                logger.warning(f"Ignoring unknown configuration key: {key}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = asdict(self)
        result["geometry_mode"] = self.geometry_mode.value
        return result


@dataclass
class LoggingConfig:
    """Logging configuration for the ``h2gnn`` logger hierarchy."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_handler: Optional[Path] = None
    console_handler: bool = True
    logger_name: str = "h2gnn"

    def __post_init__(self):
        if isinstance(self.level, str):
            try:
                self.level = LogLevel(self.level.upper())
            except ValueError:
                raise ConfigurationError(f"Unknown log level: {self.level}") from None

    def configure_logging(self) -> None:
        """Configure the logging system."""
        # Clear existing handlers
        package_logger = logging.getLogger(self.logger_name)
        package_logger.handlers.clear()

        package_logger.setLevel(getattr(logging, self.level.value))

        formatter = logging.Formatter(self.format)

        if self.console_handler:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            package_logger.addHandler(console_handler)

        if self.file_handler:
            file_handler = logging.FileHandler(self.file_handler)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)


def load_config(source: Optional[Union[Config, Dict[str, Any]]] = None, **overrides) -> Config:
    """Build a Config from None, a dict or an existing Config, applying overrides."""
    if source is None:
        config = Config()
    elif isinstance(source, Config):
        config = source
    elif isinstance(source, dict):
        config = Config.from_dict(source)
    else:
        raise ConfigurationError(f"Cannot build a Config from {type(source).__name__}")
    if overrides:
        config = Config.from_dict({**config.to_dict(), **overrides})
    return config
