"""Real vector algebra shared by every geometry in h2gnn.

Vectors are ``torch.Tensor`` values whose last dimension is the coordinate
dimension; leading dimensions are batch dimensions. Nothing here modifies its
arguments.
"""

import torch
from torch import Tensor
from typing import Optional, Sequence, Union

from .exceptions import DimensionMismatch, NullInput


DEFAULT_DTYPE = torch.float64

# Smallest norm used where a formula divides by ||x|| or differentiates it.
MIN_NORM = 1e-15


VectorLike = Union[Tensor, Sequence[float], Sequence[Sequence[float]]]


def as_vector(data: Optional[VectorLike], dtype: torch.dtype = DEFAULT_DTYPE) -> Tensor:
    """Convert ``data`` to a floating point tensor with at least one coordinate.

    Args:
        data: Tensor, list of floats or list of rows
        dtype: Target dtype (default: float64)

    Returns:
        A tensor of shape (..., dim)

    Raises:
        NullInput: If ``data`` is None or has no coordinates
    """
    if data is None:
        raise NullInput("Expected a vector, got None")
    if isinstance(data, Tensor):
        x = data.to(dtype) if data.dtype != dtype else data
    else:
        x = torch.as_tensor(data, dtype=dtype)
    if x.dim() == 0 or x.numel() == 0:
        raise NullInput("Expected a non-empty vector", {"shape": tuple(x.shape)})
    return x


def check_dim(x: Tensor, dim: int) -> None:
    """Raise DimensionMismatch unless the last dimension of x equals dim."""
    if x.shape[-1] != dim:
        raise DimensionMismatch(dim, x.shape[-1])


def check_same_dim(u: Tensor, v: Tensor) -> None:
    """Raise DimensionMismatch unless u and v share their coordinate dimension."""
    if u.shape[-1] != v.shape[-1]:
        raise DimensionMismatch(u.shape[-1], v.shape[-1])


def zeros(dim: int, dtype: torch.dtype = DEFAULT_DTYPE) -> Tensor:
    """The origin of R^dim."""
    return torch.zeros(dim, dtype=dtype)


def dot(u: Tensor, v: Tensor, keepdim: bool = False) -> Tensor:
    """Batched Euclidean inner product over the last dimension."""
    check_same_dim(u, v)
    return torch.sum(u * v, dim=-1, keepdim=keepdim)


def sqnorm(x: Tensor, keepdim: bool = False) -> Tensor:
    """Squared Euclidean norm over the last dimension."""
    return torch.sum(x * x, dim=-1, keepdim=keepdim)


def norm(x: Tensor, keepdim: bool = False, min_norm: float = 0.0) -> Tensor:
    """
    Euclidean norm over the last dimension.

    With ``min_norm > 0`` the squared norm is clamped before the square root,
    which keeps the gradient finite at the origin.
    """
    if min_norm > 0.0:
        return sqnorm(x, keepdim=keepdim).clamp_min(min_norm * min_norm).sqrt()
    return torch.linalg.norm(x, dim=-1, keepdim=keepdim)


def add(u: Tensor, v: Tensor) -> Tensor:
    """Elementwise addition."""
    check_same_dim(u, v)
    return u + v


def sub(u: Tensor, v: Tensor) -> Tensor:
    """Elementwise subtraction."""
    check_same_dim(u, v)
    return u - v


def scale(t: Union[float, Tensor], x: Tensor) -> Tensor:
    """Multiply x by a scalar (or a broadcastable tensor of scalars)."""
    return t * x
