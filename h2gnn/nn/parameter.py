"""ManifoldParameter: nn.Parameter constrained to a Riemannian manifold."""

import copy
import torch
from torch import nn
from torch import Tensor

from .. import vector as V


class ManifoldParameter(nn.Parameter):
    """
    Neural network parameter whose value is a point of a manifold.

    Riemannian optimizers recognise this class and update it with the
    exponential map instead of a Euclidean step, so the value never leaves
    the ball. The manifold is looked up through ``param.manifold`` at every
    use, so rebinding it (as the orchestrator does when switching geometry)
    takes effect on the next step.

    Args:
        data: Initial parameter value (projected onto the manifold)
        manifold: The manifold on which this parameter lives
        requires_grad: Whether this parameter requires gradients (default: True)

    Example:
        >>> from h2gnn.manifolds import PoincareBall
        >>> ball = PoincareBall(8)
        >>> center = ManifoldParameter(torch.zeros(8), ball)
    """

    def __new__(cls, data: Tensor, manifold, requires_grad: bool = True):
        data = torch.as_tensor(data, dtype=V.DEFAULT_DTYPE)
        data_projected = manifold.project(data)

        instance = super().__new__(cls, data_projected, requires_grad=requires_grad)

        # Cannot use __init__ for nn.Parameter subclasses
        instance.manifold = manifold

        if requires_grad:
            def grad_projection_hook(grad):
                """Project gradient to tangent space during backward pass."""
                return instance.manifold.project_tangent(instance.data, grad)

            instance.register_hook(grad_projection_hook)

        return instance

    def __repr__(self):
        return (
            f"ManifoldParameter containing:\n"
            f"{self.data}\n"
            f"Manifold: {self.manifold!r}"
        )

    def __deepcopy__(self, memo):
        if id(self) in memo:
            return memo[id(self)]
        result = ManifoldParameter(
            self.data.clone(memory_format=torch.preserve_format),
            copy.deepcopy(self.manifold, memo),
            self.requires_grad,
        )
        memo[id(self)] = result
        return result
