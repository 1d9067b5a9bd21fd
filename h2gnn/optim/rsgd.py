"""Riemannian Stochastic Gradient Descent optimizer.

Three kinds of parameters are handled:
- ManifoldParameter (a point of the ball): the Euclidean gradient is rescaled
  by the inverse metric at the point and the step follows a geodesic.
- Plain parameters in a group with a ``manifold`` (the tangent-space weights
  of hyperbolic layers): the gradient is rescaled by the inverse metric at
  the parameter's image exp_0(row), then a Euclidean step is taken.
- Plain parameters without a manifold: ordinary SGD.
"""

import torch
from torch.optim import Optimizer
from typing import Optional, Callable, Iterable, Union

from ..nn import ManifoldParameter


class RiemannianSGD(Optimizer):
    """
    Riemannian Stochastic Gradient Descent with momentum and geodesic updates.

    Momentum buffers of manifold parameters are parallel transported along
    the step, so they always live in the tangent space at the current point.

    Args:
        params (iterable): Iterable of parameters to optimize or dicts defining
            parameter groups.
        lr (float): Learning rate (required).
        momentum (float, optional): Momentum factor (default: 0).
        dampening (float, optional): Dampening for momentum (default: 0).
        weight_decay (float, optional): Weight decay (L2 penalty) (default: 0).
            Applied to the Euclidean gradient before rescaling.
        nesterov (bool, optional): Enables Nesterov momentum (default: False).
        grad_clip (float, optional): Maximum norm of the rescaled gradient
            (default: None).
        manifold (optional): Geometry used to rescale the gradients of plain
            parameters in this group (default: None, plain SGD).
        stabilize (bool, optional): Apply periodic manifold projection to
            counteract numerical drift (default: True).
        stabilize_period (int, optional): Number of steps between stabilization
            projections (default: 50).

    Example:
        >>> from h2gnn.manifolds import PoincareBall
        >>> from h2gnn.nn import ManifoldParameter
        >>> from h2gnn.optim import RiemannianSGD
        >>>
        >>> ball = PoincareBall(8)
        >>> param = ManifoldParameter(ball.random_point(), ball)
        >>> optimizer = RiemannianSGD([param], lr=0.01, momentum=0.9)
        >>>
        >>> optimizer.zero_grad()
        >>> loss = compute_loss(param)
        >>> loss.backward()
        >>> optimizer.step()
    """

    def __init__(
        self,
        params: Union[Iterable[torch.Tensor], Iterable[dict]],
        lr: float,
        momentum: float = 0,
        dampening: float = 0,
        weight_decay: float = 0,
        nesterov: bool = False,
        grad_clip: Optional[float] = None,
        manifold=None,
        stabilize: bool = True,
        stabilize_period: int = 50,
    ):
        if lr < 0.0:
            raise ValueError(f"Invalid learning rate: {lr}")
        if momentum < 0.0:
            raise ValueError(f"Invalid momentum value: {momentum}")
        if weight_decay < 0.0:
            raise ValueError(f"Invalid weight_decay value: {weight_decay}")
        if grad_clip is not None and grad_clip <= 0.0:
            raise ValueError(f"Invalid grad_clip value: {grad_clip}")
        if nesterov and (momentum <= 0 or dampening != 0):
            raise ValueError("Nesterov momentum requires a momentum and zero dampening")
        if stabilize_period <= 0:
            raise ValueError(f"Invalid stabilize_period: {stabilize_period}")

        defaults = dict(
            lr=lr,
            momentum=momentum,
            dampening=dampening,
            weight_decay=weight_decay,
            nesterov=nesterov,
            grad_clip=grad_clip,
            manifold=manifold,
            stabilize=stabilize,
            stabilize_period=stabilize_period,
        )
        super(RiemannianSGD, self).__init__(params, defaults)

        self._step_count = 0

    def __setstate__(self, state):
        """Restore optimizer state."""
        super(RiemannianSGD, self).__setstate__(state)
        for group in self.param_groups:
            group.setdefault('nesterov', False)
            group.setdefault('grad_clip', None)
            group.setdefault('manifold', None)
            group.setdefault('stabilize', True)
            group.setdefault('stabilize_period', 50)

    def set_manifold(self, manifold) -> None:
        """Rebind the geometry of every group that rescales plain parameters."""
        for group in self.param_groups:
            if group['manifold'] is not None:
                group['manifold'] = manifold

    @torch.no_grad()
    def step(self, closure: Optional[Callable[[], float]] = None) -> Optional[float]:
        """
        Performs a single optimization step.

        Args:
            closure: A closure that reevaluates the model and returns the loss.

        Returns:
            The loss value if closure is provided, None otherwise.
        """
        loss = None
        if closure is not None:
            with torch.enable_grad():
                loss = closure()

        for group in self.param_groups:
            weight_decay = group['weight_decay']
            momentum = group['momentum']
            dampening = group['dampening']
            nesterov = group['nesterov']
            grad_clip = group['grad_clip']
            lr = group['lr']
            stabilize = group['stabilize']
            stabilize_period = group['stabilize_period']

            for param in group['params']:
                if param.grad is None:
                    continue

                grad = param.grad.data
                state = self.state[param]

                if weight_decay != 0:
                    grad = grad.add(param.data, alpha=weight_decay)

                is_manifold = isinstance(param, ManifoldParameter)
                if is_manifold:
                    manifold = param.manifold
                    grad = manifold.egrad2rgrad(param.data, grad)
                elif group['manifold'] is not None:
                    manifold = group['manifold']
                    grad = manifold.egrad2rgrad(manifold.expmap0(param.data), grad)

                if grad_clip is not None:
                    grad_norm = grad.norm()
                    if grad_norm > grad_clip:
                        grad = grad.mul(grad_clip / grad_norm)

                if momentum != 0:
                    if 'momentum_buffer' not in state:
                        buf = state['momentum_buffer'] = grad.clone()
                    else:
                        buf = state['momentum_buffer']
                        buf.mul_(momentum).add_(grad, alpha=1 - dampening)

                    if nesterov:
                        grad = grad.add(buf, alpha=momentum)
                    else:
                        grad = buf

                if is_manifold:
                    new_point = manifold.exp(param.data, -lr * grad)
                    if momentum != 0:
                        state['momentum_buffer'] = manifold.parallel_transport(
                            state['momentum_buffer'], param.data, new_point
                        )
                    param.data = manifold.project(new_point)

                    if stabilize and self._step_count % stabilize_period == 0:
                        param.data = manifold.check_point(manifold.project(param.data))
                else:
                    param.data.add_(grad, alpha=-lr)

        self._step_count += 1
        return loss
