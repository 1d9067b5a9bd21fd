"""Tests for hyperbolic message passing."""

import pytest
import torch

from h2gnn import DimensionMismatch, Euclidean, NullInput
from h2gnn.nn import HyperbolicMessagePassing, neighbourhood_mask


class TestNeighbourhoodMask:

    def test_undirected_with_self_loops(self):
        mask = neighbourhood_mask([[0, 1], [1, 2]], 4)
        expected = torch.tensor([
            [True, True, False, False],
            [True, True, True, False],
            [False, True, True, False],
            [False, False, False, True],
        ])
        assert torch.equal(mask, expected)

    def test_no_edges(self):
        mask = neighbourhood_mask(torch.zeros(0, 2, dtype=torch.long), 3)
        assert torch.equal(mask, torch.eye(3, dtype=torch.bool))

    def test_missing_edges(self):
        with pytest.raises(NullInput):
            neighbourhood_mask(None, 3)

    def test_bad_shape(self):
        with pytest.raises(DimensionMismatch):
            neighbourhood_mask([[0, 1, 2]], 3)

    def test_out_of_range(self):
        with pytest.raises(DimensionMismatch):
            neighbourhood_mask([[0, 3]], 3)
        with pytest.raises(DimensionMismatch):
            neighbourhood_mask([[-1, 0]], 3)


class TestHyperbolicMessagePassing:

    def test_output_shape(self, ball, tree):
        layer = HyperbolicMessagePassing(8, 4)
        out = layer(tree.nodes, tree.edges)
        assert out.shape == (tree.num_nodes, 4)
        assert layer.linear.manifold.is_valid(out)

    @pytest.mark.parametrize('learn_weights', [True, False])
    def test_isolated_nodes_keep_their_features(self, ball, generator, learn_weights):
        layer = HyperbolicMessagePassing(8, 8, learn_weights=learn_weights)
        x = ball.random_point(5, generator=generator)
        out = layer(x, torch.zeros(0, 2, dtype=torch.long))
        assert torch.allclose(out, layer.linear(x), atol=1e-8)

    def test_weights_respect_neighbourhood(self, ball, generator):
        layer = HyperbolicMessagePassing(8, 8)
        x = ball.random_point(4, generator=generator)
        mask = neighbourhood_mask([[0, 1], [1, 2]], 4)

        weights = layer.neighbour_weights(x, mask)

        assert torch.all(weights[~mask] == 0)
        assert torch.allclose(weights.sum(dim=-1), torch.ones(4, dtype=torch.float64))

    def test_uniform_euclidean_aggregation_is_mean(self, generator):
        flat = Euclidean(8)
        layer = HyperbolicMessagePassing(8, 3, manifold=flat, learn_weights=False)
        x = flat.random_point(3, generator=generator)

        out = layer(x, [[0, 1]])

        expected = torch.stack([(x[0] + x[1]) / 2, (x[0] + x[1]) / 2, x[2]])
        assert torch.allclose(out, layer.linear(expected), atol=1e-10)

    def test_gradient_reaches_scale(self, tree):
        layer = HyperbolicMessagePassing(8, 8)
        layer(tree.nodes, tree.edges).sum().backward()
        assert layer.log_scale.grad is not None
        assert torch.isfinite(layer.log_scale.grad).all()
        assert layer.linear.weight.grad is not None

    def test_requires_edges(self, tree):
        with pytest.raises(NullInput):
            HyperbolicMessagePassing(8, 8)(tree.nodes)

    def test_wrong_dimension(self, tree):
        with pytest.raises(DimensionMismatch):
            HyperbolicMessagePassing(4, 4)(tree.nodes, tree.edges)
