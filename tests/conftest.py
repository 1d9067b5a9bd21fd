"""Pytest configuration and fixtures."""

import pytest
import torch
from h2gnn import Config, Euclidean, PoincareBall, create_hierarchical_dataset


@pytest.fixture
def euclidean():
    """Fixture for flat space."""
    return Euclidean(8)


@pytest.fixture
def ball():
    """Fixture for the unit Poincaré ball (curvature -1)."""
    return PoincareBall(8)


@pytest.fixture(params=['unit', 'curved'])
def hyperbolic(request):
    """Poincaré balls of curvature -1 and -2.5."""
    if request.param == 'unit':
        return PoincareBall(8)
    return PoincareBall(8, curvature=-2.5)


@pytest.fixture(params=['euclidean', 'unit', 'curved'])
def manifold(request):
    """Fixture that parametrizes over all geometries."""
    if request.param == 'euclidean':
        return Euclidean(8)
    elif request.param == 'unit':
        return PoincareBall(8)
    elif request.param == 'curved':
        return PoincareBall(8, curvature=-2.5)


@pytest.fixture
def generator():
    """Seeded generator for reproducible sampling."""
    g = torch.Generator()
    g.manual_seed(42)
    return g


@pytest.fixture
def random_seed():
    """Set random seed for reproducibility."""
    torch.manual_seed(42)
    return 42


@pytest.fixture
def p1():
    return torch.tensor([0.3, 0.4], dtype=torch.float64)


@pytest.fixture
def p2():
    return torch.tensor([0.1, 0.6], dtype=torch.float64)


@pytest.fixture
def tree():
    """A 15-node binary hierarchy in the unit ball."""
    return create_hierarchical_dataset(15, hierarchy_depth=3, dim=8, seed=7)


@pytest.fixture
def small_config():
    """A small, deterministic configuration that trains quickly."""
    return Config(
        embedding_dim=8,
        num_layers=1,
        num_heads=2,
        dropout=0.0,
        learning_rate=0.01,
        max_epochs=5,
        seed=0,
    )
