# conftest.py
import pytest
import logging

from depgraph.dependency.graph import DependencyGraph

# Custom test markers
def pytest_configure(config):
    """Configure custom markers."""
    markers = [
        "slow: marks tests as slow",
        "async_test: marks async tests",
        "integration: marks integration tests",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)

# Basic fixtures
@pytest.fixture
def graph():
    """Provide a fresh, empty graph."""
    return DependencyGraph()

@pytest.fixture
def chain_graph():
    """A -> B -> C -> D, all equational."""
    g = DependencyGraph()
    g.add_edge("A", "B", "equational")
    g.add_edge("B", "C", "equational")
    g.add_edge("C", "D", "equational")
    return g

@pytest.fixture
def diamond_graph():
    """A fans out to B and C, which both point at D."""
    g = DependencyGraph()
    g.add_edge("A", "B", "equational")
    g.add_edge("A", "C", "equational")
    g.add_edge("B", "D", "equational")
    g.add_edge("C", "D", "equational")
    return g

@pytest.fixture
def cyclic_graph():
    """A -> B -> C -> A."""
    g = DependencyGraph()
    g.add_edge("A", "B", "equational")
    g.add_edge("B", "C", "equational")
    g.add_edge("C", "A", "equational")
    return g

@pytest.fixture
def mixed_type_graph():
    """Edges of two types: 'equational' A->B->C and 'reference' A->D->E."""
    g = DependencyGraph()
    g.add_edge("A", "B", "equational")
    g.add_edge("B", "C", "equational")
    g.add_edge("A", "D", "reference")
    g.add_edge("D", "E", "reference")
    return g

@pytest.fixture
def debug_logging(caplog):
    """Capture debug-level records from all library loggers."""
    caplog.set_level(logging.DEBUG)
    return caplog
