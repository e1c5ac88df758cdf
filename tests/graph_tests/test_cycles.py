"""
Tests for circular dependency detection.
"""
import logging

from depgraph.dependency.graph import DependencyGraph


def test_acyclic_graph(chain_graph):
    assert chain_graph.has_circular_dependency() is False
    assert chain_graph.find_circular_dependency() is None


def test_diamond_is_not_a_cycle(diamond_graph):
    assert diamond_graph.has_circular_dependency() is False


def test_simple_cycle():
    g = DependencyGraph()
    g.add_edge("A", "B", "link")
    g.add_edge("B", "A", "link")
    assert g.has_circular_dependency() is True
    assert g.find_circular_dependency() == ["A", "B", "A"]


def test_longer_cycle(cyclic_graph):
    assert cyclic_graph.has_circular_dependency() is True
    assert cyclic_graph.find_circular_dependency() == ["A", "B", "C", "A"]


def test_self_loop():
    g = DependencyGraph()
    g.add_edge("A", "A", "link")
    assert g.find_circular_dependency() == ["A", "A"]


def test_cycle_filtered_out_by_type():
    g = DependencyGraph()
    g.add_edge("A", "B", "type1")
    g.add_edge("B", "A", "type2")
    assert g.has_circular_dependency(edge_types="type1") is False
    assert g.find_circular_dependency(edge_types="type1") is None
    assert g.has_circular_dependency(edge_types=["type1", "type2"]) is True


def test_cycle_matching_filter():
    g = DependencyGraph()
    g.add_edge("A", "B", "type1")
    g.add_edge("B", "C", "type1")
    g.add_edge("C", "A", "type2")
    g.add_edge("C", "B", "type1")
    assert g.has_circular_dependency(edge_types="type1") is True
    assert g.find_circular_dependency(edge_types="type1") == ["B", "C", "B"]


def test_cycle_in_later_component():
    g = DependencyGraph()
    g.add_edge("A", "B", "link")
    g.add_edge("X", "Y", "link")
    g.add_edge("Y", "Z", "link")
    g.add_edge("Z", "Y", "link")
    assert g.find_circular_dependency() == ["Y", "Z", "Y"]


def test_cycle_path_is_made_of_real_edges(cyclic_graph):
    cycle = cyclic_graph.find_circular_dependency()
    assert cycle[0] == cycle[-1]
    for source, target in zip(cycle, cycle[1:]):
        assert cyclic_graph.has_edge(source, target)


def test_empty_graph(graph):
    assert graph.has_circular_dependency() is False


def test_cycle_is_logged(cyclic_graph, caplog):
    with caplog.at_level(logging.WARNING, logger="dependency_graph"):
        cyclic_graph.find_circular_dependency()
    assert "Detected cycle" in caplog.text


def test_deep_chain_without_cycle():
    g = DependencyGraph()
    for i in range(5000):
        g.add_edge(f"n{i}", f"n{i + 1}", "link")
    assert g.has_circular_dependency() is False
    g.add_edge("n5000", "n0", "link")
    assert len(g.find_circular_dependency()) == 5002
