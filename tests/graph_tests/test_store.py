"""
Tests for node and edge storage of the dependency graph.
These tests focus on keeping the outgoing and incoming indices and the edge
table consistent through additions and removals.
"""
import pytest

from depgraph.dependency.graph import DependencyGraph
from depgraph.dependency.models import EdgeRecord


def assert_consistent(graph: DependencyGraph):
    """Every edge appears in both indices and every index entry has an edge."""
    for (source, target), edge in graph.edges.items():
        assert edge.source == source and edge.target == target
        assert target in graph.outgoing[source]
        assert source in graph.incoming[target]
    for source, targets in graph.outgoing.items():
        for target in targets:
            assert (source, target) in graph.edges
    for target, sources in graph.incoming.items():
        for source in sources:
            assert (source, target) in graph.edges
    assert set(graph.outgoing) == set(graph.incoming)


class TestInitialization:
    def test_empty_graph(self, graph):
        assert graph.node_count == 0
        assert graph.edge_count == 0
        assert graph.is_empty
        assert len(graph) == 0
        assert graph.node_ids() == []

    def test_str(self, chain_graph):
        assert str(chain_graph) == "DependencyGraph(nodes=4, edges=3)"


class TestNodeManagement:
    def test_add_node(self, graph):
        assert graph.add_node("A") is True
        assert graph.has_node("A")
        assert "A" in graph
        assert graph.get_outgoing("A") == []
        assert graph.get_incoming("A") == []

    def test_add_duplicate_node(self, graph):
        graph.add_node("A")
        assert graph.add_node("A") is False
        assert graph.node_count == 1

    def test_node_ids_keep_insertion_order(self, graph):
        for node in ["C", "A", "B"]:
            graph.add_node(node)
        assert graph.node_ids() == ["C", "A", "B"]

    def test_remove_node_removes_edges_both_ways(self, graph):
        graph.add_edge("A", "B", "link")
        graph.add_edge("B", "C", "link")
        graph.add_edge("C", "A", "link")

        assert graph.remove_node("B") is True

        assert not graph.has_node("B")
        assert not graph.has_edge("A", "B")
        assert not graph.has_edge("B", "C")
        assert graph.has_edge("C", "A")
        assert graph.get_outgoing("A") == []
        assert graph.get_incoming("C") == []
        assert graph.edge_count == 1
        assert_consistent(graph)

    def test_remove_missing_node(self, graph):
        assert graph.remove_node("missing") is False

    def test_remove_node_with_self_loop(self, graph):
        graph.add_edge("A", "A", "link")
        graph.add_edge("A", "B", "link")
        assert graph.remove_node("A") is True
        assert graph.edge_count == 0
        assert graph.get_incoming("B") == []
        assert_consistent(graph)


class TestEdgeManagement:
    def test_add_edge_creates_nodes(self, graph):
        edge = graph.add_edge("A", "B", "equational")

        assert isinstance(edge, EdgeRecord)
        assert graph.has_node("A") and graph.has_node("B")
        assert graph.get_outgoing("A") == ["B"]
        assert graph.get_incoming("B") == ["A"]
        assert graph.get_edge("A", "B") == EdgeRecord(source="A", target="B", type="equational")
        assert_consistent(graph)

    def test_add_edge_with_payload(self, graph):
        graph.add_edge("A", "B", "ref", {"weight": 2})
        assert graph.get_edge("A", "B").payload == {"weight": 2}

    def test_payload_is_copied(self, graph):
        payload = {"weight": 2}
        graph.add_edge("A", "B", "ref", payload)
        payload["weight"] = 3
        assert graph.get_edge("A", "B").payload == {"weight": 2}

    def test_readding_edge_overwrites_without_duplicating(self, graph):
        graph.add_edge("A", "B", "type1", {"x": 1})
        graph.add_edge("A", "B", "type2")

        assert graph.edge_count == 1
        assert graph.get_outgoing("A") == ["B"]
        assert graph.get_incoming("B") == ["A"]
        edge = graph.get_edge("A", "B")
        assert edge.type == "type2"
        assert edge.payload == {}

    def test_opposite_edges_coexist(self, graph):
        graph.add_edge("A", "B", "link")
        graph.add_edge("B", "A", "other")
        assert graph.edge_count == 2
        assert graph.get_edge("A", "B").type == "link"
        assert graph.get_edge("B", "A").type == "other"
        assert_consistent(graph)

    def test_remove_edge(self, graph):
        graph.add_edge("A", "B", "link")
        assert graph.remove_edge("A", "B") is True
        assert not graph.has_edge("A", "B")
        assert graph.has_node("A") and graph.has_node("B")
        assert graph.get_outgoing("A") == []
        assert graph.get_incoming("B") == []

    def test_remove_missing_edge(self, graph):
        graph.add_edge("A", "B", "link")
        assert graph.remove_edge("B", "A") is False
        assert graph.remove_edge("A", "Z") is False
        assert graph.has_edge("A", "B")

    def test_iter_edges_in_insertion_order(self, chain_graph):
        pairs = [(e.source, e.target) for e in chain_graph.iter_edges()]
        assert pairs == [("A", "B"), ("B", "C"), ("C", "D")]

    def test_adjacency_lists_are_copies(self, chain_graph):
        chain_graph.get_outgoing("A").append("Z")
        assert chain_graph.get_outgoing("A") == ["B"]

    def test_consistency_after_mixed_mutations(self, graph):
        for i in range(10):
            graph.add_edge(f"n{i}", f"n{(i + 1) % 10}", "link")
            graph.add_edge(f"n{i}", f"n{(i + 3) % 10}", "skip")
        graph.remove_node("n4")
        graph.remove_edge("n0", "n3")
        graph.add_edge("n0", "n1", "changed")
        assert_consistent(graph)
        assert graph.get_edge("n0", "n1").type == "changed"


class TestLogging:
    def test_mutations_are_logged(self, graph, debug_logging):
        graph.add_edge("A", "B", "link")
        graph.remove_node("A")
        messages = [r.getMessage() for r in debug_logging.records if r.name == "dependency_graph"]
        assert any("Added node A" in m for m in messages)
        assert any("Removed node A" in m for m in messages)
