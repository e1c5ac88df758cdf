"""
JSON codec for dependency graphs.

Document layout:
    {
      "nodes":         [[node_id, [outgoing ids...]], ...],
      "incomingEdges": [[node_id, [incoming ids...]], ...],
      "edges":         [["from->to", {"to": ..., "type": ..., "payload": {...}}], ...]
    }

``payload`` is omitted when empty. Loading rebuilds the edge table and both
adjacency indices through ``add_edge`` and then checks that the listed
adjacency agrees with the edges.
"""
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

if TYPE_CHECKING:
    from depgraph.dependency.graph import DependencyGraph

logger = logging.getLogger("graph_codec")

EDGE_KEY_SEPARATOR = "->"


class SerializedEdge(BaseModel):
    to: str
    type: str
    payload: Optional[Dict[str, Any]] = None


class GraphDocument(BaseModel):
    """Validated form of a serialized graph."""
    nodes: List[Tuple[str, List[str]]] = Field(default_factory=list)
    incoming_edges: List[Tuple[str, List[str]]] = Field(default_factory=list, alias="incomingEdges")
    edges: List[Tuple[str, SerializedEdge]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


def edge_key(from_id: str, to_id: str) -> str:
    return f"{from_id}{EDGE_KEY_SEPARATOR}{to_id}"


def split_edge_key(key: str, to_id: str) -> str:
    """
    Recover the source id from a "from->to" key given the known target.

    Stripping the known suffix keeps ids that themselves contain "->" intact.
    """
    suffix = f"{EDGE_KEY_SEPARATOR}{to_id}"
    if not key.endswith(suffix):
        raise ValueError(f"Edge key '{key}' does not end with its target '{to_id}'")
    return key[: -len(suffix)]


def graph_to_document(graph: "DependencyGraph") -> GraphDocument:
    edges = []
    for (from_id, to_id), edge in graph.edges.items():
        edges.append((edge_key(from_id, to_id), SerializedEdge(to=to_id, type=edge.type, payload=edge.payload or None)))

    return GraphDocument(
        nodes=[(node_id, list(targets)) for node_id, targets in graph.outgoing.items()],
        incoming_edges=[(node_id, list(sources)) for node_id, sources in graph.incoming.items()],
        edges=edges,
    )


def dump_graph(graph: "DependencyGraph") -> str:
    """Serialize a graph to an indented JSON string."""
    document = graph_to_document(graph)
    logger.debug(f"Serializing graph with {len(document.nodes)} nodes and {len(document.edges)} edges")
    return document.model_dump_json(indent=2, by_alias=True, exclude_none=True)


def populate_graph(graph: "DependencyGraph", document: GraphDocument) -> "DependencyGraph":
    """
    Fill an empty graph from a validated document.

    Raises:
        ValueError: If the adjacency lists disagree with the edge table
    """
    for node_id, _ in document.nodes:
        graph.add_node(node_id)
    for node_id, _ in document.incoming_edges:
        graph.add_node(node_id)

    for key, edge in document.edges:
        from_id = split_edge_key(key, edge.to)
        graph.add_edge(from_id, edge.to, edge.type, edge.payload)

    # The listed adjacency must describe exactly the edges, in any order
    _check_adjacency(graph.outgoing, document.nodes, "nodes")
    _check_adjacency(graph.incoming, document.incoming_edges, "incomingEdges")

    # Keep the serialized neighbour order
    for node_id, targets in document.nodes:
        graph.outgoing[node_id] = list(targets)
    for node_id, sources in document.incoming_edges:
        graph.incoming[node_id] = list(sources)

    return graph


def load_graph(text: str, graph: "DependencyGraph") -> "DependencyGraph":
    """
    Populate ``graph`` from a JSON string produced by ``dump_graph``.

    Raises:
        ValueError: On malformed JSON, schema mismatch or inconsistent adjacency
    """
    try:
        document = GraphDocument.model_validate_json(text)
    except ValidationError as e:
        raise ValueError(f"Invalid graph document: {e}") from e

    populate_graph(graph, document)
    logger.debug(f"Deserialized graph with {graph.node_count} nodes and {graph.edge_count} edges")
    return graph


def _check_adjacency(index: Dict[str, List[str]], listed: List[Tuple[str, List[str]]], field: str) -> None:
    listed_map = {node_id: sorted(ids) for node_id, ids in listed}
    for node_id, ids in index.items():
        if sorted(ids) != listed_map.get(node_id, []):
            raise ValueError(
                f"Inconsistent '{field}' entry for node '{node_id}': "
                f"listed {listed_map.get(node_id, [])}, edges imply {sorted(ids)}"
            )
