"""
Implementation of the typed dependency graph.

This module provides an in-memory directed graph with typed, optionally
payload-carrying edges. It keeps two adjacency indices (outgoing and incoming)
in lockstep with an edge table keyed by (from, to), and offers traversal,
cycle detection, tree building and asynchronous tree execution on top of them.
"""
import logging
from collections import deque
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from depgraph.dependency.cancellation import CancellationToken
from depgraph.dependency.codec import dump_graph, load_graph
from depgraph.dependency.executor import TreeExecutor
from depgraph.dependency.mermaid import render_mermaid
from depgraph.dependency.models import (
    Direction, EdgeFilter, EdgeRecord, EdgeTypeFilter, ErrorStrategy,
    ExecutionNode, ExecutionOptions, TraversalOptions, TraversalStrategy,
    TreeNode, normalize_edge_types,
)

# Configure logging
logger = logging.getLogger("dependency_graph")

# DFS colours for cycle detection
_GRAY = 1
_BLACK = 2


class DependencyGraph(BaseModel):
    """
    A directed graph of dependencies, similar to spreadsheet cell dependencies.

    This class provides methods to:
    1. Add/remove nodes and typed edges, keeping both adjacency indices consistent
    2. Traverse the graph breadth- or depth-first in either direction
    3. Detect circular dependencies and extract a cycle path
    4. Build a deduplicated tree rooted at any node
    5. Run an async callback over that tree (see ``execute_on_tree``)
    6. Serialize to JSON and render Mermaid diagrams

    Thread Safety:
        NOT thread-safe. Mutations are synchronous; use external locking if the
        same instance is mutated from several threads or tasks.
    """
    outgoing: Dict[str, List[str]] = Field(default_factory=dict)  # node -> ids it points to
    incoming: Dict[str, List[str]] = Field(default_factory=dict)  # node -> ids pointing at it
    edges: Dict[Tuple[str, str], EdgeRecord] = Field(default_factory=dict)  # (from, to) -> edge

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        """Number of nodes in the graph."""
        return len(self.outgoing)

    @property
    def edge_count(self) -> int:
        """Number of edges in the graph."""
        return len(self.edges)

    @property
    def is_empty(self) -> bool:
        return not self.outgoing

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(self, node_id: str) -> bool:
        """
        Add a node to the graph.

        Args:
            node_id: The unique identifier for the node (e.g. 'Sheet1!A1')

        Returns:
            True if the node was added, False if it already existed
        """
        if node_id in self.outgoing:
            return False
        self.outgoing[node_id] = []
        self.incoming[node_id] = []
        logger.debug(f"Added node {node_id}")
        return True

    def remove_node(self, node_id: str) -> bool:
        """
        Remove a node and every edge touching it, in both directions.

        Returns:
            True if the node was removed, False if it didn't exist
        """
        if node_id not in self.outgoing:
            return False

        # Outgoing edges: drop the edge and the back-reference on the target
        for target in self.outgoing[node_id]:
            self.edges.pop((node_id, target), None)
            _discard(self.incoming.get(target), node_id)

        # Incoming edges: drop the edge and the forward reference on the source
        for source in self.incoming[node_id]:
            self.edges.pop((source, node_id), None)
            _discard(self.outgoing.get(source), node_id)

        del self.outgoing[node_id]
        del self.incoming[node_id]
        logger.debug(f"Removed node {node_id}")
        return True

    def has_node(self, node_id: str) -> bool:
        return node_id in self.outgoing

    def node_ids(self) -> List[str]:
        """All node ids in insertion order."""
        return list(self.outgoing)

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def add_edge(self, from_id: str, to_id: str, edge_type: str,
                 payload: Optional[Dict[str, Any]] = None) -> EdgeRecord:
        """
        Add a directed, typed edge, creating missing endpoints.

        Only one edge may exist per ordered pair; adding it again overwrites
        the type and payload.

        Args:
            from_id: The node where the edge starts
            to_id: The node where the edge ends
            edge_type: The type of the dependency (e.g. 'equational')
            payload: Optional data attached to the edge

        Returns:
            The stored edge record
        """
        self.add_node(from_id)
        self.add_node(to_id)

        key = (from_id, to_id)
        if key not in self.edges:
            self.outgoing[from_id].append(to_id)
            self.incoming[to_id].append(from_id)

        edge = EdgeRecord(source=from_id, target=to_id, type=edge_type, payload=dict(payload or {}))
        self.edges[key] = edge
        logger.debug(f"Added {edge}")
        return edge

    def remove_edge(self, from_id: str, to_id: str) -> bool:
        """
        Remove the edge between two nodes.

        Returns:
            True if the edge was removed, False if it didn't exist
        """
        if self.edges.pop((from_id, to_id), None) is None:
            return False
        _discard(self.outgoing.get(from_id), to_id)
        _discard(self.incoming.get(to_id), from_id)
        logger.debug(f"Removed edge {from_id} -> {to_id}")
        return True

    def has_edge(self, from_id: str, to_id: str) -> bool:
        return (from_id, to_id) in self.edges

    def get_edge(self, from_id: str, to_id: str) -> Optional[EdgeRecord]:
        return self.edges.get((from_id, to_id))

    def iter_edges(self) -> Iterator[EdgeRecord]:
        return iter(self.edges.values())

    def get_outgoing(self, node_id: str) -> List[str]:
        """Ids this node points to (its direct dependencies in edge terms)."""
        return list(self.outgoing.get(node_id, []))

    def get_incoming(self, node_id: str) -> List[str]:
        """Ids pointing at this node."""
        return list(self.incoming.get(node_id, []))

    def iter_neighbors(self, node_id: str, edge_filter: EdgeFilter) -> Iterator[Tuple[str, EdgeRecord]]:
        """
        Yield (neighbor_id, edge) pairs reachable from a node under a filter.

        The edge is always the stored (from, to) record, whichever direction
        is being followed.
        """
        if edge_filter.direction is Direction.OUTGOING:
            for neighbor in self.outgoing.get(node_id, []):
                edge = self.edges.get((node_id, neighbor))
                if edge is not None and edge_filter.accepts(edge.type):
                    yield neighbor, edge
        else:
            for neighbor in self.incoming.get(node_id, []):
                edge = self.edges.get((neighbor, node_id))
                if edge is not None and edge_filter.accepts(edge.type):
                    yield neighbor, edge

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    def traverse(self, start_id: str, direction: Direction = Direction.OUTGOING,
                 edge_types: EdgeTypeFilter = None,
                 strategy: TraversalStrategy = TraversalStrategy.BFS) -> List[str]:
        """
        Traverse the graph from a starting node, following edges of the given types.

        Args:
            start_id: The node to start from
            direction: 'outgoing' follows from -> to, 'incoming' follows to -> from
            edge_types: A type or collection of types to follow; None follows all
            strategy: 'bfs' (queue) or 'dfs' (stack)

        Returns:
            Visited node ids in visiting order, start node first. Empty if the
            start node does not exist.
        """
        if start_id not in self.outgoing:
            logger.error(f"Start node for traversal does not exist: {start_id}")
            return []

        options = TraversalOptions(direction=direction, edge_types=edge_types, strategy=strategy)
        take = deque.pop if options.strategy is TraversalStrategy.DFS else deque.popleft

        visited = set()
        pending = deque([start_id])
        result = []

        while pending:
            current = take(pending)
            if current in visited:
                continue
            visited.add(current)
            result.append(current)

            for neighbor, _ in self.iter_neighbors(current, options):
                if neighbor not in visited:
                    pending.append(neighbor)

        return result

    def get_dependents(self, node_id: str, edge_types: EdgeTypeFilter = None,
                       strategy: TraversalStrategy = TraversalStrategy.BFS) -> List[str]:
        """Nodes reachable from this node along outgoing edges, excluding itself."""
        result = self.traverse(node_id, Direction.OUTGOING, edge_types, strategy)
        return [n for n in result if n != node_id]

    def get_dependencies(self, node_id: str, edge_types: EdgeTypeFilter = None,
                         strategy: TraversalStrategy = TraversalStrategy.BFS) -> List[str]:
        """Nodes reachable from this node along incoming edges, excluding itself."""
        result = self.traverse(node_id, Direction.INCOMING, edge_types, strategy)
        return [n for n in result if n != node_id]

    # =========================================================================
    # CYCLE DETECTION
    # =========================================================================

    def has_circular_dependency(self, edge_types: EdgeTypeFilter = None) -> bool:
        """
        Check the whole graph for a cycle along outgoing edges of the given types.

        Args:
            edge_types: A type or collection of types to check; None checks all

        Returns:
            True if any cycle exists
        """
        return self._find_cycle(normalize_edge_types(edge_types)) is not None

    def find_circular_dependency(self, edge_types: EdgeTypeFilter = None) -> Optional[List[str]]:
        """
        Find a cycle and return its path, closing node repeated at the end.

        A cycle A -> B -> A is returned as ['A', 'B', 'A']. When several cycles
        exist, the first one met by a DFS over nodes in insertion order wins.

        Returns:
            The cycle path, or None if the graph is acyclic under the filter
        """
        cycle = self._find_cycle(normalize_edge_types(edge_types))
        if cycle:
            logger.warning(f"Detected cycle: {cycle}")
        return cycle

    def _find_cycle(self, edge_types) -> Optional[List[str]]:
        """Three-colour DFS with an explicit stack of neighbour iterators."""
        edge_filter = EdgeFilter(direction=Direction.OUTGOING, edge_types=edge_types)
        colour: Dict[str, int] = {}  # missing means white

        for root in self.outgoing:
            if root in colour:
                continue

            colour[root] = _GRAY
            path = [root]
            stack = [self.iter_neighbors(root, edge_filter)]

            while stack:
                descended = False
                for neighbor, _ in stack[-1]:
                    state = colour.get(neighbor)
                    if state == _GRAY:
                        # Back edge: the cycle is the path suffix from the gray node
                        return path[path.index(neighbor):] + [neighbor]
                    if state is None:
                        colour[neighbor] = _GRAY
                        path.append(neighbor)
                        stack.append(self.iter_neighbors(neighbor, edge_filter))
                        descended = True
                        break

                if not descended:
                    stack.pop()
                    colour[path.pop()] = _BLACK

        return None

    # =========================================================================
    # TREE BUILDING
    # =========================================================================

    def get_tree(self, start_id: str, direction: Direction = Direction.OUTGOING,
                 edge_types: EdgeTypeFilter = None) -> Optional[TreeNode]:
        """
        Build a tree rooted at a node, following edges of the given types.

        A single visited set is shared across the whole build, so each node
        appears once, under the first path that reaches it, and cycles stop.

        Returns:
            The root TreeNode, or None if the start node doesn't exist
        """
        if start_id not in self.outgoing:
            logger.error(f"Start node for tree building does not exist: {start_id}")
            return None

        edge_filter = EdgeFilter(direction=direction, edge_types=edge_types)
        root = TreeNode(node=start_id)
        visited = {start_id}
        stack = [(root, self.iter_neighbors(start_id, edge_filter))]

        while stack:
            parent, neighbors = stack[-1]
            for neighbor, _ in neighbors:
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                child = TreeNode(node=neighbor)
                parent.children.append(child)
                stack.append((child, self.iter_neighbors(neighbor, edge_filter)))
                break
            else:
                stack.pop()

        return root

    # =========================================================================
    # TREE EXECUTION
    # =========================================================================

    async def execute_on_tree(
        self,
        start_id: str,
        callback: Callable[..., Any],
        direction: Direction = Direction.OUTGOING,
        edge_types: EdgeTypeFilter = None,
        error_strategy: ErrorStrategy = ErrorStrategy.FAIL_FAST,
        max_concurrency: Optional[int] = None,
        cancellation_token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[str, Any], Any]] = None,
    ) -> ExecutionNode:
        """
        Run a callback on every node of the tree rooted at ``start_id``.

        Siblings run concurrently; a parent's callback always settles before
        its children start, and each child receives the parent's result.

        Args:
            start_id: The node to start from
            callback: ``callback(node_id, parent_result, context)``, sync or async
            direction: Direction to follow
            edge_types: A type or collection of types to follow; None follows all
            error_strategy: 'fail-fast', 'collect' or 'skip-children'
            max_concurrency: Global cap on in-flight callbacks; None is unbounded
            cancellation_token: Checked before every invocation
            on_progress: ``on_progress(node_id, result)`` after each success

        Returns:
            The root ExecutionNode

        Raises:
            ValueError: If the start node doesn't exist or options are invalid
            TypeError: If callback is not callable
            ExecutionCancelledError: If the token is cancelled during the run
        """

        if start_id not in self.outgoing:
            raise ValueError(f"Start node '{start_id}' does not exist.")
        if not callable(callback):
            raise TypeError("Callback must be a callable.")

        options = ExecutionOptions(
            direction=direction,
            edge_types=edge_types,
            error_strategy=error_strategy,
            max_concurrency=max_concurrency,
            cancellation_token=cancellation_token,
            on_progress=on_progress,
        )
        return await TreeExecutor(self, callback, options).run(start_id)

    # =========================================================================
    # SERIALIZATION AND VISUALIZATION
    # =========================================================================

    def serialize(self) -> str:
        """Serialize the graph state to a JSON string."""
        return dump_graph(self)

    @classmethod
    def deserialize(cls, text: str) -> "DependencyGraph":
        """Build a new graph from a JSON string produced by ``serialize``."""
        return load_graph(text, cls())

    def to_mermaid(self) -> str:
        """Generate a Mermaid.js graph definition."""
        return render_mermaid(self)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.outgoing

    def __len__(self) -> int:
        return len(self.outgoing)

    def __str__(self) -> str:
        return f"DependencyGraph(nodes={self.node_count}, edges={self.edge_count})"

    def __repr__(self) -> str:
        return self.__str__()


def _discard(ids: Optional[List[str]], node_id: str) -> None:
    """Remove an id from an adjacency list if present."""
    if ids is not None and node_id in ids:
        ids.remove(node_id)
