"""
Data models shared by the dependency graph, its tree builder and the tree executor.

Edges, tree nodes and execution results are pydantic models so they can be
compared, dumped and validated the same way everywhere. Per-call options are
pydantic models too; the public graph methods accept keyword arguments and
build these internally.
"""
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from depgraph.dependency.cancellation import CancellationToken


class Direction(str, Enum):
    """Which adjacency index a traversal follows."""
    OUTGOING = "outgoing"  # from -> to, the dependency direction
    INCOMING = "incoming"  # to <- from, the dependent direction


class TraversalStrategy(str, Enum):
    """Order in which pending nodes are taken off the work queue."""
    BFS = "bfs"
    DFS = "dfs"


class ErrorStrategy(str, Enum):
    """How the tree executor reacts when a callback raises."""
    FAIL_FAST = "fail-fast"
    COLLECT = "collect"
    SKIP_CHILDREN = "skip-children"


EdgeTypeFilter = Union[None, str, Iterable[str]]


class EdgeRecord(BaseModel):
    """A typed, directed edge. Identity is the (source, target) pair."""
    source: str
    target: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return f"Edge({self.source} -[{self.type}]-> {self.target})"


class TreeNode(BaseModel):
    """A node of the hierarchy returned by ``DependencyGraph.get_tree``."""
    node: str
    children: List["TreeNode"] = Field(default_factory=list)

    def iter_nodes(self):
        """Yield every node id in the tree, depth first."""
        stack = [self]
        while stack:
            current = stack.pop()
            yield current.node
            stack.extend(reversed(current.children))


class ExecutionContext(BaseModel):
    """Information handed to the executor callback alongside the parent result."""
    depth: int = 0
    path: List[str] = Field(default_factory=list)  # ancestor ids, root first
    parent_node: Optional[str] = None
    edge_type: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class ExecutionNode(BaseModel):
    """Outcome of running the callback on one node of the execution tree."""
    node: str
    result: Any = None
    error: Optional[BaseException] = None
    is_circular_ref: bool = False
    children: List["ExecutionNode"] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def find(self, node_id: str) -> Optional["ExecutionNode"]:
        """Return the first non-circular node with the given id, depth first."""
        stack = [self]
        while stack:
            current = stack.pop()
            if current.node == node_id and not current.is_circular_ref:
                return current
            stack.extend(reversed(current.children))
        return None


def normalize_edge_types(value: Any) -> Optional[FrozenSet[str]]:
    """Turn a single type, an iterable of types or None into a frozenset filter."""
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset([value])
    return frozenset(value)


class EdgeFilter(BaseModel):
    """Direction and edge-type filter shared by traversal, tree building and execution."""
    direction: Direction = Direction.OUTGOING
    edge_types: Optional[FrozenSet[str]] = None

    @field_validator("edge_types", mode="before")
    @classmethod
    def _coerce_edge_types(cls, value: Any) -> Optional[FrozenSet[str]]:
        return normalize_edge_types(value)

    def accepts(self, edge_type: str) -> bool:
        """True if an edge of this type should be followed."""
        return self.edge_types is None or edge_type in self.edge_types


class TraversalOptions(EdgeFilter):
    """Options for ``DependencyGraph.traverse``."""
    strategy: TraversalStrategy = TraversalStrategy.BFS


class ExecutionOptions(EdgeFilter):
    """Options for ``DependencyGraph.execute_on_tree``."""
    error_strategy: ErrorStrategy = ErrorStrategy.FAIL_FAST
    max_concurrency: Optional[PositiveInt] = None  # None means unbounded
    cancellation_token: Optional[CancellationToken] = None
    on_progress: Optional[Callable[[str, Any], Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


TreeNode.model_rebuild()
ExecutionNode.model_rebuild()
