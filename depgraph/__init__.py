from depgraph.dependency import (
    CancellationToken, ConcurrencyLimiter, DependencyGraph, Direction, EdgeRecord,
    ErrorStrategy, ExecutionCancelledError, ExecutionContext, ExecutionNode,
    TraversalStrategy, TreeNode,
)
from depgraph.formula import FormulaReferences, extract_cells_and_ranges

__all__ = [
    "DependencyGraph",
    "Direction",
    "TraversalStrategy",
    "ErrorStrategy",
    "EdgeRecord",
    "TreeNode",
    "ExecutionContext",
    "ExecutionNode",
    "ConcurrencyLimiter",
    "CancellationToken",
    "ExecutionCancelledError",
    "FormulaReferences",
    "extract_cells_and_ranges",
]
