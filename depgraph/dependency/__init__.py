"""
Typed dependency graph implementation.

This module provides a directed graph with typed edges, traversal, cycle
detection, tree building and asynchronous execution of callbacks over a
dependency tree.
"""
from .cancellation import CancellationToken, ExecutionCancelledError
from .executor import ConcurrencyLimiter
from .graph import DependencyGraph
from .models import (
    Direction, EdgeRecord, ErrorStrategy, ExecutionContext, ExecutionNode,
    ExecutionOptions, TraversalOptions, TraversalStrategy, TreeNode,
)

__all__ = [
    "DependencyGraph",
    "Direction",
    "TraversalStrategy",
    "ErrorStrategy",
    "EdgeRecord",
    "TreeNode",
    "ExecutionContext",
    "ExecutionNode",
    "TraversalOptions",
    "ExecutionOptions",
    "ConcurrencyLimiter",
    "CancellationToken",
    "ExecutionCancelledError",
]
