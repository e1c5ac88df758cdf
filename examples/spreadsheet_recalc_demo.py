"""
Example demonstrating parallel recalculation of dependent spreadsheet cells.

Formulas are parsed into references, turned into a dependency graph, checked
for cycles and then recalculated from a changed cell with execute_on_tree.
"""
from typing import Any, Dict
import asyncio
import logging
import random

from depgraph import (
    CancellationToken, DependencyGraph, ErrorStrategy, ExecutionContext,
    extract_cells_and_ranges,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FORMULAS: Dict[str, str] = {
    "B1": "=A1 * 2",
    "C1": "=A1 + 5",
    "D1": "=SUM(B1:C1)",
    "E1": "=D1 / 0",
    "F1": "=E1 + 1",
    "G1": "=B1 * 10",
}

def build_graph(formulas: Dict[str, str]) -> DependencyGraph:
    """Edges point from a referenced cell to the cell reading it."""
    graph = DependencyGraph()
    for cell, formula in formulas.items():
        graph.add_node(cell)
        for ref in extract_cells_and_ranges(formula).cells:
            graph.add_edge(ref, cell, "equational", {"formula": formula})
    return graph

async def recalc_cell(node_id: str, parent_result: Any, context: ExecutionContext) -> Any:
    """Simulate a slow remote calculation for one cell."""
    await asyncio.sleep(random.uniform(0.05, 0.2))
    if context.parent_node is None:
        return 10
    if "/ 0" in context.payload["formula"]:
        raise ZeroDivisionError(f"{node_id} divides by zero")
    return parent_result + 1

async def main():
    graph = build_graph(FORMULAS)
    print(graph)

    cycle = graph.find_circular_dependency()
    if cycle:
        print(f"Refusing to recalculate, cycle found: {' -> '.join(cycle)}")
        return

    token = CancellationToken()
    done = []

    def on_progress(node_id: str, result: Any) -> None:
        done.append(node_id)
        logger.info(f"Recalculated {node_id} = {result}")

    start_time = asyncio.get_event_loop().time()
    tree = await graph.execute_on_tree(
        "A1",
        recalc_cell,
        error_strategy=ErrorStrategy.SKIP_CHILDREN,
        max_concurrency=3,
        cancellation_token=token,
        on_progress=on_progress,
    )
    elapsed = asyncio.get_event_loop().time() - start_time

    print(f"\nRecalculated {len(done)} cells in {elapsed:.2f}s")
    stack = [tree]
    while stack:
        node = stack.pop()
        status = f"error: {node.error}" if node.error else f"value: {node.result}"
        marker = " (reused)" if node.is_circular_ref else ""
        print(f"  {node.node}{marker} -> {status}")
        stack.extend(reversed(node.children))

if __name__ == "__main__":
    asyncio.run(main())
