"""
Asynchronous execution of a callback over a dependency tree.

The executor walks the same tree ``DependencyGraph.get_tree`` would build, but
runs a user callback on every node as it goes:

1. WATERFALL:
   - A node's callback starts only after its parent's callback settled
   - The parent's result is handed to each child

2. PARALLEL SIBLINGS:
   - All matching children of a node are launched as asyncio tasks at once
   - An optional global cap (``max_concurrency``) admits invocations FIFO

3. CIRCULAR REFERENCES:
   - Execution is keyed by (node, incoming edge type)
   - A second arrival via the same type reuses the first arrival's result

4. ERROR STRATEGIES:
   - fail-fast: first failure aborts the whole run
   - collect: failures are recorded on the node, children still run
   - skip-children: failures are recorded, children are skipped

Cancellation is cooperative: the token is checked before each invocation and
never interrupts a callback that is already running.
"""
import asyncio
import inspect
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Tuple

from depgraph.dependency.cancellation import ExecutionCancelledError
from depgraph.dependency.models import (
    EdgeRecord, ErrorStrategy, ExecutionContext, ExecutionNode, ExecutionOptions,
)

if TYPE_CHECKING:
    from depgraph.dependency.graph import DependencyGraph

logger = logging.getLogger("tree_executor")

VisitKey = Tuple[str, Optional[str]]


class ConcurrencyLimiter:
    """
    Fair FIFO admission queue capping the number of in-flight invocations.

    Used as an async context manager around each callback invocation. When a
    slot frees up it is handed directly to the oldest waiter.
    """

    def __init__(self, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.running = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> None:
        if self.running < self.max_concurrency and not self._waiters:
            self.running += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Invocation queued ({self.running} running, {self.waiting} waiting)")
        try:
            await waiter
        except asyncio.CancelledError:
            if not waiter.cancelled():
                # The slot was handed over just before cancellation
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
                # Later arrivals may have queued behind this waiter while a slot was free
                self._wake_next()
            raise

    def release(self) -> None:
        self.running -= 1
        self._wake_next()

    def _wake_next(self) -> None:
        # Slot ownership moves to the waiter here; it does not re-increment
        while self.running < self.max_concurrency and self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self.running += 1
            waiter.set_result(None)

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class TreeExecutor:
    """
    Runs one ``execute_on_tree`` call.

    All mutable execution state (visited keys, cached results, the limiter)
    lives on this object and is discarded when the run finishes.
    """

    def __init__(self, graph: "DependencyGraph", callback: Callable[..., Any], options: ExecutionOptions):
        self.graph = graph
        self.callback = callback
        self.options = options
        self._settled: Dict[VisitKey, asyncio.Future] = {}
        self._limiter = ConcurrencyLimiter(options.max_concurrency) if options.max_concurrency else None
        self.invocations = 0

    async def run(self, start_id: str) -> ExecutionNode:
        logger.info(
            f"Executing tree from {start_id} "
            f"(direction={self.options.direction.value}, strategy={self.options.error_strategy.value}, "
            f"max_concurrency={self.options.max_concurrency})"
        )
        try:
            root = await self._execute_node(start_id, None, None, None, 0, [])
        except ExecutionCancelledError:
            logger.error(f"Execution from {start_id} cancelled after {self.invocations} invocations")
            raise
        logger.info(f"Finished executing tree from {start_id}: {self.invocations} invocations")
        return root

    def _check_cancelled(self) -> None:
        token = self.options.cancellation_token
        if token is not None:
            token.raise_if_cancelled()

    async def _execute_node(
        self,
        node_id: str,
        parent_result: Any,
        parent_node: Optional[str],
        edge: Optional[EdgeRecord],
        depth: int,
        path: List[str],
    ) -> ExecutionNode:
        self._check_cancelled()

        edge_type = edge.type if edge is not None else None
        visit_key = (node_id, edge_type)

        # Same node via the same edge type: reuse, never re-invoke
        if visit_key in self._settled:
            logger.debug(f"Circular reference to {node_id} via {edge_type}, reusing result")
            # Shielded so a cancelled waiter never cancels the shared result
            result = await asyncio.shield(self._settled[visit_key])
            return ExecutionNode(node=node_id, result=result, is_circular_ref=True)

        settled = asyncio.get_running_loop().create_future()
        self._settled[visit_key] = settled

        context = ExecutionContext(
            depth=depth,
            path=list(path),
            parent_node=parent_node,
            edge_type=edge_type,
            payload=dict(edge.payload) if edge is not None else None,
        )

        result = None
        error = None
        try:
            result = await self._invoke(node_id, parent_result, context)
        except ExecutionCancelledError:
            raise
        except Exception as e:
            error = e
            if self.options.error_strategy is ErrorStrategy.FAIL_FAST:
                logger.error(f"Callback failed on {node_id}: {e}")
                raise
            logger.warning(f"Callback failed on {node_id}, continuing ({self.options.error_strategy.value}): {e}")
        finally:
            if not settled.done():
                settled.set_result(result)

        if error is None and self.options.on_progress is not None:
            self.options.on_progress(node_id, result)

        children: List[ExecutionNode] = []
        if error is None or self.options.error_strategy is not ErrorStrategy.SKIP_CHILDREN:
            children = await self._execute_children(node_id, result, depth + 1, [*path, node_id])

        return ExecutionNode(node=node_id, result=result, error=error, children=children)

    async def _invoke(self, node_id: str, parent_result: Any, context: ExecutionContext) -> Any:
        if self._limiter is None:
            return await self._call(node_id, parent_result, context)

        async with self._limiter:
            # Queued invocations re-check the token once admitted
            self._check_cancelled()
            return await self._call(node_id, parent_result, context)

    async def _call(self, node_id: str, parent_result: Any, context: ExecutionContext) -> Any:
        self.invocations += 1
        logger.debug(f"Invoking callback on {node_id} (depth={context.depth}, via={context.edge_type})")
        outcome = self.callback(node_id, parent_result, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    async def _execute_children(self, node_id: str, result: Any, depth: int, path: List[str]) -> List[ExecutionNode]:
        neighbors = list(self.graph.iter_neighbors(node_id, self.options))
        if not neighbors:
            return []

        tasks = [
            asyncio.ensure_future(self._execute_node(neighbor, result, node_id, edge, depth, path))
            for neighbor, edge in neighbors
        ]

        if self.options.error_strategy is ErrorStrategy.FAIL_FAST:
            try:
                return list(await asyncio.gather(*tasks))
            except ExecutionCancelledError:
                # Callbacks already running are left to finish; the token
                # stops their children from starting
                try:
                    await asyncio.gather(*tasks, return_exceptions=True)
                except asyncio.CancelledError:
                    await self._cancel_tasks(tasks)
                    raise
                raise
            except BaseException:
                await self._cancel_tasks(tasks)
                raise

        # Callback failures are already recorded on their nodes; anything
        # raised here is fatal (cancellation, progress hook), once all settle
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    async def _cancel_tasks(self, tasks: List[asyncio.Future]) -> None:
        """Cancel sibling tasks and wait until every one of them has settled."""
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
