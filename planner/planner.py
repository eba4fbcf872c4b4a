"""
Materialization driver.

The planner walks a DependencyGraph in dependency order and asks a
ProvisioningBackend to materialize each node, feeding live attributes of
materialized nodes into the params of their consumers.

Scheduling: a node becomes ready once every dependency is Materialized.
Ready nodes start in declaration order. With ``max_workers > 1`` independent
nodes run concurrently on a thread pool; with one worker the backend runs on
the calling thread, which Pulumi requires because it registers resources on
that thread's event loop.

Failures are not retried and nothing is rolled back: the failing node is
marked Failed, its transitive dependents are never started and stay Pending,
and unrelated branches carry on.
"""

import heapq
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Mapping

from planner.backend import ChangeStatus, ProvisioningBackend
from planner.errors import ProvisioningFailure
from planner.graph import DependencyGraph
from planner.model import NodeState, ResourceNode, resolve_references
from planner.report import Action, PlanEntry, PlanReport
from planner.state import NodeRecord, StateTable

LOG = logging.getLogger(__name__)


class Planner:
    """
    Drives a ProvisioningBackend over a DependencyGraph.

    Args:
        backend: Collaborator that materializes individual nodes.
        max_workers: Upper bound on concurrent backend calls.
    """

    def __init__(self, backend: ProvisioningBackend, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.backend = backend
        self.max_workers = max_workers

    def has_changed(
        self,
        node: ResourceNode,
        params: Mapping[str, Any],
        previous: NodeRecord | None,
    ) -> bool:
        """
        Whether ``node`` must be materialized again.

        Nodes that never materialized always need it. Otherwise the backend
        decides by comparing ``params`` with the previous record.
        """
        if previous is None or previous.state is not NodeState.MATERIALIZED:
            return True
        if previous.kind is not node.kind:
            return True
        return self.backend.diff(node.kind, params, previous) is ChangeStatus.CHANGED

    def plan(
        self,
        graph: DependencyGraph,
        previous_state: Mapping[str, NodeRecord] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PlanReport:
        """
        Materialize every node of ``graph`` that is new or changed.

        Args:
            graph: Graph to materialize. Its topological order is computed
                before anything else, so static defects abort the run before
                the backend is called.
            previous_state: Records returned by the previous run
                (``PlanReport.state``). Unchanged nodes adopt their record
                without a backend call.
            cancel_event: Once set, no further node is started; in-flight
                calls complete and the rest is reported Cancelled.

        Returns:
            PlanReport with one entry per node in topological order.

        Raises:
            GraphError: The graph is not a valid DAG.
            UnresolvedReference: A reference was read before its source node
                materialized.
        """
        order = graph.topological_order()
        previous_state = previous_state or {}
        table = StateTable(order)
        run = _Run(self, graph, table, previous_state, cancel_event)

        LOG.info("Planning %d nodes with %d worker(s)", len(order), self.max_workers)
        executor = ThreadPoolExecutor(max_workers=self.max_workers) if self.max_workers > 1 else None
        try:
            run.drive(executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        cancelled = run.cancelled()
        if cancelled:
            for node_id in order:
                if table.state(node_id) is NodeState.PENDING:
                    table.transition(node_id, NodeState.CANCELLED)
            LOG.warning("Plan cancelled, %d node(s) not started", sum(
                1 for state in table.states().values() if state is NodeState.CANCELLED
            ))

        return PlanReport(
            entries=run.entries(order),
            state=table.snapshot(previous_state),
            cancelled=cancelled,
        )

    def _materialize(self, node: ResourceNode, params: Mapping[str, Any]) -> dict[str, Any]:
        LOG.info("Materializing %s '%s'", node.kind.value, node.id)
        try:
            attributes = self.backend.materialize(node.kind, params, node.id)
        except Exception as exc:  # backend boundary: any error fails this node only
            raise ProvisioningFailure(node.id, node.kind, exc) from exc
        return dict(attributes or {})


class _Run:
    """Mutable bookkeeping of a single ``Planner.plan`` call."""

    def __init__(self, planner, graph, table, previous_state, cancel_event):
        self.planner = planner
        self.graph = graph
        self.table = table
        self.previous_state = previous_state
        self.cancel_event = cancel_event
        self.waiting = {node_id: set(graph.dependencies_of(node_id)) for node_id in table.states()}
        self.ready: list[tuple[int, str]] = []
        self.actions: dict[str, Action] = {}
        self.errors: dict[str, ProvisioningFailure] = {}
        self.params: dict[str, dict[str, Any]] = {}
        # Nodes whose backend call succeeded in this run.
        self.changed: set[str] = set()
        for node_id, deps in self.waiting.items():
            if not deps:
                self._push(node_id)

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def drive(self, executor: ThreadPoolExecutor | None) -> None:
        in_flight: dict[Future, str] = {}
        while self.ready or in_flight:
            while self.ready and len(in_flight) < self.planner.max_workers and not self.cancelled():
                _, node_id = heapq.heappop(self.ready)
                future = self._start(node_id, executor)
                if future is not None:
                    in_flight[future] = node_id
            if not in_flight:
                break
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in sorted(done, key=lambda f: self.graph.declaration_index(in_flight[f])):
                self._finish(in_flight.pop(future), future)

    def _push(self, node_id: str) -> None:
        heapq.heappush(self.ready, (self.graph.declaration_index(node_id), node_id))

    def _release(self, node_id: str) -> None:
        for dependent in self.graph.dependents_of(node_id):
            self.waiting[dependent].discard(node_id)
            if not self.waiting[dependent]:
                self._push(dependent)

    def _start(self, node_id: str, executor: ThreadPoolExecutor | None) -> Future | None:
        node = self.graph.get(node_id)
        params = resolve_references(dict(node.params), self.table.resolve)
        self.params[node_id] = params
        previous = self.previous_state.get(node_id)

        dependency_changed = bool(self.graph.dependencies_of(node_id) & self.changed)
        if not dependency_changed and not self.planner.has_changed(node, params, previous):
            LOG.debug("%s '%s' unchanged", node.kind.value, node_id)
            self.table.materialized(node_id, node.kind, previous.params, previous.attributes)
            self.actions[node_id] = Action.NOOP
            self._release(node_id)
            return None

        self.actions[node_id] = Action.CREATE if previous is None else Action.UPDATE
        self.table.transition(node_id, NodeState.MATERIALIZING)
        if executor is not None:
            return executor.submit(self.planner._materialize, node, params)
        future: Future = Future()
        try:
            future.set_result(self.planner._materialize(node, params))
        except ProvisioningFailure as exc:
            future.set_exception(exc)
        return future

    def _finish(self, node_id: str, future: Future) -> None:
        node = self.graph.get(node_id)
        try:
            attributes = future.result()
        except ProvisioningFailure as failure:
            self.table.transition(node_id, NodeState.FAILED)
            self.errors[node_id] = failure
            blocked = sorted(self.graph.transitive_dependents(node_id))
            LOG.error("%s; not starting dependents: %s", failure, ", ".join(blocked) or "none")
            return
        self.table.materialized(node_id, node.kind, self.params[node_id], attributes)
        self.changed.add(node_id)
        self._release(node_id)

    def entries(self, order: list[str]) -> list[PlanEntry]:
        blockers: dict[str, list[str]] = {}
        for failed_id in self.errors:
            for dependent in self.graph.transitive_dependents(failed_id):
                blockers.setdefault(dependent, []).append(failed_id)

        entries = []
        for node_id in order:
            previous = self.previous_state.get(node_id)
            entries.append(
                PlanEntry(
                    node_id=node_id,
                    kind=self.graph.get(node_id).kind,
                    previous_state=previous.state if previous is not None else NodeState.PENDING,
                    new_state=self.table.state(node_id),
                    action=self.actions.get(node_id, Action.NONE),
                    error=self.errors.get(node_id),
                    blocked_by=tuple(
                        sorted(blockers.get(node_id, ()), key=self.graph.declaration_index)
                    ),
                )
            )
        return entries
