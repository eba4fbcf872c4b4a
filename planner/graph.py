"""
Dependency graph over ResourceNodes.

Edges point from a dependency to its dependent (``source`` must be
materialized before ``target``). Acyclicity is enforced on every insertion so
a graph that was built without errors always has a topological order;
``topological_order`` re-checks anyway before a plan uses it.
"""

import heapq
import logging
from typing import Iterator

from planner.errors import CycleDetected, DuplicateId, GraphError, UnknownNode
from planner.model import ResourceNode, ordered

LOG = logging.getLogger(__name__)


class DependencyGraph:
    """
    Owns ResourceNodes and the directed edges between them.

    Declaration order is remembered and used to break ties in
    ``topological_order`` so plans are reproducible across runs.
    """

    def __init__(self):
        self._nodes: dict[str, ResourceNode] = {}
        self._index: dict[str, int] = {}
        self._declared = 0
        self._successors: dict[str, set[str]] = {}
        self._predecessors: dict[str, set[str]] = {}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes.values())

    def get(self, node_id: str) -> ResourceNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNode(node_id) from None

    def declaration_index(self, node_id: str) -> int:
        self.get(node_id)
        return self._index[node_id]

    def add_node(self, node: ResourceNode) -> ResourceNode:
        """
        Add a node and an edge from each of its dependencies.

        Dependencies are the ids in ``node.depends_on`` plus every node
        referenced from ``node.params``; all of them must already exist.

        Raises:
            DuplicateId: ``node.id`` is already in the graph.
            UnknownNode: A dependency is not in the graph.
            CycleDetected: The node depends on itself.
        """
        if node.id in self._nodes:
            raise DuplicateId(node.id)
        upstream = node.upstream()
        if node.id in upstream:
            raise CycleDetected((node.id, node.id))
        for dependency in sorted(upstream):
            if dependency not in self._nodes:
                raise UnknownNode(dependency)

        self._nodes[node.id] = node
        self._index[node.id] = self._declared
        self._declared += 1
        self._successors[node.id] = set()
        self._predecessors[node.id] = set()
        for dependency in upstream:
            self._successors[dependency].add(node.id)
            self._predecessors[node.id].add(dependency)
        LOG.debug("Declared %s '%s' after %s", node.kind.value, node.id, sorted(upstream))
        return node

    def add_edge(self, source: str, target: str) -> None:
        """
        Require ``source`` to be materialized before ``target``.

        Raises:
            UnknownNode: Either id is not in the graph.
            CycleDetected: ``source`` is already reachable from ``target``.
                The graph is left unchanged.
        """
        for node_id in (source, target):
            if node_id not in self._nodes:
                raise UnknownNode(node_id)
        if target in self._successors[source]:
            return
        path = self._path(target, source)
        if path is not None:
            raise CycleDetected((source, *path))
        self._successors[source].add(target)
        self._predecessors[target].add(source)

    def remove_node(self, node_id: str) -> ResourceNode:
        """
        Remove a node that nothing depends on and return it.

        Replacing a node's params is done by removing and re-adding it.
        """
        node = self.get(node_id)
        if self._successors[node_id]:
            dependents = ", ".join(self._ordered(self._successors[node_id]))
            raise GraphError(f"cannot remove '{node_id}': required by {dependents}")
        for dependency in self._predecessors.pop(node_id):
            self._successors[dependency].discard(node_id)
        del self._successors[node_id]
        del self._nodes[node_id]
        del self._index[node_id]
        return node

    def remove_edge(self, source: str, target: str) -> None:
        """
        Drop an ordering added with ``add_edge``; a missing edge is ignored.

        Raises:
            UnknownNode: Either id is not in the graph.
            GraphError: ``target`` declares ``source`` as a dependency.
        """
        for node_id in (source, target):
            if node_id not in self._nodes:
                raise UnknownNode(node_id)
        if source in self._nodes[target].upstream():
            raise GraphError(f"'{target}' declares a dependency on '{source}'")
        self._successors[source].discard(target)
        self._predecessors[target].discard(source)

    def dependencies_of(self, node_id: str) -> frozenset[str]:
        self.get(node_id)
        return frozenset(self._predecessors[node_id])

    def dependents_of(self, node_id: str) -> frozenset[str]:
        self.get(node_id)
        return frozenset(self._successors[node_id])

    def transitive_dependents(self, node_id: str) -> set[str]:
        """Every node that directly or indirectly depends on ``node_id``."""
        self.get(node_id)
        seen: set[str] = set()
        stack = [node_id]
        while stack:
            for dependent in self._successors[stack.pop()]:
                if dependent not in seen:
                    seen.add(dependent)
                    stack.append(dependent)
        return seen

    def topological_order(self) -> list[str]:
        """
        Return node ids so every node comes after all of its dependencies.

        Among nodes whose dependencies are satisfied, the first declared is
        emitted first.

        Raises:
            CycleDetected: The graph is not a DAG.
        """
        remaining = {node_id: len(preds) for node_id, preds in self._predecessors.items()}
        ready = [(self._index[node_id], node_id) for node_id, count in remaining.items() if not count]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for dependent in self._successors[node_id]:
                remaining[dependent] -= 1
                if not remaining[dependent]:
                    heapq.heappush(ready, (self._index[dependent], dependent))
        if len(order) != len(self._nodes):
            stuck = self._ordered(node_id for node_id, count in remaining.items() if count)
            raise CycleDetected(stuck)
        return order

    def _ordered(self, ids) -> list[str]:
        return ordered(ids, self._index)

    def _path(self, start: str, goal: str) -> list[str] | None:
        """Depth-first search for a path start -> ... -> goal."""
        parents: dict[str, str | None] = {start: None}
        stack = [start]
        while stack:
            current = stack.pop()
            if current == goal:
                path = [current]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            for nxt in self._successors[current]:
                if nxt not in parents:
                    parents[nxt] = current
                    stack.append(nxt)
        return None
