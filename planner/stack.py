"""
Stack groups: deployable units sharing one dependency graph.

A group owns a subset of the graph's nodes, publishes selected live
attributes as named exports, and may depend on other groups. Group
dependencies are lowered to ordinary graph edges (every node of the upstream
group before every node of the downstream group), so the planner only ever
deals with node-level ordering.
"""

import logging

from planner.errors import CycleDetected, DuplicateId, GraphError, UnknownNode, UnresolvedReference
from planner.graph import DependencyGraph
from planner.model import OutputRef, ResourceNode

LOG = logging.getLogger(__name__)


class StackGroup:
    """
    Named partition of a DependencyGraph with exports and group ordering.

    Args:
        name: Group name, used in export references and messages.
        graph: Graph shared by every group of the deployment.
    """

    def __init__(self, name: str, graph: DependencyGraph):
        self.name = name
        self.graph = graph
        self.node_ids: list[str] = []
        self.exports: dict[str, OutputRef] = {}
        self._upstream: list["StackGroup"] = []
        self._downstream: list["StackGroup"] = []

    def __repr__(self) -> str:
        return f"StackGroup({self.name!r}, nodes={self.node_ids!r})"

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.node_ids

    @property
    def depends_on(self) -> tuple["StackGroup", ...]:
        return tuple(self._upstream)

    def add(self, node: ResourceNode) -> ResourceNode:
        """
        Declare a node in the shared graph as a member of this group.

        The node is ordered after every node of the groups this one depends
        on and before every node of the groups depending on this one. If
        that ordering is impossible the node is withdrawn again and the error
        propagates.
        """
        self.graph.add_node(node)
        added: list[tuple[str, str]] = []
        try:
            for upstream in self._upstream:
                for node_id in upstream.node_ids:
                    self._link(node_id, node.id, added)
            for downstream in self._downstream:
                for node_id in downstream.node_ids:
                    self._link(node.id, node_id, added)
        except GraphError:
            for source, target in added:
                self.graph.remove_edge(source, target)
            self.graph.remove_node(node.id)
            raise
        self.node_ids.append(node.id)
        return node

    def remove(self, node_id: str) -> ResourceNode:
        """
        Withdraw a member node from the group and the graph.

        Ordering edges no dependent declares (group ordering, ``add_edge``)
        are dropped with it; ``add`` restores the group ones when the node is
        re-declared.
        Exports of the node stay registered and resolve again once a node
        with the same id is added back.

        Raises:
            UnknownNode: The node is not a member of this group.
            GraphError: Another node declares a dependency on it.
        """
        if node_id not in self.node_ids:
            raise UnknownNode(node_id, scope=f"group '{self.name}'")
        required = sorted(
            dependent
            for dependent in self.graph.dependents_of(node_id)
            if node_id in self.graph.get(dependent).upstream()
        )
        if required:
            raise GraphError(f"cannot remove '{node_id}': required by {', '.join(required)}")
        for dependent in self.graph.dependents_of(node_id):
            self.graph.remove_edge(node_id, dependent)
        node = self.graph.remove_node(node_id)
        self.node_ids.remove(node_id)
        LOG.debug("Removed '%s' from group '%s'", node_id, self.name)
        return node

    def attr(self, node_id: str, attribute: str) -> OutputRef:
        """Reference a live attribute of a node in this group."""
        if node_id not in self.node_ids:
            raise UnknownNode(node_id, scope=f"group '{self.name}'")
        return OutputRef(node_id, attribute)

    def export(self, name: str, node_id: str, attribute: str) -> OutputRef:
        """
        Publish ``node_id.attribute`` under ``name`` for other groups.

        Raises:
            UnknownNode: The node is not a member of this group.
            DuplicateId: An export with this name already exists.
        """
        if node_id not in self.node_ids:
            raise UnknownNode(node_id, scope=f"group '{self.name}'")
        if name in self.exports:
            raise DuplicateId(f"{self.name}.{name}")
        ref = OutputRef(node_id, attribute, from_group=self.name, export_name=name)
        self.exports[name] = ref
        return ref

    def import_ref(self, source: "StackGroup", export_name: str) -> OutputRef:
        """
        Return an unresolved reference to ``source``'s export.

        A node whose params hold the reference is ordered after the exporting
        node only, so failures elsewhere in ``source`` do not block it. Use
        ``add_dependency`` to wait for the whole group.
        """
        try:
            return source.exports[export_name]
        except KeyError:
            raise UnresolvedReference(
                f"{source.name}.{export_name}", f"group '{source.name}' has no such export"
            ) from None

    def add_dependency(self, other: "StackGroup") -> None:
        """
        Order every node of this group after every node of ``other``.

        Raises:
            CycleDetected: ``other`` already depends (transitively) on this
                group, or is this group.
        """
        if other in self._upstream:
            return
        if other is self or other._reaches(self):
            raise CycleDetected((self.name, other.name, self.name))
        if other.graph is not self.graph:
            raise ValueError(f"groups '{self.name}' and '{other.name}' use different graphs")
        added: list[tuple[str, str]] = []
        try:
            for upstream_id in other.node_ids:
                for node_id in self.node_ids:
                    self._link(upstream_id, node_id, added)
        except GraphError:
            for source, target in added:
                self.graph.remove_edge(source, target)
            raise
        self._upstream.append(other)
        other._downstream.append(self)
        LOG.debug("Group '%s' depends on '%s'", self.name, other.name)

    def _link(self, source: str, target: str, added: list[tuple[str, str]]) -> None:
        # Records only edges that did not exist, so rollback leaves declared ones.
        if target not in self.graph.dependents_of(source):
            self.graph.add_edge(source, target)
            added.append((source, target))

    def _reaches(self, target: "StackGroup") -> bool:
        # True when self depends, directly or not, on target.
        stack = list(self._upstream)
        seen: set[int] = set()
        while stack:
            group = stack.pop()
            if group is target:
                return True
            if id(group) not in seen:
                seen.add(id(group))
                stack.extend(group._upstream)
        return False
