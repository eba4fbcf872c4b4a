"""
Per-run node state and live attributes.

``StateTable`` is the only mutable structure shared between the scheduler and
anything that reads node state while materialization branches run. Every
access goes through one lock. ``NodeRecord`` is what survives a run and is
handed back as ``previous_state`` on the next one.
"""

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from planner.errors import InvalidTransition, UnresolvedReference
from planner.model import NodeState, OutputRef, ResourceKind

# Allowed moves. Pending -> Materialized is taken by unchanged nodes that
# adopt their previous record without a backend call.
_TRANSITIONS: dict[NodeState, frozenset[NodeState]] = {
    NodeState.PENDING: frozenset(
        {NodeState.MATERIALIZING, NodeState.MATERIALIZED, NodeState.CANCELLED}
    ),
    NodeState.MATERIALIZING: frozenset({NodeState.MATERIALIZED, NodeState.FAILED}),
    NodeState.MATERIALIZED: frozenset(),
    NodeState.FAILED: frozenset(),
    NodeState.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class NodeRecord:
    """Last applied params and live attributes of a node."""

    kind: ResourceKind
    params: Mapping[str, Any]
    attributes: Mapping[str, Any]
    state: NodeState = NodeState.MATERIALIZED

    def __post_init__(self):
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))


@dataclass
class _Slot:
    state: NodeState = NodeState.PENDING
    kind: ResourceKind | None = None
    params: dict[str, Any] = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)


class StateTable:
    """
    Node states and live attributes for one plan run.

    Args:
        node_ids: Every node taking part in the run; all start Pending.
    """

    def __init__(self, node_ids: Iterable[str]):
        self._lock = threading.RLock()
        self._slots = {node_id: _Slot() for node_id in node_ids}
        self._resolved: dict[tuple[str, str], Any] = {}

    def state(self, node_id: str) -> NodeState:
        with self._lock:
            return self._slots[node_id].state

    def states(self) -> dict[str, NodeState]:
        with self._lock:
            return {node_id: slot.state for node_id, slot in self._slots.items()}

    def transition(self, node_id: str, target: NodeState) -> None:
        with self._lock:
            slot = self._slots[node_id]
            if target not in _TRANSITIONS[slot.state]:
                raise InvalidTransition(node_id, slot.state, target)
            slot.state = target

    def materialized(
        self,
        node_id: str,
        kind: ResourceKind,
        params: Mapping[str, Any],
        attributes: Mapping[str, Any],
    ) -> None:
        """Move a node to Materialized and record what was applied."""
        with self._lock:
            self.transition(node_id, NodeState.MATERIALIZED)
            slot = self._slots[node_id]
            slot.kind = kind
            slot.params = dict(params)
            slot.attributes = dict(attributes)

    def resolve(self, ref: OutputRef) -> Any:
        """
        Read the live value behind a reference.

        The first successful read is cached; later reads return the same
        object even if the attribute map is replaced.

        Raises:
            UnresolvedReference: The source node is not materialized yet or
                did not report the attribute.
        """
        key = (ref.node_id, ref.attribute)
        with self._lock:
            if key in self._resolved:
                return self._resolved[key]
            slot = self._slots.get(ref.node_id)
            if slot is None:
                raise UnresolvedReference(ref, "source node is not part of this plan")
            if slot.state is not NodeState.MATERIALIZED:
                raise UnresolvedReference(ref, f"source node is {slot.state.value}")
            if ref.attribute not in slot.attributes:
                raise UnresolvedReference(ref, "attribute was not reported by the backend")
            value = slot.attributes[ref.attribute]
            self._resolved[key] = value
            return value

    def snapshot(self, previous: Mapping[str, NodeRecord] | None = None) -> dict[str, NodeRecord]:
        """
        Build the state to hand to the next run.

        Nodes materialized in this run get fresh records. Nodes that did not
        materialize keep their previous record, since whatever exists for
        them remotely was left in place.
        """
        previous = previous or {}
        records: dict[str, NodeRecord] = {}
        with self._lock:
            for node_id, slot in self._slots.items():
                if slot.state is NodeState.MATERIALIZED:
                    records[node_id] = NodeRecord(slot.kind, slot.params, slot.attributes)
                elif node_id in previous:
                    records[node_id] = previous[node_id]
        return records
