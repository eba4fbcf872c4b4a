"""
Plan report: what happened to each node in one run.

Entries follow the topological order of the graph so they can be printed
as-is as a plan/diff listing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from planner.errors import ProvisioningFailure
from planner.model import NodeState, ResourceKind
from planner.state import NodeRecord


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"
    # Never started: blocked by a failure or cancelled.
    NONE = "none"


_SYMBOLS = {
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.NOOP: "=",
}


@dataclass(frozen=True)
class PlanEntry:
    node_id: str
    kind: ResourceKind
    previous_state: NodeState
    new_state: NodeState
    action: Action
    error: ProvisioningFailure | None = None
    # Failed nodes this entry transitively depends on.
    blocked_by: tuple[str, ...] = ()

    def render(self) -> str:
        if self.new_state is NodeState.FAILED:
            symbol = "!"
        elif self.new_state is NodeState.CANCELLED:
            symbol = "x"
        else:
            symbol = _SYMBOLS.get(self.action, "-")
        line = (
            f"{symbol} {self.node_id} ({self.kind.value}): "
            f"{self.previous_state.value} -> {self.new_state.value}"
        )
        if self.error is not None:
            line += f": {self.error.cause}"
        if self.blocked_by:
            line += f" (blocked by {', '.join(self.blocked_by)})"
        return line


@dataclass
class PlanReport:
    """
    Result of ``Planner.plan``.

    Attributes:
        entries: One entry per node, in topological order.
        state: Records to pass as ``previous_state`` to the next run.
        cancelled: True if a cancellation signal stopped the run early.
    """

    entries: list[PlanEntry]
    state: dict[str, NodeRecord] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return all(entry.new_state is NodeState.MATERIALIZED for entry in self.entries)

    @property
    def failures(self) -> list[ProvisioningFailure]:
        return [entry.error for entry in self.entries if entry.error is not None]

    def entry(self, node_id: str) -> PlanEntry:
        for entry in self.entries:
            if entry.node_id == node_id:
                return entry
        raise KeyError(node_id)

    def attribute(self, node_id: str, name: str) -> Any:
        """Live attribute of a node materialized (or adopted) in this run."""
        return self.state[node_id].attributes[name]

    def counts(self) -> dict[str, int]:
        result = {
            "materialized": 0,
            "unchanged": 0,
            "failed": 0,
            "pending": 0,
            "cancelled": 0,
        }
        for entry in self.entries:
            if entry.action is Action.NOOP:
                result["unchanged"] += 1
            else:
                result[entry.new_state.value.lower()] += 1
        return result

    def render(self) -> str:
        summary = ", ".join(f"{count} {name}" for name, count in self.counts().items())
        lines = [f"Plan: {summary}"]
        lines.extend(f"  {entry.render()}" for entry in self.entries)
        return "\n".join(lines)
