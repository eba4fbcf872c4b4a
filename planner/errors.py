"""
Planner error hierarchy.

Graph-construction errors (``DuplicateId``, ``UnknownNode``, ``CycleDetected``)
describe a static defect in the declared graph and abort a plan before any
resource is touched. ``UnresolvedReference`` means a consumer was scheduled
before the node it reads from, which is an ordering bug and equally fatal.
``ProvisioningFailure`` is the only runtime error: it is recorded on the plan
report for the failing node instead of being raised.
"""

from typing import Any, Iterable


class PlannerError(Exception):
    """Base class for every error raised by the planner core."""


class GraphError(PlannerError):
    """Static defect in the declared resource graph."""


class DuplicateId(GraphError):
    def __init__(self, node_id: str):
        super().__init__(f"duplicate id '{node_id}'")
        self.node_id = node_id


class UnknownNode(GraphError):
    def __init__(self, node_id: str, scope: str = "graph"):
        super().__init__(f"unknown node '{node_id}' in {scope}")
        self.node_id = node_id
        self.scope = scope


class CycleDetected(GraphError):
    """
    Adding an edge (or ordering the graph) would produce a cycle.

    ``cycle`` lists the node ids along the offending path, first and last
    element being the same id when the path is known.
    """

    def __init__(self, cycle: Iterable[str]):
        self.cycle = tuple(cycle)
        super().__init__(f"dependency cycle: {' -> '.join(self.cycle)}")


class UnresolvedReference(PlannerError):
    def __init__(self, reference: Any, reason: str):
        super().__init__(f"cannot resolve {reference}: {reason}")
        self.reference = reference
        self.reason = reason


class ProvisioningFailure(PlannerError):
    """
    The provisioning backend failed to materialize a node.

    Attributes:
        node_id: Id of the node that failed.
        kind: ResourceKind of the node.
        cause: The exception raised by the backend.
    """

    def __init__(self, node_id: str, kind: Any, cause: BaseException):
        kind_name = getattr(kind, "value", kind)
        super().__init__(f"{kind_name} '{node_id}' failed: {cause}")
        self.node_id = node_id
        self.kind = kind
        self.cause = cause


class InvalidTransition(PlannerError):
    def __init__(self, node_id: str, current: Any, target: Any):
        super().__init__(
            f"node '{node_id}' cannot move from {current.value} to {target.value}"
        )
        self.node_id = node_id
        self.current = current
        self.target = target
