"""
Declarative resource-graph planner.

Resources are declared as immutable ``ResourceNode`` values in a
``DependencyGraph``, optionally partitioned into ``StackGroup``s that pass
live attributes to each other through exports. The ``Planner`` materializes
the graph in dependency order through a ``ProvisioningBackend``:

- **DependencyGraph**: nodes, edges, cycle checks, deterministic order.
- **StackGroup**: deployable units with exports, imports and group ordering.
- **Planner**: ordering, reference resolution, change detection, failure
  isolation, optional concurrency and cancellation.
- **ProvisioningBackend**: the boundary to whatever actually creates
  resources; ``InMemoryBackend`` is a stand-in for dry runs.

The package performs no I/O and does not depend on any cloud SDK.
"""

from planner.backend import ChangeStatus, InMemoryBackend, ProvisioningBackend
from planner.errors import (
    CycleDetected,
    DuplicateId,
    GraphError,
    InvalidTransition,
    PlannerError,
    ProvisioningFailure,
    UnknownNode,
    UnresolvedReference,
)
from planner.graph import DependencyGraph
from planner.model import NodeState, OutputRef, ResourceKind, ResourceNode
from planner.planner import Planner
from planner.report import Action, PlanEntry, PlanReport
from planner.stack import StackGroup
from planner.state import NodeRecord, StateTable

__all__ = [
    "Action",
    "ChangeStatus",
    "CycleDetected",
    "DependencyGraph",
    "DuplicateId",
    "GraphError",
    "InMemoryBackend",
    "InvalidTransition",
    "NodeRecord",
    "NodeState",
    "OutputRef",
    "PlanEntry",
    "PlanReport",
    "Planner",
    "PlannerError",
    "ProvisioningBackend",
    "ProvisioningFailure",
    "ResourceKind",
    "ResourceNode",
    "StackGroup",
    "StateTable",
    "UnknownNode",
    "UnresolvedReference",
]
