"""
Provisioning backend boundary.

The planner never talks to a cloud API. It hands each node's kind and
resolved params to a ``ProvisioningBackend`` and keeps whatever live
attributes come back. ``InMemoryBackend`` materializes nothing and is used
for dry runs and tests.
"""

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, Mapping

from planner.model import ResourceKind
from planner.state import NodeRecord

DEFAULT_ATTRIBUTES: tuple[str, ...] = ("id", "arn")


class ChangeStatus(str, Enum):
    CHANGED = "Changed"
    UNCHANGED = "Unchanged"


class ProvisioningBackend(ABC):
    @abstractmethod
    def materialize(
        self,
        kind: ResourceKind,
        params: Mapping[str, Any],
        node_id: str,
    ) -> Mapping[str, Any]:
        """
        Create or update the resource described by ``params``.

        Args:
            kind: Kind of resource to materialize.
            params: Desired properties with every reference already resolved.
            node_id: Id of the node, for deriving logical resource names.

        Returns:
            Live attributes of the resource (generated ids, ARNs, hostnames).
            Other nodes read these through OutputRefs.
        """

    @abstractmethod
    def diff(
        self,
        kind: ResourceKind,
        params: Mapping[str, Any],
        previous: NodeRecord,
    ) -> ChangeStatus:
        """Compare desired params against what was last applied."""


class InMemoryBackend(ProvisioningBackend):
    """
    Backend that records calls and fabricates live attributes.

    Args:
        attributes: Attribute names to report per kind. Kinds not listed
            report DEFAULT_ATTRIBUTES. Values are ``"<node_id>.<attribute>"``.
        failures: Node ids whose materialization raises RuntimeError.
    """

    def __init__(
        self,
        attributes: Mapping[ResourceKind, Iterable[str]] | None = None,
        failures: Iterable[str] = (),
    ):
        self._attributes = {kind: tuple(names) for kind, names in (attributes or {}).items()}
        self.failures = set(failures)
        self.calls: list[tuple[str, ResourceKind, dict[str, Any]]] = []
        self._lock = threading.Lock()

    @property
    def materialized_ids(self) -> list[str]:
        with self._lock:
            return [node_id for node_id, _, _ in self.calls]

    def materialize(
        self,
        kind: ResourceKind,
        params: Mapping[str, Any],
        node_id: str,
    ) -> dict[str, Any]:
        with self._lock:
            self.calls.append((node_id, kind, dict(params)))
        if node_id in self.failures:
            raise RuntimeError(f"simulated failure for {node_id}")
        names = self._attributes.get(kind, DEFAULT_ATTRIBUTES)
        return {name: f"{node_id}.{name}" for name in names}

    def diff(
        self,
        kind: ResourceKind,
        params: Mapping[str, Any],
        previous: NodeRecord,
    ) -> ChangeStatus:
        if previous.kind is not kind or dict(previous.params) != dict(params):
            return ChangeStatus.CHANGED
        return ChangeStatus.UNCHANGED
