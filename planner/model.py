"""
Plain data describing desired resources.

A ``ResourceNode`` is the planner's view of one "declare this resource with
these properties" statement. Nodes carry no behaviour: the ``kind`` tag is
interpreted by the provisioning backend, ``params`` is opaque to the core
except for the ``OutputRef`` placeholders it may contain.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping


class ResourceKind(str, Enum):
    STORAGE = "Storage"
    CDN_DISTRIBUTION = "CDNDistribution"
    DNS_RECORD = "DNSRecord"
    CERTIFICATE = "Certificate"
    ACCESS_IDENTITY = "AccessIdentity"
    DEPLOYMENT = "Deployment"


class NodeState(str, Enum):
    PENDING = "Pending"
    MATERIALIZING = "Materializing"
    MATERIALIZED = "Materialized"
    FAILED = "Failed"
    # A Pending node that was never started because the run was cancelled.
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class OutputRef:
    """
    Placeholder for a live attribute of another node.

    The value only exists once ``node_id`` has been materialized. References
    created through ``StackGroup.export``/``import_ref`` also carry the
    exporting group and export name, used in error messages.
    """

    node_id: str
    attribute: str
    from_group: str | None = None
    export_name: str | None = None

    def __str__(self) -> str:
        if self.from_group is not None:
            return f"{self.from_group}.{self.export_name} ({self.node_id}.{self.attribute})"
        return f"{self.node_id}.{self.attribute}"


@dataclass(frozen=True, eq=False)
class ResourceNode:
    """
    Immutable description of one desired resource.

    Attributes:
        id: Unique id within the graph; backends also use it to derive
            logical resource names.
        kind: Resource kind, selects how the backend materializes the node.
        params: Desired properties. Stored read-only; may contain OutputRef
            values at any nesting depth.
        depends_on: Ids of nodes that must be materialized first. References
            found in ``params`` are dependencies too and need not be repeated.

    Nodes compare and hash by identity; two declarations with equal fields
    are still distinct nodes.
    """

    id: str
    kind: ResourceKind
    params: Mapping[str, Any] = field(default_factory=dict)
    depends_on: frozenset[str] = frozenset()

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__.
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    def upstream(self) -> frozenset[str]:
        """Declared dependencies plus every node referenced from params."""
        referenced = {ref.node_id for ref in find_references(self.params)}
        return self.depends_on | referenced


def find_references(value: Any) -> Iterator[OutputRef]:
    """Yield every OutputRef contained in a params structure."""
    if isinstance(value, OutputRef):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from find_references(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from find_references(item)


def resolve_references(value: Any, resolver: Callable[[OutputRef], Any]) -> Any:
    """
    Return a copy of ``value`` with each OutputRef replaced by ``resolver(ref)``.

    Mappings come back as plain dicts and sequences keep their type, so the
    result can be handed to a backend as ordinary keyword data.
    """
    if isinstance(value, OutputRef):
        return resolver(value)
    if isinstance(value, Mapping):
        return {key: resolve_references(item, resolver) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return type(value)(resolve_references(item, resolver) for item in value)
    return value


def ordered(ids: Iterable[str], index: Mapping[str, int]) -> list[str]:
    """Sort node ids by declaration index."""
    return sorted(ids, key=index.__getitem__)
