"""Data structures for the resource dependency graph."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from collectorstack.errors import UnknownOutputError


class ResourceKind(StrEnum):
    """Provisionable unit types."""

    NETWORK = "network"
    SECRET = "secret"
    ROLE = "role"
    REGISTRY_CACHE_RULE = "registry_cache_rule"
    REGISTRY_POLICY = "registry_policy"
    IMAGE_REPOSITORY = "image_repository"
    CLUSTER = "cluster"
    OBJECT_STORE = "object_store"
    OBJECT_DEPLOYMENT = "object_deployment"
    COMPUTE_TASK = "compute_task"
    COMPUTE_SERVICE = "compute_service"
    LOAD_BALANCER = "load_balancer"
    LISTENER = "listener"
    INSTANCE = "instance"
    FUNCTION = "function"


# Output names each kind reports once synthesized.
DEFAULT_OUTPUTS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.NETWORK: ("vpc_id", "public_subnet_ids"),
    ResourceKind.SECRET: ("arn",),
    ResourceKind.ROLE: ("arn",),
    ResourceKind.REGISTRY_CACHE_RULE: ("repository_prefix", "registry_id", "region"),
    ResourceKind.REGISTRY_POLICY: ("registry_id",),
    ResourceKind.IMAGE_REPOSITORY: ("repository_uri",),
    ResourceKind.CLUSTER: ("cluster_arn",),
    ResourceKind.OBJECT_STORE: ("bucket_name", "arn"),
    ResourceKind.OBJECT_DEPLOYMENT: ("object_url",),
    ResourceKind.COMPUTE_TASK: ("task_definition_arn",),
    ResourceKind.COMPUTE_SERVICE: ("service_arn",),
    ResourceKind.LOAD_BALANCER: ("arn", "dns_name"),
    ResourceKind.LISTENER: ("arn", "endpoint_url"),
    ResourceKind.INSTANCE: ("instance_id",),
    ResourceKind.FUNCTION: ("function_arn",),
}


class EdgeType(StrEnum):
    """Why one node must wait for another."""

    REFERENCE = "reference"  # spec embeds an OutputRef of the target
    EXPLICIT = "explicit"  # declared ordering with no data dependency
    TARGET = "target"  # service registered behind a listener
    CALLS = "calls"  # source sends traffic to target


class TransportProtocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"


@dataclass(frozen=True)
class OutputRef:
    """Reference to a declared output of another node.

    Embedding one anywhere in a node's spec makes that node depend on ``node_id``.
    """

    node_id: str
    name: str

    def __str__(self) -> str:
        return f"${{{self.node_id}.{self.name}}}"


@dataclass(frozen=True, init=False)
class Concat:
    """String built from literals and OutputRefs once upstream outputs exist."""

    parts: tuple[str | OutputRef, ...]

    def __init__(self, *parts: str | OutputRef) -> None:
        object.__setattr__(self, "parts", tuple(parts))

    def __str__(self) -> str:
        return "".join(str(p) for p in self.parts)


@dataclass(frozen=True)
class PortBinding:
    """Port a traffic edge is bound to, with an optional separate health-check port."""

    port: int
    protocol: TransportProtocol = TransportProtocol.TCP
    health_check_port: int | None = None


@dataclass
class ResourceNode:
    """One provisionable unit.

    ``outputs`` stays empty until the node is synthesized and is written only
    by the Synthesizer.
    """

    id: str
    kind: ResourceKind
    spec: Mapping[str, Any] = field(default_factory=dict)
    declared_outputs: tuple[str, ...] = ()
    depends_on: frozenset[str] = frozenset()
    outputs: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.declared_outputs:
            self.declared_outputs = DEFAULT_OUTPUTS.get(self.kind, ())
        self.depends_on = frozenset(self.depends_on)

    def ref(self, name: str) -> OutputRef:
        """Return a reference to output ``name``; it must be declared."""
        if name not in self.declared_outputs:
            raise UnknownOutputError(self.id, name)
        return OutputRef(self.id, name)

    @property
    def synthesized(self) -> bool:
        return bool(self.outputs)

    @property
    def complete(self) -> bool:
        """True once every declared output has been reported."""
        return all(name in self.outputs for name in self.declared_outputs)


@dataclass(frozen=True)
class Edge:
    """``to_id`` must be ready before ``from_id`` is synthesized."""

    from_id: str
    to_id: str
    edge_type: EdgeType = EdgeType.EXPLICIT
    binding: PortBinding | None = None


@dataclass(frozen=True, order=True)
class ReachabilityRule:
    """Permission for ``source_node_id`` to reach ``target_node_id`` on ``port``."""

    source_node_id: str
    target_node_id: str
    port: int
    protocol: TransportProtocol = TransportProtocol.TCP
    description: str = field(default="", compare=False)


def iter_refs(value: Any) -> Iterator[OutputRef]:
    """Yield every OutputRef nested anywhere inside ``value``."""
    if isinstance(value, OutputRef):
        yield value
    elif isinstance(value, Concat):
        for part in value.parts:
            yield from iter_refs(part)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from iter_refs(item)


def resolve_value(value: Any, lookup: Mapping[str, Mapping[str, Any]]) -> Any:
    """Replace OutputRefs/Concats in ``value`` with concrete outputs.

    ``lookup`` maps node id to that node's outputs. Raises KeyError when a
    referenced output has not been produced.
    """
    if isinstance(value, OutputRef):
        return lookup[value.node_id][value.name]
    if isinstance(value, Concat):
        return "".join(str(resolve_value(p, lookup)) for p in value.parts)
    if isinstance(value, Mapping):
        return {k: resolve_value(v, lookup) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_value(v, lookup) for v in value]
    if isinstance(value, tuple):
        return tuple(resolve_value(v, lookup) for v in value)
    if isinstance(value, (set, frozenset)):
        return type(value)(resolve_value(v, lookup) for v in value)
    return value
