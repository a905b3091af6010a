"""Resource dependency graph.

Nodes are provisionable resources; edges say which resources must be ready
before another is synthesized. Edges are inferred from output references in
a node's spec and may also be declared explicitly.
"""

from collectorstack.graph.dependency_graph import DependencyGraph
from collectorstack.graph.models import (
    DEFAULT_OUTPUTS,
    Concat,
    Edge,
    EdgeType,
    OutputRef,
    PortBinding,
    ReachabilityRule,
    ResourceKind,
    ResourceNode,
    TransportProtocol,
)

__all__ = [
    "DEFAULT_OUTPUTS",
    "Concat",
    "DependencyGraph",
    "Edge",
    "EdgeType",
    "OutputRef",
    "PortBinding",
    "ReachabilityRule",
    "ResourceKind",
    "ResourceNode",
    "TransportProtocol",
]
