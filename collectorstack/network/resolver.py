"""Derive reachability rules from traffic edges.

Default-deny: a rule exists only for a port bound on a ``target`` or
``calls`` edge. External callers may only reach a load balancer; services
are reachable solely from the balancer fronting them, on a data port and a
separate health-check port.
"""

from __future__ import annotations

from typing import Any

from collectorstack.errors import ReachabilityError
from collectorstack.graph.dependency_graph import DependencyGraph
from collectorstack.graph.models import Edge, EdgeType, ReachabilityRule, ResourceKind
from collectorstack.observability.logging import get_logger

_log = get_logger("network.resolver")


class NetworkPolicyResolver:
    """Computes the minimal rule set for a graph's traffic edges."""

    def resolve(self, topology: Any) -> frozenset[ReachabilityRule]:
        """Return reachability rules for ``topology`` (a Topology or a DependencyGraph)."""
        graph: DependencyGraph = getattr(topology, "graph", topology)
        rules: set[ReachabilityRule] = set()

        for edge in graph.edges_of_type(EdgeType.TARGET):
            rules.update(self._target_rules(graph, edge))
        for edge in graph.edges_of_type(EdgeType.CALLS):
            rules.update(self._caller_rules(graph, edge))

        _log.debug("reachability_resolved", rules=len(rules))
        return frozenset(rules)

    def _target_rules(self, graph: DependencyGraph, edge: Edge) -> list[ReachabilityRule]:
        service = graph.node(edge.from_id)
        listener = graph.node(edge.to_id)
        if listener.kind is not ResourceKind.LISTENER:
            raise ReachabilityError(
                f"Target edge {service.id} -> {listener.id} must point at a listener, "
                f"not a {listener.kind.value}"
            )
        if edge.binding is None:
            raise ReachabilityError(f"Target edge {service.id} -> {listener.id} has no port binding")
        binding = edge.binding
        if binding.health_check_port is None or binding.health_check_port == binding.port:
            raise ReachabilityError(
                f"Target edge {service.id} -> {listener.id} needs a health-check port "
                f"distinct from data port {binding.port}"
            )

        balancers = [
            dep for dep in graph.dependencies(listener.id)
            if graph.node(dep).kind is ResourceKind.LOAD_BALANCER
        ]
        if len(balancers) != 1:
            raise ReachabilityError(
                f"Listener {listener.id} must attach to exactly one load balancer, found {len(balancers)}"
            )
        balancer = balancers[0]

        return [
            ReachabilityRule(
                source_node_id=balancer,
                target_node_id=service.id,
                port=binding.port,
                protocol=binding.protocol,
                description=f"Allow {balancer} to reach {service.id} data port",
            ),
            ReachabilityRule(
                source_node_id=balancer,
                target_node_id=service.id,
                port=binding.health_check_port,
                protocol=binding.protocol,
                description=f"Allow {balancer} to reach {service.id} health-check port",
            ),
        ]

    def _caller_rules(self, graph: DependencyGraph, edge: Edge) -> list[ReachabilityRule]:
        target = graph.node(edge.to_id)
        if target.kind is not ResourceKind.LOAD_BALANCER:
            raise ReachabilityError(
                f"{edge.from_id} may not call {target.id} ({target.kind.value}) directly; "
                "traffic must flow through a load balancer"
            )
        if edge.binding is None:
            raise ReachabilityError(f"Calls edge {edge.from_id} -> {target.id} has no port binding")
        return [
            ReachabilityRule(
                source_node_id=edge.from_id,
                target_node_id=target.id,
                port=edge.binding.port,
                protocol=edge.binding.protocol,
                description=f"Allow {edge.from_id} to reach {target.id} data port",
            )
        ]
