"""Integration tests for TopologyBuilder + NetworkPolicyResolver.

Covers the mandatory ordering chains, the explicit correctness edges,
reachability rules per variant and fail-fast configuration validation.
"""

from __future__ import annotations

import dataclasses

import pytest

from collectorstack.config import MappingProvider
from collectorstack.errors import ConfigurationError, GraphSealedError, ReachabilityError
from collectorstack.graph.models import (
    Concat,
    EdgeType,
    OutputRef,
    ReachabilityRule,
    ResourceKind,
    ResourceNode,
    TransportProtocol,
)
from collectorstack.models.config import CollectorConfig, RegistrySource
from collectorstack.topology import builder as ids
from collectorstack.topology.builder import Topology, TopologyBuilder

from .conftest import ALL_VALUES, build, make_config

# ---------------------------------------------------------------------------
# Pull-through cache chain
# ---------------------------------------------------------------------------


class TestRegistryCacheChain:
    def test_chain_edges_present(self, cache_topology: Topology) -> None:
        graph = cache_topology.graph
        assert graph.has_edge(ids.CACHE_RULE, ids.CREDENTIALS)
        assert graph.has_edge(ids.REGISTRY_POLICY, ids.CACHE_RULE)
        assert graph.has_edge(ids.IMAGE_REPOSITORY, ids.REGISTRY_POLICY)
        assert graph.has_edge(ids.IMAGE_REPOSITORY, ids.CACHE_RULE)
        assert graph.has_edge(ids.SERVICE, ids.REGISTRY_POLICY, EdgeType.EXPLICIT)

    def test_service_policy_edge_has_no_data_dependency(self, cache_topology: Topology) -> None:
        graph = cache_topology.graph
        assert not graph.has_edge(ids.SERVICE, ids.REGISTRY_POLICY, EdgeType.REFERENCE)

    def test_policy_embeds_prefix_and_role(self, cache_topology: Topology) -> None:
        graph = cache_topology.graph
        assert graph.has_edge(ids.REGISTRY_POLICY, ids.EXECUTION_ROLE, EdgeType.REFERENCE)
        statement = graph.node(ids.REGISTRY_POLICY).spec["policy"]["Statement"][0]
        assert statement["Principal"]["AWS"] == OutputRef(ids.EXECUTION_ROLE, "arn")
        rule = ids.CACHE_RULE
        assert statement["Resource"] == Concat(
            "arn:aws:ecr:",
            OutputRef(rule, "region"),
            ":",
            OutputRef(rule, "registry_id"),
            ":repository/",
            OutputRef(rule, "repository_prefix"),
            "/*",
        )

    def test_order_respects_chain(self, cache_topology: Topology) -> None:
        order = cache_topology.topological_order()
        chain = [ids.CREDENTIALS, ids.CACHE_RULE, ids.REGISTRY_POLICY, ids.IMAGE_REPOSITORY, ids.SERVICE]
        positions = [order.index(node_id) for node_id in chain]
        assert positions == sorted(positions)

    def test_secret_carries_credentials_verbatim(self, cache_topology: Topology) -> None:
        secret = cache_topology.graph.node(ids.CREDENTIALS)
        assert secret.spec["name"] == "ecr-pullthroughcache/dockerhub"
        assert "dckr_pat_test" in secret.spec["secret_string"]

    def test_public_registry_has_no_cache_nodes(self, public_topology: Topology) -> None:
        graph = public_topology.graph
        for node_id in (ids.CREDENTIALS, ids.CACHE_RULE, ids.REGISTRY_POLICY, ids.IMAGE_REPOSITORY):
            assert node_id not in graph
        task = graph.node(ids.TASK_DEFINITION)
        assert task.spec["container"]["image"] == "otel/opentelemetry-collector-contrib:latest"
        assert graph.dependencies(ids.SERVICE) == [
            ids.NETWORK,
            ids.CLUSTER,
            ids.CONFIG_DEPLOYMENT,
            ids.TASK_DEFINITION,
            ids.LISTENER,
        ]


# ---------------------------------------------------------------------------
# Configuration artifact chain
# ---------------------------------------------------------------------------


class TestConfigArtifactChain:
    def test_deployment_precedes_service(self, cache_topology: Topology) -> None:
        graph = cache_topology.graph
        assert graph.has_edge(ids.CONFIG_DEPLOYMENT, ids.CONFIG_BUCKET)
        assert graph.has_edge(ids.SERVICE, ids.CONFIG_DEPLOYMENT, EdgeType.EXPLICIT)
        order = cache_topology.topological_order()
        assert order.index(ids.CONFIG_BUCKET) < order.index(ids.CONFIG_DEPLOYMENT) < order.index(ids.SERVICE)

    def test_task_command_references_deployed_object(self, cache_topology: Topology) -> None:
        graph = cache_topology.graph
        task = graph.node(ids.TASK_DEFINITION)
        assert task.spec["container"]["command"] == ["--config", OutputRef(ids.CONFIG_DEPLOYMENT, "object_url")]
        assert graph.has_edge(ids.TASK_DEFINITION, ids.CONFIG_DEPLOYMENT, EdgeType.REFERENCE)

    def test_artifact_dir_passed_verbatim(self, cache_topology: Topology) -> None:
        deployment = cache_topology.graph.node(ids.CONFIG_DEPLOYMENT)
        assert deployment.spec["sources"] == ["/srv/otel"]


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------


class TestReachability:
    def test_cache_variant_has_exactly_two_service_rules(self, cache_topology: Topology) -> None:
        assert set(cache_topology.rules) == {
            ReachabilityRule(ids.LOAD_BALANCER, ids.SERVICE, 4318, TransportProtocol.TCP),
            ReachabilityRule(ids.LOAD_BALANCER, ids.SERVICE, 13133, TransportProtocol.TCP),
        }

    def test_only_the_balancer_reaches_the_service(self, full_topology: Topology) -> None:
        sources = {r.source_node_id for r in full_topology.rules_for(target=ids.SERVICE)}
        assert sources == {ids.LOAD_BALANCER}

    def test_debug_instance_adds_one_rule_to_balancer(self) -> None:
        without = build(make_config())
        with_debug = build(make_config(include_debug_instance=True))
        added = set(with_debug.rules) - set(without.rules)
        assert added == {ReachabilityRule(ids.DEBUG_INSTANCE, ids.LOAD_BALANCER, 4318)}
        assert with_debug.rules_for(source=ids.DEBUG_INSTANCE, target=ids.SERVICE) == []

    def test_debug_instance_output_is_exposed(self) -> None:
        topology = build(make_config(include_debug_instance=True))
        assert topology.debug_instance == OutputRef(ids.DEBUG_INSTANCE, "instance_id")

    def test_function_reaches_balancer_data_port(self, full_topology: Topology) -> None:
        assert full_topology.rules_for(source=ids.FUNCTION) == [
            ReachabilityRule(ids.FUNCTION, ids.LOAD_BALANCER, 4318)
        ]

    def test_function_exports_to_listener_endpoint(self, full_topology: Topology) -> None:
        graph = full_topology.graph
        env = graph.node(ids.FUNCTION).spec["environment"]
        assert env["OTEL_EXPORTER_OTLP_ENDPOINT"] == full_topology.endpoint
        assert graph.has_edge(ids.FUNCTION, ids.LISTENER, EdgeType.REFERENCE)

    def test_target_edge_binds_both_ports(self, cache_topology: Topology) -> None:
        (edge,) = cache_topology.graph.edges_of_type(EdgeType.TARGET)
        assert (edge.from_id, edge.to_id) == (ids.SERVICE, ids.LISTENER)
        assert edge.binding is not None
        assert (edge.binding.port, edge.binding.health_check_port) == (4318, 13133)

    def test_rules_are_sorted_and_unique(self, full_topology: Topology) -> None:
        assert list(full_topology.rules) == sorted(set(full_topology.rules))

    def test_shared_data_and_health_port_rejected(self) -> None:
        config = dataclasses.replace(make_config(), collector=CollectorConfig(health_check_port=4318))
        with pytest.raises(ReachabilityError, match="distinct from data port"):
            build(config)


# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------


class TestConfigurationValidation:
    def test_missing_key_aborts_before_any_node(self) -> None:
        values = {k: v for k, v in ALL_VALUES.items() if k != "HONEYCOMB_API_KEY"}
        builder = TopologyBuilder(make_config(), MappingProvider(values))
        with pytest.raises(ConfigurationError) as exc_info:
            builder.build()
        assert exc_info.value.missing == ("HONEYCOMB_API_KEY",)
        assert len(builder.graph) == 0

    def test_all_missing_names_reported_at_once(self) -> None:
        builder = TopologyBuilder(make_config(), MappingProvider({}))
        with pytest.raises(ConfigurationError) as exc_info:
            builder.build()
        assert exc_info.value.missing == ("DOCKERHUB_USERNAME", "DOCKERHUB_ACCESS_TOKEN", "HONEYCOMB_API_KEY")
        assert "DOCKERHUB_USERNAME" in str(exc_info.value)
        assert len(builder.graph) == 0

    def test_public_registry_needs_no_registry_credentials(self) -> None:
        topology = build(
            make_config(registry_source=RegistrySource.PUBLIC_REGISTRY),
            values={"HONEYCOMB_API_KEY": "hc-test-key"},
        )
        assert ids.SERVICE in topology.graph

    def test_empty_value_counts_as_missing(self) -> None:
        values = dict(ALL_VALUES, DOCKERHUB_ACCESS_TOKEN="")
        with pytest.raises(ConfigurationError) as exc_info:
            build(values=values)
        assert exc_info.value.missing == ("DOCKERHUB_ACCESS_TOKEN",)


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


class TestTopologyImmutability:
    def test_graph_is_sealed(self, cache_topology: Topology) -> None:
        with pytest.raises(GraphSealedError):
            cache_topology.graph.add_node(ResourceNode("Extra", ResourceKind.SECRET))

    def test_every_node_has_empty_outputs(self, full_topology: Topology) -> None:
        assert all(not node.synthesized for node in full_topology.nodes)

    def test_build_is_deterministic(self) -> None:
        first = build(make_config(include_debug_instance=True, include_function=True))
        second = build(make_config(include_debug_instance=True, include_function=True))
        assert first.topological_order() == second.topological_order()
        assert first.rules == second.rules
