"""Concrete topology for the collector pipeline.

Wiring, dependencies first:

    Secret -> RegistryCacheRule -> RegistryPolicy -> ImageRepository   (pull-through cache only)
    ObjectStore -> ObjectDeployment -> ComputeTask -> ComputeService
    LoadBalancer -> Listener -> ComputeService (target registration)
    Listener -> Function, LoadBalancer -> debug Instance                 (optional)

Most edges are inferred from output references. The service's dependency on
the registry policy has no data behind it (the service can begin scheduling
before policy propagation completes) and is declared explicitly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from collectorstack.config import (
    DOCKERHUB_ACCESS_TOKEN,
    DOCKERHUB_USERNAME,
    HONEYCOMB_API_KEY,
    ConfigurationProvider,
    require_values,
    required_names,
)
from collectorstack.graph.dependency_graph import DependencyGraph
from collectorstack.graph.models import (
    Concat,
    Edge,
    EdgeType,
    OutputRef,
    PortBinding,
    ReachabilityRule,
    ResourceKind,
    ResourceNode,
)
from collectorstack.models.config import RegistrySource, TopologyConfig
from collectorstack.network.resolver import NetworkPolicyResolver
from collectorstack.observability.logging import get_logger

_log = get_logger("topology.builder")

# Secrets Manager name prefix the registry requires for pull-through cache credentials.
PULL_THROUGH_CACHE_SECRET_PREFIX = "ecr-pullthroughcache/"

CONTAINER_NAME = "otel-collector"

NETWORK = "Vpc"
CREDENTIALS = "DockerHubCredentials"
EXECUTION_ROLE = "TaskExecutionRole"
CACHE_RULE = "DockerHubCacheRule"
REGISTRY_POLICY = "DockerHubCacheRegistryPolicy"
IMAGE_REPOSITORY = "CollectorImageRepository"
CLUSTER = "CollectorCluster"
CONFIG_BUCKET = "ConfmapBucket"
CONFIG_DEPLOYMENT = "ConfmapDeployment"
TASK_ROLE = "CollectorTaskRole"
TASK_DEFINITION = "CollectorTaskDefinition"
LOAD_BALANCER = "CollectorLoadBalancer"
LISTENER = "OtlpListener"
SERVICE = "CollectorService"
DEBUG_INSTANCE = "DebugInstance"
FUNCTION = "TracedFunction"


@dataclass(frozen=True)
class Topology:
    """A fully assembled, sealed graph plus its derived reachability rules."""

    graph: DependencyGraph
    rules: tuple[ReachabilityRule, ...]
    config: TopologyConfig
    endpoint: OutputRef
    debug_instance: OutputRef | None = None

    def topological_order(self) -> list[str]:
        return self.graph.topological_order()

    def teardown_order(self) -> list[str]:
        return self.graph.teardown_order()

    @property
    def nodes(self) -> list[ResourceNode]:
        return self.graph.nodes

    @property
    def edges(self) -> list[Edge]:
        return self.graph.edges

    def rules_for(self, source: str | None = None, target: str | None = None) -> list[ReachabilityRule]:
        """Rules filtered by source and/or target node id."""
        return [
            r for r in self.rules
            if (source is None or r.source_node_id == source)
            and (target is None or r.target_node_id == target)
        ]


class TopologyBuilder:
    """Assembles the collector topology for one configuration.

    Required configuration values are validated in full before the first
    node is created; ``graph`` stays empty if validation fails.
    """

    def __init__(
        self,
        config: TopologyConfig,
        provider: ConfigurationProvider,
        resolver: NetworkPolicyResolver | None = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._resolver = resolver or NetworkPolicyResolver()
        self.graph = DependencyGraph()

    def build(self) -> Topology:
        values = require_values(self._provider, required_names(self._config))
        cfg = self._config
        collector = cfg.collector
        graph = self.graph

        network = graph.add_node(
            ResourceNode(NETWORK, ResourceKind.NETWORK, {"max_azs": cfg.max_azs})
        )
        execution_role = graph.add_node(
            ResourceNode(EXECUTION_ROLE, ResourceKind.ROLE, {"assumed_by": "ecs-tasks.amazonaws.com"})
        )

        if cfg.registry_source is RegistrySource.PULL_THROUGH_CACHE:
            policy, image = self._add_registry_cache(values, execution_role)
            cache_dependencies = frozenset({policy.id})
        else:
            image = f"{collector.image}:{collector.image_tag}"
            cache_dependencies = frozenset()

        cluster = graph.add_node(
            ResourceNode(CLUSTER, ResourceKind.CLUSTER, {"vpc_id": network.ref("vpc_id")})
        )
        deployment, task_role = self._add_config_artifact()

        task = graph.add_node(
            ResourceNode(
                TASK_DEFINITION,
                ResourceKind.COMPUTE_TASK,
                {
                    "compatibility": "fargate",
                    "cpu": collector.cpu,
                    "memory_mib": collector.memory_mib,
                    "execution_role_arn": execution_role.ref("arn"),
                    "task_role_arn": task_role.ref("arn"),
                    "container": {
                        "name": CONTAINER_NAME,
                        "image": image,
                        "command": ["--config", deployment.ref("object_url")],
                        "environment": {HONEYCOMB_API_KEY: values[HONEYCOMB_API_KEY]},
                        "port_mappings": [
                            {"name": "otlp", "container_port": collector.data_port, "protocol": "tcp"},
                            {
                                "name": "healthcheck",
                                "container_port": collector.health_check_port,
                                "protocol": "tcp",
                            },
                        ],
                        "logging": {
                            "stream_prefix": f"/ecs/{CONTAINER_NAME}",
                            "retention_days": collector.log_retention_days,
                        },
                    },
                },
            )
        )

        balancer = graph.add_node(
            ResourceNode(
                LOAD_BALANCER,
                ResourceKind.LOAD_BALANCER,
                {
                    "vpc_id": network.ref("vpc_id"),
                    "subnet_ids": network.ref("public_subnet_ids"),
                    "internet_facing": True,
                },
            )
        )
        listener = graph.add_node(
            ResourceNode(
                LISTENER,
                ResourceKind.LISTENER,
                {
                    "load_balancer_arn": balancer.ref("arn"),
                    "load_balancer_dns": balancer.ref("dns_name"),
                    "port": collector.data_port,
                    "protocol": "http",
                },
            )
        )

        service = graph.add_node(
            ResourceNode(
                SERVICE,
                ResourceKind.COMPUTE_SERVICE,
                {
                    "cluster_arn": cluster.ref("cluster_arn"),
                    "task_definition_arn": task.ref("task_definition_arn"),
                    "subnet_ids": network.ref("public_subnet_ids"),
                    "desired_count": collector.desired_count,
                    "assign_public_ip": True,
                    "health_check_grace_seconds": collector.health_check_grace_seconds,
                    "load_balancer": {
                        "listener_arn": listener.ref("arn"),
                        "container_name": CONTAINER_NAME,
                        "container_port": collector.data_port,
                        "protocol": "http",
                        "health_check": {
                            "path": "/",
                            "port": collector.health_check_port,
                            "healthy_http_codes": "200",
                        },
                        "deregistration_delay_seconds": collector.deregistration_delay_seconds,
                    },
                },
                depends_on=cache_dependencies | {deployment.id},
            )
        )
        graph.add_edge(
            service.id,
            listener.id,
            EdgeType.TARGET,
            PortBinding(collector.data_port, health_check_port=collector.health_check_port),
        )

        debug_ref = None
        if cfg.include_debug_instance:
            debug = self._add_debug_instance(network, balancer)
            debug_ref = debug.ref("instance_id")
        if cfg.include_function:
            self._add_function(listener, balancer)

        rules = tuple(sorted(self._resolver.resolve(graph)))
        graph.seal()
        _log.info(
            "topology_built",
            registry_source=cfg.registry_source.value,
            nodes=len(graph),
            edges=len(graph.edges),
            rules=len(rules),
        )
        return Topology(
            graph=graph,
            rules=rules,
            config=cfg,
            endpoint=listener.ref("endpoint_url"),
            debug_instance=debug_ref,
        )

    # ------------------------------------------------------------------
    # Sub-assemblies
    # ------------------------------------------------------------------

    def _add_registry_cache(
        self, values: dict[str, str], execution_role: ResourceNode
    ) -> tuple[ResourceNode, Concat]:
        """Secret -> cache rule -> registry policy -> image repository."""
        graph = self.graph
        collector = self._config.collector

        secret = graph.add_node(
            ResourceNode(
                CREDENTIALS,
                ResourceKind.SECRET,
                {
                    "name": f"{PULL_THROUGH_CACHE_SECRET_PREFIX}dockerhub",
                    "secret_string": json.dumps(
                        {
                            "username": values[DOCKERHUB_USERNAME],
                            "accessToken": values[DOCKERHUB_ACCESS_TOKEN],
                        }
                    ),
                    "removal_policy": "destroy",
                },
            )
        )
        rule = graph.add_node(
            ResourceNode(
                CACHE_RULE,
                ResourceKind.REGISTRY_CACHE_RULE,
                {
                    "repository_prefix": "dockerhub",
                    "upstream_registry": "docker-hub",
                    "upstream_registry_url": "registry-1.docker.io",
                    "credential_arn": secret.ref("arn"),
                },
            )
        )
        policy = graph.add_node(
            ResourceNode(
                REGISTRY_POLICY,
                ResourceKind.REGISTRY_POLICY,
                {
                    "policy": {
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Sid": "AllowDockerhubCache",
                                "Effect": "Allow",
                                "Principal": {"AWS": execution_role.ref("arn")},
                                "Action": ["ecr:CreateRepository", "ecr:BatchImportUpstreamImage"],
                                "Resource": Concat(
                                    "arn:aws:ecr:",
                                    rule.ref("region"),
                                    ":",
                                    rule.ref("registry_id"),
                                    ":repository/",
                                    rule.ref("repository_prefix"),
                                    "/*",
                                ),
                            }
                        ],
                    }
                },
            )
        )
        repository = graph.add_node(
            ResourceNode(
                IMAGE_REPOSITORY,
                ResourceKind.IMAGE_REPOSITORY,
                {
                    "repository_name": Concat(rule.ref("repository_prefix"), "/", collector.image),
                    "removal_policy": "destroy",
                    "empty_on_delete": True,
                },
                depends_on=frozenset({policy.id}),
            )
        )
        image = Concat(repository.ref("repository_uri"), ":", collector.image_tag)
        return policy, image

    def _add_config_artifact(self) -> tuple[ResourceNode, ResourceNode]:
        """Bucket, collector config deployment and the task role that reads it."""
        graph = self.graph
        bucket = graph.add_node(
            ResourceNode(
                CONFIG_BUCKET,
                ResourceKind.OBJECT_STORE,
                {"removal_policy": "destroy", "auto_delete_objects": True},
            )
        )
        deployment = graph.add_node(
            ResourceNode(
                CONFIG_DEPLOYMENT,
                ResourceKind.OBJECT_DEPLOYMENT,
                {
                    "sources": [str(self._config.artifact_dir)],
                    "destination_bucket": bucket.ref("bucket_name"),
                    "object_key": self._config.collector.config_object_key,
                },
            )
        )
        task_role = graph.add_node(
            ResourceNode(
                TASK_ROLE,
                ResourceKind.ROLE,
                {
                    "assumed_by": "ecs-tasks.amazonaws.com",
                    "inline_policies": {
                        "S3Access": {
                            "actions": ["s3:GetObject"],
                            "resources": [Concat(bucket.ref("arn"), "/*")],
                        }
                    },
                },
            )
        )
        return deployment, task_role

    def _add_debug_instance(self, network: ResourceNode, balancer: ResourceNode) -> ResourceNode:
        port = self._config.collector.data_port
        debug = self.graph.add_node(
            ResourceNode(
                DEBUG_INSTANCE,
                ResourceKind.INSTANCE,
                {
                    "subnet_ids": network.ref("public_subnet_ids"),
                    "instance_type": "t3.micro",
                    "machine_image": "amazon-linux-2",
                    "managed_policies": ["AmazonSSMManagedInstanceCore"],
                    "collector_url": Concat("http://", balancer.ref("dns_name"), f":{port}"),
                },
            )
        )
        self.graph.add_edge(debug.id, balancer.id, EdgeType.CALLS, PortBinding(port))
        return debug

    def _add_function(self, listener: ResourceNode, balancer: ResourceNode) -> ResourceNode:
        function = self.graph.add_node(
            ResourceNode(
                FUNCTION,
                ResourceKind.FUNCTION,
                {
                    "runtime": "python3.12",
                    "handler": "handler.main",
                    "environment": {
                        "OTEL_EXPORTER_OTLP_ENDPOINT": listener.ref("endpoint_url"),
                        "OTEL_EXPORTER_OTLP_PROTOCOL": "http/protobuf",
                        "OTEL_SERVICE_NAME": "traced-function",
                    },
                },
            )
        )
        self.graph.add_edge(
            function.id, balancer.id, EdgeType.CALLS, PortBinding(self._config.collector.data_port)
        )
        return function


def build_topology(config: TopologyConfig, provider: ConfigurationProvider) -> Topology:
    return TopologyBuilder(config, provider).build()
