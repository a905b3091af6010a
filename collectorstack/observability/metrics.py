"""Prometheus metrics for synthesis runs."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

nodes_synthesized_total = Counter(
    "collectorstack_nodes_synthesized_total",
    "Nodes provisioned successfully",
    ["kind"],
)

synthesis_failures_total = Counter(
    "collectorstack_synthesis_failures_total",
    "Provisioning calls that failed",
    ["kind"],
)

nodes_deleted_total = Counter(
    "collectorstack_nodes_deleted_total",
    "Nodes removed during teardown",
    ["kind"],
)

node_synthesis_seconds = Histogram(
    "collectorstack_node_synthesis_seconds",
    "Wall time of a single provisioning call",
    ["kind"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)
