"""Collector pipeline topology assembly."""

from collectorstack.topology.builder import Topology, TopologyBuilder, build_topology

__all__ = ["Topology", "TopologyBuilder", "build_topology"]
