"""Shared fixtures for collectorstack integration tests.

Builds full topologies from fixed configuration maps so tests exercise the
builder, resolver and synthesizer together without any cloud access.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from collectorstack.config import MappingProvider
from collectorstack.models.config import RegistrySource, TopologyConfig
from collectorstack.topology.builder import Topology, TopologyBuilder

# ---------------------------------------------------------------------------
# Configuration helpers
# ---------------------------------------------------------------------------

ALL_VALUES = {
    "DOCKERHUB_USERNAME": "collector-bot",
    "DOCKERHUB_ACCESS_TOKEN": "dckr_pat_test",
    "HONEYCOMB_API_KEY": "hc-test-key",
}


def make_config(
    registry_source: RegistrySource = RegistrySource.PULL_THROUGH_CACHE,
    include_debug_instance: bool = False,
    include_function: bool = False,
) -> TopologyConfig:
    """TopologyConfig with sensible defaults for testing."""
    return TopologyConfig(
        registry_source=registry_source,
        include_debug_instance=include_debug_instance,
        include_function=include_function,
        artifact_dir=Path("/srv/otel"),
    )


def build(
    config: TopologyConfig | None = None,
    values: dict[str, str] | None = None,
) -> Topology:
    provider = MappingProvider(ALL_VALUES if values is None else values)
    return TopologyBuilder(config or make_config(), provider).build()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_topology() -> Topology:
    """Pull-through-cache variant, no debug instance, no function."""
    return build()


@pytest.fixture
def full_topology() -> Topology:
    """Every optional component enabled."""
    return build(make_config(include_debug_instance=True, include_function=True))


@pytest.fixture
def public_topology() -> Topology:
    return build(make_config(registry_source=RegistrySource.PUBLIC_REGISTRY))
