"""Configuration data structures for collectorstack."""

from collectorstack.models.config import (
    CollectorConfig,
    CollectorStackConfig,
    LogConfig,
    RegistrySource,
    SynthesisConfig,
    TopologyConfig,
)

__all__ = [
    "CollectorConfig",
    "CollectorStackConfig",
    "LogConfig",
    "RegistrySource",
    "SynthesisConfig",
    "TopologyConfig",
]
