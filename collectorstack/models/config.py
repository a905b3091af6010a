"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

# Collector configuration shipped inside the package.
DEFAULT_ARTIFACT_DIR = Path(__file__).resolve().parents[1] / "otel"


class RegistrySource(StrEnum):
    """Where the collector image is pulled from."""

    PUBLIC_REGISTRY = "public-registry"
    PULL_THROUGH_CACHE = "pull-through-cache"


@dataclass(frozen=True)
class CollectorConfig:
    """Collector container settings."""

    image: str = "otel/opentelemetry-collector-contrib"
    image_tag: str = "latest"
    data_port: int = 4318
    health_check_port: int = 13133
    cpu: int = 512
    memory_mib: int = 1024
    desired_count: int = 2
    health_check_grace_seconds: int = 60
    deregistration_delay_seconds: int = 10
    config_object_key: str = "collector-confmap.yml"
    log_retention_days: int = 7


@dataclass(frozen=True)
class TopologyConfig:
    """Shape of the provisioned topology."""

    registry_source: RegistrySource = RegistrySource.PULL_THROUGH_CACHE
    include_debug_instance: bool = False
    include_function: bool = True
    artifact_dir: Path = DEFAULT_ARTIFACT_DIR
    max_azs: int = 2
    collector: CollectorConfig = field(default_factory=CollectorConfig)


@dataclass(frozen=True)
class SynthesisConfig:
    """Synthesizer settings."""

    max_workers: int = 1


@dataclass(frozen=True)
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass(frozen=True)
class CollectorStackConfig:
    """Top-level collectorstack configuration."""

    topology: TopologyConfig = field(default_factory=TopologyConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    log: LogConfig = field(default_factory=LogConfig)
