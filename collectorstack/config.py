"""Configuration loading.

Settings come from COLLECTORSTACK_* environment variables. Secret values
(registry credentials, exporter API key) are read unprefixed through a
ConfigurationProvider so tests can inject fixed maps.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from collectorstack.errors import ConfigurationError
from collectorstack.models.config import (
    DEFAULT_ARTIFACT_DIR,
    CollectorConfig,
    CollectorStackConfig,
    LogConfig,
    RegistrySource,
    SynthesisConfig,
    TopologyConfig,
)

DOCKERHUB_USERNAME = "DOCKERHUB_USERNAME"
DOCKERHUB_ACCESS_TOKEN = "DOCKERHUB_ACCESS_TOKEN"
HONEYCOMB_API_KEY = "HONEYCOMB_API_KEY"


class ConfigurationProvider(Protocol):
    """Source of named configuration values."""

    def get(self, name: str) -> str | None: ...


class EnvironmentProvider:
    """Reads values from the process environment."""

    def get(self, name: str) -> str | None:
        return os.environ.get(name)


class MappingProvider:
    """Serves values from a fixed mapping."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def get(self, name: str) -> str | None:
        return self._values.get(name)


def required_names(topology: TopologyConfig) -> list[str]:
    """Names the given topology variant cannot be built without."""
    names = []
    if topology.registry_source is RegistrySource.PULL_THROUGH_CACHE:
        names += [DOCKERHUB_USERNAME, DOCKERHUB_ACCESS_TOKEN]
    names.append(HONEYCOMB_API_KEY)
    return names


def require_values(provider: ConfigurationProvider, names: Iterable[str]) -> dict[str, str]:
    """Return every named value, or raise ConfigurationError listing all missing ones."""
    values: dict[str, str] = {}
    missing: list[str] = []
    for name in names:
        value = provider.get(name)
        if value:
            values[name] = value
        else:
            missing.append(name)
    if missing:
        raise ConfigurationError(missing)
    return values


_PREFIX = "COLLECTORSTACK_"
_TRUTHY = frozenset({"true", "1", "yes", "on"})


class _Settings:
    """Typed reads of ``COLLECTORSTACK_*`` values; unset or blank means default."""

    def __init__(self, provider: ConfigurationProvider) -> None:
        self._provider = provider

    def text(self, key: str, default: str) -> str:
        value = (self._provider.get(_PREFIX + key) or "").strip()
        return value or default

    def flag(self, key: str, default: bool) -> bool:
        value = self.text(key, "")
        return value.lower() in _TRUTHY if value else default

    def bounded(self, key: str, default: int, low: int, high: int) -> int:
        """Integer clamped into ``[low, high]``."""
        raw = self.text(key, str(default))
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"Invalid integer for {_PREFIX}{key}: {raw}") from None
        return min(max(value, low), high)


def _validate_registry_source(value: str) -> RegistrySource:
    try:
        return RegistrySource(value.lower())
    except ValueError:
        valid = {s.value for s in RegistrySource}
        raise ValueError(f"Invalid registry source: {value}. Must be one of {valid}") from None


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config(provider: ConfigurationProvider | None = None) -> CollectorStackConfig:
    """Load settings from COLLECTORSTACK_* values (process environment by default)."""
    settings = _Settings(provider or EnvironmentProvider())
    return CollectorStackConfig(
        topology=TopologyConfig(
            registry_source=_validate_registry_source(
                settings.text("REGISTRY_SOURCE", RegistrySource.PULL_THROUGH_CACHE.value)
            ),
            include_debug_instance=settings.flag("INCLUDE_DEBUG_INSTANCE", False),
            include_function=settings.flag("INCLUDE_FUNCTION", True),
            artifact_dir=Path(settings.text("ARTIFACT_DIR", str(DEFAULT_ARTIFACT_DIR))),
            max_azs=settings.bounded("MAX_AZS", 2, 1, 6),
            collector=CollectorConfig(
                image_tag=settings.text("COLLECTOR_IMAGE_TAG", "latest"),
                desired_count=settings.bounded("DESIRED_COUNT", 2, 1, 20),
            ),
        ),
        synthesis=SynthesisConfig(
            max_workers=settings.bounded("MAX_WORKERS", 1, 1, 32),
        ),
        log=LogConfig(
            level=_validate_log_level(settings.text("LOG_LEVEL", "info")),
        ),
    )
