"""Application bootstrap for collectorstack.

Wires components in dependency order:
    config → logging → required values → topology → reachability → synthesis

Configuration is validated in full before any resource node is created, and
synthesis stops at the first failed node.
"""

from __future__ import annotations

from importlib import import_module

from collectorstack.config import ConfigurationProvider, EnvironmentProvider
from collectorstack.models.config import CollectorStackConfig
from collectorstack.observability.logging import get_logger, setup_logging
from collectorstack.synth.dry_run import DryRunProvisioner
from collectorstack.synth.synthesizer import Provisioner, SynthesisOutcome, Synthesizer
from collectorstack.topology.builder import Topology, TopologyBuilder


class CollectorStackApp:
    """Owns the topology and the synthesizer for one run."""

    def __init__(
        self,
        config: CollectorStackConfig,
        provider: ConfigurationProvider | None = None,
        provisioner: Provisioner | None = None,
    ) -> None:
        self.config = config
        self._provider = provider or EnvironmentProvider()
        self._provisioner = provisioner or DryRunProvisioner()
        self.topology: Topology | None = None
        self._synthesizer = Synthesizer(self._provisioner, max_workers=config.synthesis.max_workers)
        self._log = get_logger("app")

    def plan(self) -> Topology:
        """Build the topology without provisioning anything."""
        if self.topology is None:
            self.topology = TopologyBuilder(self.config.topology, self._provider).build()
        return self.topology

    def deploy(self) -> SynthesisOutcome:
        topology = self.plan()
        outcome = self._synthesizer.synthesize(topology)
        self._log.info(
            "collectorstack deployed",
            endpoint=outcome.endpoint,
            debug_instance=outcome.debug_instance_id,
        )
        return outcome

    def cancel(self) -> None:
        """Stop the current deploy, or the next one if none is running."""
        self._synthesizer.cancel()

    def teardown(self) -> list[str]:
        if self.topology is None:
            return []
        return self._synthesizer.teardown(self.topology)


def load_provisioner(path: str) -> Provisioner:
    """Instantiate a provisioner from a ``module:attribute`` factory path."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Invalid provisioner path '{path}', expected 'module:attribute'")
    factory = getattr(import_module(module_name), attr)
    return factory()


def create_app(
    config: CollectorStackConfig,
    provider: ConfigurationProvider | None = None,
    provisioner: Provisioner | None = None,
) -> CollectorStackApp:
    """Configure logging and return a ready app."""
    setup_logging(config.log.level)
    return CollectorStackApp(config, provider=provider, provisioner=provisioner)
