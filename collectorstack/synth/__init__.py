"""Synthesis: turning a Topology into provisioned resources.

Submodules:
    synthesizer -- Synthesizer, Provisioner protocol, SynthesisOutcome.
    dry_run     -- DryRunProvisioner, an in-memory collaborator.
"""

from collectorstack.synth.dry_run import DryRunProvisioner
from collectorstack.synth.synthesizer import Provisioner, SynthesisOutcome, Synthesizer

__all__ = ["DryRunProvisioner", "Provisioner", "SynthesisOutcome", "Synthesizer"]
