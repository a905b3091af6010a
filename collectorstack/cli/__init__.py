"""collectorstack command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``collectorstack`` script).
"""

from collectorstack.cli.main import cli

__all__ = ["cli"]
