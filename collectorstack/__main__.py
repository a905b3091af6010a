"""Entry point for `python -m collectorstack`.

Usage:
    python -m collectorstack plan
    uv run python -m collectorstack deploy --max-workers 4
"""

from __future__ import annotations

from collectorstack.cli.main import cli

cli()
