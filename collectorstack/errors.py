"""Error taxonomy for collectorstack.

ConfigurationError   -- required named values missing; raised before any node exists.
GraphIntegrityError  -- graph assembly violations; always fatal, never auto-fixed.
SynthesisError       -- a provisioning call failed; carries the blast radius.
"""

from __future__ import annotations

from collections.abc import Sequence


class CollectorStackError(Exception):
    """Base class for every error raised by collectorstack."""


class ConfigurationError(CollectorStackError):
    """One or more required configuration values are missing."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(f"Missing required configuration values: {', '.join(self.missing)}")


# ---------------------------------------------------------------------------
# Graph assembly
# ---------------------------------------------------------------------------


class GraphIntegrityError(CollectorStackError):
    """Base class for graph-construction integrity violations."""


class DuplicateIdError(GraphIntegrityError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' is already declared")


class UnknownNodeError(GraphIntegrityError):
    def __init__(self, node_id: str, referenced_by: str | None = None) -> None:
        self.node_id = node_id
        self.referenced_by = referenced_by
        msg = f"Node '{node_id}' is not declared"
        if referenced_by:
            msg += f" (referenced by '{referenced_by}')"
        super().__init__(msg)


class UnknownOutputError(GraphIntegrityError):
    def __init__(self, node_id: str, output: str) -> None:
        self.node_id = node_id
        self.output = output
        super().__init__(f"Node '{node_id}' does not declare an output named '{output}'")


class CycleError(GraphIntegrityError):
    """The edge set contains (or would contain) a cycle.

    ``cycle`` lists the node ids along the loop, first id repeated last.
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}")


class GraphSealedError(GraphIntegrityError):
    def __init__(self) -> None:
        super().__init__("Graph is sealed; nodes and edges can no longer be added")


class ReachabilityError(GraphIntegrityError):
    """A declared traffic path violates the network policy invariants."""


class TopologyConsumedError(GraphIntegrityError):
    def __init__(self, synthesized: Sequence[str]) -> None:
        self.synthesized = tuple(synthesized)
        super().__init__(
            f"Topology was already synthesized ({len(self.synthesized)} node(s) carry outputs)"
        )


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class SynthesisError(CollectorStackError):
    """Provisioning of ``node_id`` failed and the run was aborted.

    Attributes:
        node_id:      Node whose provisioning call failed.
        cause:        Exception raised by the collaborator, if any.
        downstream:   Not-yet-synthesized nodes that transitively depend on ``node_id``.
        pending:      Every node that was never attempted (superset of ``downstream``).
        synthesized:  Nodes provisioned before the abort; they keep their outputs.
        partial:      Subset of ``synthesized`` created without every declared output.
    """

    def __init__(
        self,
        node_id: str | None,
        message: str,
        cause: BaseException | None = None,
        downstream: Sequence[str] = (),
        pending: Sequence[str] = (),
        synthesized: Sequence[str] = (),
        partial: Sequence[str] = (),
    ) -> None:
        self.node_id = node_id
        self.cause = cause
        self.downstream = tuple(downstream)
        self.pending = tuple(pending)
        self.synthesized = tuple(synthesized)
        self.partial = tuple(partial)
        super().__init__(message)


class SynthesisCancelledError(SynthesisError):
    """Synthesis was cancelled between nodes; nothing is rolled back."""


class TeardownError(SynthesisError):
    """Deleting ``node_id`` failed; ``pending`` lists nodes still provisioned."""
