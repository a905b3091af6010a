"""Ordered provisioning of a Topology through an external collaborator.

Synthesis walks the dependency order and never attempts a node before every
node it depends on has reported success. The first failure aborts the run;
nodes already provisioned keep their outputs and nothing is rolled back.
Teardown is a separate walk in reverse order.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Protocol

from collectorstack.errors import (
    SynthesisCancelledError,
    SynthesisError,
    TeardownError,
    TopologyConsumedError,
)
from collectorstack.graph.dependency_graph import DependencyGraph
from collectorstack.graph.models import OutputRef, ResourceKind, resolve_value
from collectorstack.observability.logging import get_logger
from collectorstack.observability.metrics import (
    node_synthesis_seconds,
    nodes_deleted_total,
    nodes_synthesized_total,
    synthesis_failures_total,
)

_log = get_logger("synth")


class Provisioner(Protocol):
    """External collaborator that turns resource specs into live resources.

    ``spec`` arrives with every OutputRef resolved and the node id under
    ``logical_id``. Transient-fault retries are the collaborator's concern.
    """

    def create(self, kind: ResourceKind, spec: Mapping[str, Any]) -> Mapping[str, Any]: ...

    def delete(self, kind: ResourceKind, outputs: Mapping[str, Any]) -> None: ...


@dataclass
class SynthesisOutcome:
    """Result of a successful synthesis run."""

    synthesized: list[str]
    outputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    endpoint: str | None = None
    debug_instance_id: str | None = None

    def resolve(self, ref: OutputRef) -> Any:
        return self.outputs[ref.node_id][ref.name]


class _NodeFailure(Exception):
    def __init__(self, node_id: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id
        self.cause = cause


class Synthesizer:
    """Drives a provisioner over a topology in dependency order.

    ``max_workers`` > 1 provisions independent nodes concurrently; ordering
    constraints still hold and outputs are written under a lock.
    """

    def __init__(self, provisioner: Provisioner, max_workers: int = 1) -> None:
        self._provisioner = provisioner
        self._max_workers = max(1, max_workers)
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop before the next node starts. In-flight calls are allowed to finish.

        A request made before ``synthesize`` is called stops that run before its
        first node.
        """
        self._cancelled.set()

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def synthesize(self, topology: Any) -> SynthesisOutcome:
        graph: DependencyGraph = getattr(topology, "graph", topology)
        already = [n.id for n in graph if n.synthesized]
        if already:
            raise TopologyConsumedError(already)

        order = graph.topological_order()
        _log.info("synthesis_started", nodes=len(order), max_workers=self._max_workers)

        try:
            if self._max_workers == 1:
                self._run_sequential(graph, order)
            else:
                self._run_concurrent(graph, order)
        finally:
            # A cancel request applies to exactly one run, including one issued before it started.
            self._cancelled.clear()

        outcome = SynthesisOutcome(
            synthesized=order,
            outputs={node_id: dict(graph.node(node_id).outputs) for node_id in order},
        )
        endpoint = getattr(topology, "endpoint", None)
        if endpoint is not None:
            outcome.endpoint = outcome.resolve(endpoint)
        debug = getattr(topology, "debug_instance", None)
        if debug is not None:
            outcome.debug_instance_id = outcome.resolve(debug)

        _log.info("synthesis_completed", nodes=len(order), endpoint=outcome.endpoint)
        return outcome

    def _run_sequential(self, graph: DependencyGraph, order: list[str]) -> None:
        for node_id in order:
            if self._cancelled.is_set():
                raise self._cancellation(graph, order, node_id)
            try:
                self._provision(graph, node_id)
            except _NodeFailure as exc:
                raise self._failure(graph, order, exc) from exc.cause

    def _run_concurrent(self, graph: DependencyGraph, order: list[str]) -> None:
        waiting_on = {node_id: set(graph.dependencies(node_id)) for node_id in order}
        started: set[str] = set()
        done: set[str] = set()
        failure: _NodeFailure | None = None
        in_flight: dict[Future[None], str] = {}

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="synth") as pool:

            def submit_ready() -> None:
                for node_id in order:
                    if node_id not in started and waiting_on[node_id] <= done:
                        started.add(node_id)
                        in_flight[pool.submit(self._provision, graph, node_id)] = node_id

            if not self._cancelled.is_set():
                submit_ready()
            while in_flight:
                finished, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in finished:
                    node_id = in_flight.pop(future)
                    exc = future.exception()
                    if exc is None:
                        done.add(node_id)
                    elif failure is None:
                        failure = exc if isinstance(exc, _NodeFailure) else _NodeFailure(node_id, str(exc), exc)
                    else:
                        _log.error("synthesis_failed_while_draining", node_id=node_id, error=str(exc))
                if failure is None and not self._cancelled.is_set():
                    submit_ready()

        if failure is not None:
            raise self._failure(graph, order, failure) from failure.cause
        if len(done) < len(order):
            next_id = next(n for n in order if n not in done)
            raise self._cancellation(graph, order, next_id)

    def _provision(self, graph: DependencyGraph, node_id: str) -> None:
        node = graph.node(node_id)
        lookup = {dep: graph.node(dep).outputs for dep in graph.dependencies(node_id)}
        try:
            spec = resolve_value(node.spec, lookup)
        except KeyError as exc:
            raise _NodeFailure(node_id, f"Upstream output {exc} missing for '{node_id}'") from exc
        spec = {"logical_id": node.id, **spec}

        _log.debug("node_synthesis_started", node_id=node_id, kind=node.kind.value)
        t_start = time.monotonic()
        try:
            outputs = dict(self._provisioner.create(node.kind, spec))
        except Exception as exc:
            synthesis_failures_total.labels(kind=node.kind.value).inc()
            raise _NodeFailure(node_id, f"Provisioning '{node_id}' failed: {exc}", exc) from exc
        finally:
            node_synthesis_seconds.labels(kind=node.kind.value).observe(time.monotonic() - t_start)

        missing = [name for name in node.declared_outputs if name not in outputs]
        if missing:
            synthesis_failures_total.labels(kind=node.kind.value).inc()
            # Created but incomplete: recorded so teardown still reaches it.
            with self._lock:
                node.outputs.update({"logical_id": node.id, **outputs})
            raise _NodeFailure(
                node_id,
                f"Provisioning '{node_id}' did not report outputs: {', '.join(missing)}",
            )

        with self._lock:
            node.outputs.update(outputs)
        nodes_synthesized_total.labels(kind=node.kind.value).inc()
        _log.info("node_synthesized", node_id=node_id, kind=node.kind.value, outputs=sorted(outputs))

    def _failure(self, graph: DependencyGraph, order: list[str], failure: _NodeFailure) -> SynthesisError:
        synthesized = [n for n in order if graph.node(n).synthesized]
        pending = [n for n in order if n != failure.node_id and not graph.node(n).synthesized]
        downstream = [n for n in graph.transitive_dependents(failure.node_id) if n in pending]
        _log.error(
            "synthesis_failed",
            node_id=failure.node_id,
            error=str(failure),
            downstream=downstream,
            pending=len(pending),
        )
        return SynthesisError(
            failure.node_id,
            str(failure),
            cause=failure.cause,
            downstream=downstream,
            pending=pending,
            synthesized=synthesized,
            partial=[n for n in synthesized if not graph.node(n).complete],
        )

    def _cancellation(self, graph: DependencyGraph, order: list[str], next_id: str) -> SynthesisCancelledError:
        synthesized = [n for n in order if graph.node(n).synthesized]
        pending = [n for n in order if not graph.node(n).synthesized]
        _log.warning("synthesis_cancelled", next_node=next_id, synthesized=len(synthesized))
        return SynthesisCancelledError(
            next_id,
            f"Synthesis cancelled before '{next_id}'",
            pending=pending,
            synthesized=synthesized,
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def teardown(self, topology: Any) -> list[str]:
        """Delete every synthesized node, dependents first. Returns deleted ids."""
        graph: DependencyGraph = getattr(topology, "graph", topology)
        order = [n for n in graph.teardown_order() if graph.node(n).synthesized]
        _log.info("teardown_started", nodes=len(order))

        deleted: list[str] = []
        for node_id in order:
            node = graph.node(node_id)
            try:
                self._provisioner.delete(node.kind, dict(node.outputs))
            except Exception as exc:
                remaining = [n for n in order if n not in deleted]
                _log.error("teardown_failed", node_id=node_id, error=str(exc), remaining=remaining)
                raise TeardownError(
                    node_id,
                    f"Deleting '{node_id}' failed: {exc}",
                    cause=exc,
                    pending=remaining,
                    synthesized=remaining,
                ) from exc
            with self._lock:
                node.outputs.clear()
            deleted.append(node_id)
            nodes_deleted_total.labels(kind=node.kind.value).inc()
            _log.info("node_deleted", node_id=node_id, kind=node.kind.value)

        _log.info("teardown_completed", nodes=len(deleted))
        return deleted
