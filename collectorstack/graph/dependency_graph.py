"""Append-only dependency graph over ResourceNodes.

Edges are stored as (dependent -> dependency): an edge from ``a`` to ``b``
means ``b`` must be ready before ``a`` is synthesized. Nodes referencing
another node's output get an edge automatically on ``add_node``; explicit
ordering constraints are first-class through ``depends_on`` and ``add_edge``.
"""

from __future__ import annotations

import copy
import heapq
from collections.abc import Iterator
from types import MappingProxyType

from collectorstack.errors import (
    CycleError,
    DuplicateIdError,
    GraphSealedError,
    UnknownNodeError,
    UnknownOutputError,
)
from collectorstack.graph.models import Edge, EdgeType, PortBinding, ResourceNode, iter_refs
from collectorstack.observability.logging import get_logger

_log = get_logger("graph")


class DependencyGraph:
    """Directed acyclic graph of resources with insertion-stable ordering."""

    def __init__(self) -> None:
        self._nodes: dict[str, ResourceNode] = {}
        self._index: dict[str, int] = {}
        # node id -> ids it depends on / ids depending on it
        self._deps: dict[str, set[str]] = {}
        self._rdeps: dict[str, set[str]] = {}
        self._edges: dict[tuple[str, str, EdgeType], Edge] = {}
        self._sealed = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: ResourceNode) -> ResourceNode:
        """Register ``node`` and every edge implied by its spec and ``depends_on``.

        All references are validated before anything is inserted, so a
        failing call leaves the graph untouched. The registered node keeps a
        read-only copy of its spec, so later edits cannot add unseen references.
        """
        self._check_writable()
        if node.id in self._nodes:
            raise DuplicateIdError(node.id)

        spec = MappingProxyType(copy.deepcopy(dict(node.spec)))
        implicit: list[str] = []
        for ref in iter_refs(spec):
            target = self._nodes.get(ref.node_id)
            if target is None:
                raise UnknownNodeError(ref.node_id, referenced_by=node.id)
            if ref.name not in target.declared_outputs:
                raise UnknownOutputError(ref.node_id, ref.name)
            if ref.node_id not in implicit:
                implicit.append(ref.node_id)
        for dep in sorted(node.depends_on):
            if dep not in self._nodes:
                raise UnknownNodeError(dep, referenced_by=node.id)

        node.spec = spec
        self._index[node.id] = len(self._nodes)
        self._nodes[node.id] = node
        self._deps[node.id] = set()
        self._rdeps[node.id] = set()
        for dep in implicit:
            self._insert(Edge(node.id, dep, EdgeType.REFERENCE))
        for dep in sorted(node.depends_on, key=self._index.__getitem__):
            self._insert(Edge(node.id, dep, EdgeType.EXPLICIT))

        _log.debug(
            "node_added",
            node_id=node.id,
            kind=node.kind.value,
            implicit=implicit,
            explicit=sorted(node.depends_on),
        )
        return node

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        edge_type: EdgeType = EdgeType.EXPLICIT,
        binding: PortBinding | None = None,
    ) -> Edge:
        """Declare that ``to_id`` must be ready before ``from_id``.

        Raises UnknownNodeError for undeclared ids and CycleError when the
        edge would close a loop; the graph is unchanged in both cases.
        """
        self._check_writable()
        for node_id in (from_id, to_id):
            if node_id not in self._nodes:
                raise UnknownNodeError(node_id)
        if from_id == to_id:
            raise CycleError((from_id, from_id))
        path = self._path(to_id, from_id)
        if path is not None:
            raise CycleError((from_id, *path))

        edge = Edge(from_id, to_id, edge_type, binding)
        self._insert(edge)
        _log.debug("edge_added", from_id=from_id, to_id=to_id, edge_type=edge_type.value)
        return edge

    def seal(self) -> None:
        """Make the graph read-only."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def topological_order(self) -> list[str]:
        """Return node ids with every dependency ahead of its dependents.

        Nodes with no ordering relation keep their insertion order.
        """
        indegree = {n: len(deps) for n, deps in self._deps.items()}
        ready = [(self._index[n], n) for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for child in self._rdeps[node_id]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self._index[child], child))

        if len(order) != len(self._nodes):
            placed = set(order)
            remaining = {n for n in self._nodes if n not in placed}
            raise CycleError(self._find_cycle(remaining))
        return order

    def teardown_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node(self, node_id: str) -> ResourceNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    @property
    def nodes(self) -> list[ResourceNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    def edges_of_type(self, edge_type: EdgeType) -> list[Edge]:
        return [e for e in self._edges.values() if e.edge_type is edge_type]

    def has_edge(self, from_id: str, to_id: str, edge_type: EdgeType | None = None) -> bool:
        if edge_type is not None:
            return (from_id, to_id, edge_type) in self._edges
        return to_id in self._deps.get(from_id, ())

    def dependencies(self, node_id: str) -> list[str]:
        """Direct dependencies of ``node_id`` in insertion order."""
        return sorted(self._known(node_id, self._deps), key=self._index.__getitem__)

    def dependents(self, node_id: str) -> list[str]:
        return sorted(self._known(node_id, self._rdeps), key=self._index.__getitem__)

    def transitive_dependents(self, node_id: str) -> list[str]:
        """Every node that directly or indirectly waits on ``node_id``."""
        seen: set[str] = set()
        stack = list(self._known(node_id, self._rdeps))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._rdeps[current])
        return sorted(seen, key=self._index.__getitem__)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(list(self._nodes.values()))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._sealed:
            raise GraphSealedError()

    def _known(self, node_id: str, index: dict[str, set[str]]) -> set[str]:
        if node_id not in index:
            raise UnknownNodeError(node_id)
        return index[node_id]

    def _insert(self, edge: Edge) -> None:
        key = (edge.from_id, edge.to_id, edge.edge_type)
        if key in self._edges:
            return
        self._edges[key] = edge
        self._deps[edge.from_id].add(edge.to_id)
        self._rdeps[edge.to_id].add(edge.from_id)

    def _path(self, start: str, goal: str) -> list[str] | None:
        """Dependency path from ``start`` down to ``goal``, both included."""
        parents: dict[str, str | None] = {start: None}
        queue = [start]
        while queue:
            current = queue.pop(0)
            if current == goal:
                path = [current]
                while (parent := parents[path[-1]]) is not None:
                    path.append(parent)
                path.reverse()
                return path
            for dep in sorted(self._deps[current], key=self._index.__getitem__):
                if dep not in parents:
                    parents[dep] = current
                    queue.append(dep)
        return None

    def _find_cycle(self, candidates: set[str]) -> list[str]:
        """Return one cycle among ``candidates`` (first id repeated last)."""
        visiting: list[str] = []
        state: dict[str, int] = {}

        def visit(node_id: str) -> list[str] | None:
            state[node_id] = 1
            visiting.append(node_id)
            for dep in sorted(self._deps[node_id] & candidates, key=self._index.__getitem__):
                if state.get(dep) == 1:
                    return visiting[visiting.index(dep) :] + [dep]
                if dep not in state:
                    found = visit(dep)
                    if found:
                        return found
            visiting.pop()
            state[node_id] = 2
            return None

        for node_id in sorted(candidates, key=self._index.__getitem__):
            if node_id not in state:
                found = visit(node_id)
                if found:
                    return found
        return sorted(candidates, key=self._index.__getitem__)
