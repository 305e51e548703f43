"""Graph store: node/edge tables with structural invariants.

GraphState holds the tables in a networkx MultiDiGraph keyed by relation
("calls", "read", "write"), so parallel edges of one relation are collapsed
on insert and the graph is always in collapsed form between mutations.
GraphStore publishes immutable snapshots: readers take the current state
and never see a half-applied change, while a writer mutates a private copy
inside ``batch()`` that replaces the snapshot only when it is complete and
consistent.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import networkx as nx

from reachgraph.constants import UNRESOLVED_CONFIDENCE
from reachgraph.errors import GraphInvariantViolation
from reachgraph.graph.models import (
    AccessEdge,
    CallEdge,
    DataAccessNode,
    Edge,
    EdgeKind,
    FunctionNode,
    Node,
    UnresolvedRef,
)

logger = logging.getLogger(__name__)


def _violation(message: str) -> GraphInvariantViolation:
    logger.error(f"Graph invariant violated: {message}")
    return GraphInvariantViolation(message)


class GraphState:
    """Node and edge tables for one project.

    Nodes are stored as the "node" attribute of graph vertices, edges as the
    "edge" attribute of multigraph edges keyed by EdgeKind value. A file
    index maps each file to the ids of the FunctionNodes it owns.
    """

    def __init__(self):
        self._graph = nx.MultiDiGraph()
        self._files: dict[str, set[str]] = {}

    def clear(self) -> None:
        """Drop every node and edge."""
        self._graph.clear()
        self._files.clear()

    def copy(self) -> "GraphState":
        """Independent copy; node and edge values are immutable and shared."""
        clone = GraphState()
        clone._graph = self._graph.copy()
        clone._files = {path: set(ids) for path, ids in self._files.items()}
        return clone

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def node(self, node_id: str) -> Node | None:
        if node_id not in self._graph:
            return None
        return self._graph.nodes[node_id]["node"]

    def has_node(self, node_id: str) -> bool:
        return node_id in self._graph

    def upsert_node(self, node: Node) -> bool:
        """Insert or replace a node.

        Returns:
            True if the node is new or differs from the stored one (line
            numbers excluded).
        """
        existing = self.node(node.id)
        if existing is None:
            self._graph.add_node(node.id, node=node)
            if isinstance(node, FunctionNode):
                self._files.setdefault(node.file, set()).add(node.id)
            return True

        # Keep positional metadata fresh even when nothing else changed
        self._graph.nodes[node.id]["node"] = node
        return existing != node

    def remove_node(self, node_id: str) -> None:
        """Remove a node and cascade to its edges.

        Outgoing edges are dropped. Incoming call edges are retargeted to the
        UnresolvedRef of the name written at the call site, so callers keep
        their call counts without pointing at a removed node. Incoming access
        edges are dropped.
        """
        if node_id not in self._graph:
            return

        incoming = [
            edge for edge in self._in_edges(node_id) if edge.source != node_id
        ]
        node = self.node(node_id)
        self._graph.remove_node(node_id)
        if isinstance(node, FunctionNode):
            owned = self._files.get(node.file)
            if owned is not None:
                owned.discard(node_id)
                if not owned:
                    del self._files[node.file]

        for edge in incoming:
            if isinstance(edge, CallEdge):
                sink = UnresolvedRef(edge.callee_name)
                self.upsert_node(sink)
                self.upsert_edge(
                    CallEdge(
                        caller=edge.caller,
                        callee=sink.id,
                        callee_name=edge.callee_name,
                        confidence=UNRESOLVED_CONFIDENCE,
                        tier=None,
                        method=edge.method,
                        call_site_count=edge.call_site_count,
                    )
                )

    def remove_file(self, path: str) -> list[str]:
        """Remove every node a file owns, cascading to edges.

        Edges between the file's own nodes disappear with them; only edges
        from other files are retargeted.

        Returns:
            Ids of the removed nodes.
        """
        owned = sorted(self._files.get(path, ()))
        # Intra-file edges go with the outgoing ones and are never retargeted
        self.clear_outgoing(owned)
        for node_id in owned:
            self.remove_node(node_id)
        return owned

    def nodes(self) -> list[Node]:
        return [data["node"] for _, data in self._graph.nodes(data=True)]

    def function_nodes(self) -> list[FunctionNode]:
        return [n for n in self.nodes() if isinstance(n, FunctionNode)]

    def data_nodes(self) -> list[DataAccessNode]:
        return [n for n in self.nodes() if isinstance(n, DataAccessNode)]

    def nodes_in_file(self, path: str) -> list[FunctionNode]:
        return [self.node(node_id) for node_id in sorted(self._files.get(path, ()))]

    def files(self) -> list[str]:
        return sorted(self._files)

    def entry_points(self) -> list[FunctionNode]:
        """Functions flagged as externally reachable, sorted by id."""
        return sorted(
            (n for n in self.function_nodes() if n.is_entry_point), key=lambda n: n.id
        )

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def upsert_edge(self, edge: Edge) -> Edge:
        """Insert an edge, collapsing it into an existing parallel edge.

        Raises:
            GraphInvariantViolation: If an endpoint is not in the store.

        Returns:
            The stored (possibly merged) edge.
        """
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._graph:
                raise _violation(f"edge {edge.source} -> {edge.target} has no node {endpoint}")

        key = edge.kind.value
        if self._graph.has_edge(edge.source, edge.target, key=key):
            data = self._graph.edges[edge.source, edge.target, key]
            data["edge"] = data["edge"].merge(edge)
        else:
            self._graph.add_edge(edge.source, edge.target, key=key, edge=edge)
        return self._graph.edges[edge.source, edge.target, key]["edge"]

    def clear_outgoing(self, node_ids: Iterable[str]) -> None:
        """Drop every outgoing edge of the given nodes."""
        for node_id in node_ids:
            if node_id not in self._graph:
                continue
            for _, target, key in list(self._graph.out_edges(node_id, keys=True)):
                self._graph.remove_edge(node_id, target, key=key)

    def _out_edges(self, node_id: str) -> list[Edge]:
        return [data["edge"] for _, _, data in self._graph.out_edges(node_id, data=True)]

    def _in_edges(self, node_id: str) -> list[Edge]:
        return [data["edge"] for _, _, data in self._graph.in_edges(node_id, data=True)]

    def out_edges(self, node_id: str) -> list[Edge]:
        """All outgoing edges, sorted by target then relation."""
        if node_id not in self._graph:
            return []
        return sorted(self._out_edges(node_id), key=lambda e: (e.target, e.kind.value))

    def in_edges(self, node_id: str) -> list[Edge]:
        """All incoming edges, sorted by source then relation."""
        if node_id not in self._graph:
            return []
        return sorted(self._in_edges(node_id), key=lambda e: (e.source, e.kind.value))

    def callers_of(self, node_id: str) -> list[CallEdge]:
        return [e for e in self.in_edges(node_id) if isinstance(e, CallEdge)]

    def callees_of(self, node_id: str) -> list[CallEdge]:
        return [e for e in self.out_edges(node_id) if isinstance(e, CallEdge)]

    def accesses_of(self, node_id: str) -> list[AccessEdge]:
        return [e for e in self.out_edges(node_id) if isinstance(e, AccessEdge)]

    def accessors_of(self, data_id: str) -> list[AccessEdge]:
        return [e for e in self.in_edges(data_id) if isinstance(e, AccessEdge)]

    def edges(self) -> list[Edge]:
        return [data["edge"] for _, _, data in self._graph.edges(data=True)]

    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def prune_orphans(self) -> list[str]:
        """Remove shared sink nodes (data, unresolved) that nothing points to."""
        orphans = [
            node_id
            for node_id, data in self._graph.nodes(data=True)
            if not isinstance(data["node"], FunctionNode) and self._graph.in_degree(node_id) == 0
        ]
        self._graph.remove_nodes_from(orphans)
        return sorted(orphans)

    def check_invariants(self) -> None:
        """Verify structural invariants.

        Raises:
            GraphInvariantViolation: On a dangling edge, a mismatched node
                identity, an inconsistent file index or an edge stored under
                the wrong relation key.
        """
        indexed: set[str] = set()
        for path, ids in self._files.items():
            for node_id in ids:
                node = self.node(node_id)
                if not isinstance(node, FunctionNode) or node.file != path:
                    raise _violation(f"file index of {path} lists {node_id}")
            indexed |= ids

        for node_id, data in self._graph.nodes(data=True):
            node = data.get("node")
            if node is None or node.id != node_id:
                raise _violation(f"node {node_id} stored under a different identity")
            if isinstance(node, FunctionNode) and node_id not in indexed:
                raise _violation(f"function node {node_id} missing from file index")

        for source, target, key, data in self._graph.edges(keys=True, data=True):
            edge = data.get("edge")
            if edge is None or (edge.source, edge.target) != (source, target):
                raise _violation(f"edge {source} -> {target} stored inconsistently")
            if edge.kind.value != key:
                raise _violation(f"edge {source} -> {target} stored under key {key}")
            if not isinstance(self.node(source), FunctionNode):
                raise _violation(f"edge {source} -> {target} does not start at a function")
            if isinstance(edge, CallEdge) and isinstance(self.node(target), DataAccessNode):
                raise _violation(f"call edge {source} -> {target} targets a data node")
            if isinstance(edge, AccessEdge) and not isinstance(self.node(target), DataAccessNode):
                raise _violation(f"access edge {source} -> {target} targets a non-data node")

    def content(self) -> tuple[frozenset, frozenset]:
        """(nodes, edges) as comparable sets; two states are equal iff these are."""
        return frozenset(self.nodes()), frozenset(self.edges())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphState):
            return NotImplemented
        return self.content() == other.content()

    __hash__ = None  # type: ignore[assignment]


class GraphStore:
    """Owner of the published graph snapshot.

    ``snapshot()`` returns the current GraphState; callers must treat it as
    read-only. All writes go through ``batch()``.
    """

    def __init__(self, state: GraphState | None = None):
        self._state = state or GraphState()
        self._write_lock = threading.Lock()
        self._swap_lock = threading.Lock()

    def snapshot(self) -> GraphState:
        with self._swap_lock:
            return self._state

    @contextmanager
    def batch(self) -> Iterator[GraphState]:
        """Stage a set of mutations and publish them atomically.

        Yields a private copy of the current state. When the block exits
        normally the copy is checked and becomes the published snapshot; if
        the block raises, the copy is discarded.

        Raises:
            GraphInvariantViolation: If the staged state is inconsistent.
        """
        with self._write_lock:
            staged = self.snapshot().copy()
            yield staged
            staged.check_invariants()
            with self._swap_lock:
                self._state = staged

    def replace(self, state: GraphState) -> None:
        """Publish a complete state, e.g. one loaded from disk."""
        state.check_invariants()
        with self._write_lock, self._swap_lock:
            self._state = state

    # Single-operation conveniences; each one is its own batch

    def upsert_node(self, node: Node) -> bool:
        with self.batch() as state:
            return state.upsert_node(node)

    def upsert_edge(self, edge: Edge) -> Edge:
        with self.batch() as state:
            return state.upsert_edge(edge)

    def remove_file(self, path: str) -> list[str]:
        with self.batch() as state:
            removed = state.remove_file(path)
            state.prune_orphans()
            return removed

    def callers_of(self, node_id: str) -> list[CallEdge]:
        return self.snapshot().callers_of(node_id)

    def callees_of(self, node_id: str) -> list[CallEdge]:
        return self.snapshot().callees_of(node_id)

    def accesses_of(self, node_id: str) -> list[AccessEdge]:
        return self.snapshot().accesses_of(node_id)

    def entry_points(self) -> list[FunctionNode]:
        return self.snapshot().entry_points()
