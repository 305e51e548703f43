"""Bounded reachability queries over a graph snapshot.

Traversal is level-synchronous breadth-first search with a visited set, so
depth bounds are exact hop counts and cycles are harmless. Each level's
frontier is ordered by path, and a node keeps the first path that reaches
it: the shortest one, ties broken by the lexicographic order of node ids
along the path. For inverse traversal the order is taken on the path read
from the target backwards, and paths are reported entry point first.

A hop into a data node counts toward the depth bound like a call does.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from fnmatch import fnmatchcase

from reachgraph.config import ReachConfig, RiskConfig
from reachgraph.graph.models import AccessEdge, CallEdge, DataAccessNode, FunctionNode, Node
from reachgraph.graph.risk import assess_risk
from reachgraph.graph.store import GraphState
from reachgraph.schemas import (
    DataPath,
    EntryPointPath,
    ImpactResult,
    InverseResult,
    NodeRef,
    ReachResult,
    ReasonCode,
)

logger = logging.getLogger(__name__)

TopologyLookup = Callable[[list[str]], list[str]]

_GLOB_CHARS = set("*?[")


# =============================================================================
# Target resolution
# =============================================================================


def resolve_origin(state: GraphState, origin: str) -> list[str]:
    """Function node ids named by an origin string.

    Accepted forms, tried in order: a node id, a file path (every function
    of the file), ``file::qualified_name``, a qualified name, and finally a
    simple name.
    """
    node = state.node(origin)
    if isinstance(node, FunctionNode):
        return [origin]
    if origin in state.files():
        return [n.id for n in state.nodes_in_file(origin)]

    functions = state.function_nodes()
    if "::" in origin:
        path, qualified_name = origin.split("::", 1)
        return sorted(
            n.id for n in functions if n.file == path and n.qualified_name == qualified_name
        )
    matches = sorted(n.id for n in functions if n.qualified_name == origin)
    if matches:
        return matches
    return sorted(n.id for n in functions if n.name == origin)


def resolve_data(state: GraphState, target: str) -> list[str]:
    """Data node ids named by ``table.field``, ``table``, a glob or a data id.

    A ``table.field`` target also matches the table's ``table.*`` node, which
    stands for accesses that did not name a field.
    """
    node = state.node(target)
    if isinstance(node, DataAccessNode):
        return [target]

    data_nodes = state.data_nodes()
    if _GLOB_CHARS & set(target):
        return sorted(n.id for n in data_nodes if fnmatchcase(n.pattern, target))
    if "." in target:
        table, field_name = target.split(".", 1)
        return sorted(
            n.id for n in data_nodes
            if n.table == table and n.field in (field_name, "*")
        )
    return sorted(n.id for n in data_nodes if n.table == target)


def resolve_target(state: GraphState, target: str) -> list[str]:
    """Data node ids for a data target, else function ids for a function target."""
    return resolve_data(state, target) or resolve_origin(state, target)


# =============================================================================
# Traversal
# =============================================================================


@dataclass
class Traversal:
    """Depth and chosen path of every node visited by a bounded BFS."""

    depth: dict[str, int]
    path: dict[str, tuple[str, ...]]
    truncated: bool


def bounded_bfs(
    starts: list[str],
    max_depth: int,
    neighbours: Callable[[str], list[str]],
    reverse: bool = False,
) -> Traversal:
    """Breadth-first search from several starts, at most max_depth hops.

    Args:
        starts: Nodes at depth 0.
        max_depth: Largest number of hops to take.
        neighbours: Next nodes of a node in traversal direction.
        reverse: Build paths backwards (node first, start last) and order
            them by their reversed form.

    Returns:
        Traversal; truncated is True when a node one hop past max_depth was
        left unvisited.
    """
    depth = {start: 0 for start in starts}
    path = {start: (start,) for start in starts}

    def order(candidate: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(reversed(candidate)) if reverse else candidate

    frontier = sorted(starts, key=lambda n: order(path[n]))
    level = 0
    truncated = False
    while frontier:
        if level >= max_depth:
            truncated = any(
                nxt not in depth for node in frontier for nxt in neighbours(node)
            )
            break
        level += 1
        found: dict[str, tuple[str, ...]] = {}
        for node in frontier:
            for nxt in neighbours(node):
                if nxt in depth:
                    continue
                candidate = (nxt,) + path[node] if reverse else path[node] + (nxt,)
                best = found.get(nxt)
                if best is None or order(candidate) < order(best):
                    found[nxt] = candidate
        for node, node_path in found.items():
            depth[node] = level
            path[node] = node_path
        frontier = sorted(found, key=lambda n: order(path[n]))

    return Traversal(depth=depth, path=path, truncated=truncated)


def _forward_neighbours(state: GraphState, min_confidence: float) -> Callable[[str], list[str]]:
    def neighbours(node_id: str) -> list[str]:
        found = []
        for edge in state.out_edges(node_id):
            if isinstance(edge, AccessEdge):
                found.append(edge.target)
            elif isinstance(state.node(edge.target), FunctionNode):
                if edge.confidence >= min_confidence:
                    found.append(edge.target)
        return found

    return neighbours


def _inverse_neighbours(state: GraphState, min_confidence: float) -> Callable[[str], list[str]]:
    def neighbours(node_id: str) -> list[str]:
        found = []
        for edge in state.in_edges(node_id):
            if isinstance(edge, CallEdge) and edge.confidence < min_confidence:
                continue
            found.append(edge.source)
        return found

    return neighbours


# =============================================================================
# Result helpers
# =============================================================================


def node_ref(node: Node, depth: int = 0) -> NodeRef:
    if isinstance(node, FunctionNode):
        return NodeRef(
            id=node.id,
            kind=node.kind.value,
            name=node.qualified_name,
            file=node.file,
            depth=depth,
            entry_point=node.entry_point.kind.value if node.entry_point else None,
        )
    if isinstance(node, DataAccessNode):
        return NodeRef(
            id=node.id,
            kind=node.kind.value,
            name=node.pattern,
            depth=depth,
            sensitivity=node.sensitivity.value,
        )
    return NodeRef(id=node.id, kind=node.kind.value, name=node.name, depth=depth)


def _functions_only(state: GraphState, path: tuple[str, ...]) -> list[str]:
    return [node_id for node_id in path if isinstance(state.node(node_id), FunctionNode)]


def _sensitive_paths(state: GraphState, traversal: Traversal) -> list[DataPath]:
    paths = []
    for node_id in sorted(traversal.depth):
        node = state.node(node_id)
        if not isinstance(node, DataAccessNode) or not node.sensitivity.is_sensitive:
            continue
        path = traversal.path[node_id]
        accessor = path[-2] if len(path) > 1 else None
        access = []
        if accessor is not None:
            access = sorted(
                {e.access.value for e in state.accesses_of(accessor) if e.target == node_id}
            )
        paths.append(
            DataPath(
                data=node_ref(node, traversal.depth[node_id]),
                sensitivity=node.sensitivity.value,
                access=access,
                path=list(path[:-1]),
            )
        )
    return paths


# =============================================================================
# Queries
# =============================================================================


def forward(
    state: GraphState,
    origin: str,
    max_depth: int,
    min_confidence: float = 0.0,
) -> ReachResult:
    """Everything an origin can reach within max_depth hops.

    Args:
        state: Graph snapshot.
        origin: Function id, file path, ``file::qualified_name`` or name.
        max_depth: Hop bound; 0 returns only the origin functions.
        min_confidence: Call edges below this confidence are not followed.

    Returns:
        ReachResult with reached functions and data nodes, one path per
        sensitive data node, and the count of unresolved calls met on the
        way. Unresolved sinks are counted, not listed.
    """
    origin_ids = resolve_origin(state, origin)
    if not origin_ids:
        return ReachResult(
            origin=origin, max_depth=max_depth, reason=ReasonCode.ORIGIN_NOT_FOUND
        )

    traversal = bounded_bfs(origin_ids, max_depth, _forward_neighbours(state, min_confidence))

    unresolved = 0
    for node_id, depth in traversal.depth.items():
        if depth >= max_depth or not isinstance(state.node(node_id), FunctionNode):
            continue
        for edge in state.callees_of(node_id):
            if not isinstance(state.node(edge.target), FunctionNode):
                unresolved += edge.call_site_count

    nodes = [
        node_ref(state.node(node_id), depth)
        for node_id, depth in sorted(traversal.depth.items(), key=lambda item: (item[1], item[0]))
    ]
    sensitive = _sensitive_paths(state, traversal)
    return ReachResult(
        origin=origin,
        origin_ids=origin_ids,
        max_depth=max_depth,
        nodes=nodes,
        sensitive_paths=sensitive,
        unresolved_calls=unresolved,
        truncated=traversal.truncated,
        reason=None if sensitive else ReasonCode.NO_SENSITIVE_DATA,
    )


def inverse(
    state: GraphState,
    target: str,
    max_depth: int,
    min_confidence: float = 0.0,
) -> InverseResult:
    """Entry points from which a target is reachable within max_depth hops.

    Args:
        state: Graph snapshot.
        target: Data target (``table.field``, ``table``, glob, data id) or any
            function origin form.
        max_depth: Hop bound.
        min_confidence: Call edges below this confidence are not followed.

    Returns:
        InverseResult listing every reaching entry point with one path of
        function ids, entry point first.
    """
    target_ids = resolve_target(state, target)
    if not target_ids:
        return InverseResult(
            target=target, max_depth=max_depth, reason=ReasonCode.TARGET_NOT_FOUND
        )

    traversal = bounded_bfs(
        target_ids, max_depth, _inverse_neighbours(state, min_confidence), reverse=True
    )
    entries = _entry_point_paths(state, traversal)
    return InverseResult(
        target=target,
        target_ids=target_ids,
        max_depth=max_depth,
        entry_points=entries,
        reached_count=sum(
            1 for node_id, depth in traversal.depth.items()
            if depth > 0 and isinstance(state.node(node_id), FunctionNode)
        ),
        truncated=traversal.truncated,
        reason=None if entries else ReasonCode.NO_ENTRY_POINTS,
    )


def _entry_point_paths(state: GraphState, traversal: Traversal) -> list[EntryPointPath]:
    entries = []
    for node_id in sorted(traversal.depth):
        node = state.node(node_id)
        if not isinstance(node, FunctionNode) or not node.is_entry_point:
            continue
        entries.append(
            EntryPointPath(
                entry_point=node_ref(node, traversal.depth[node_id]),
                kind=node.entry_point.kind.value,
                descriptor=node.entry_point.descriptor,
                path=_functions_only(state, traversal.path[node_id]),
            )
        )
    return entries


def impact(
    state: GraphState,
    target: str,
    max_depth: int,
    risk_config: RiskConfig,
    coverage: float | None = None,
    test_topology: TopologyLookup | None = None,
    min_confidence: float = 0.0,
) -> ImpactResult:
    """What reaches a target, what it reaches, and the risk of changing it.

    Args:
        state: Graph snapshot.
        target: Any form accepted by ``inverse``; a file path covers every
            function in the file.
        max_depth: Hop bound for both directions.
        risk_config: Weights and thresholds for the risk score.
        coverage: Test coverage ratio of the target, if known.
        test_topology: Maps node ids to the tests exercising them.
        min_confidence: Call edges below this confidence are not followed.

    Returns:
        ImpactResult with callers, entry points, sensitive data paths,
        affected tests and a risk assessment.
    """
    target_ids = resolve_target(state, target)
    if not target_ids:
        return ImpactResult(
            target=target,
            max_depth=max_depth,
            risk=assess_risk(0, 0, coverage, risk_config),
            reason=ReasonCode.TARGET_NOT_FOUND,
        )

    backwards = bounded_bfs(
        target_ids, max_depth, _inverse_neighbours(state, min_confidence), reverse=True
    )
    callers = [
        node_ref(state.node(node_id), depth)
        for node_id, depth in sorted(backwards.depth.items(), key=lambda item: (item[1], item[0]))
        if depth > 0
    ]
    direct_callers = sum(1 for ref in callers if ref.depth == 1)
    entries = _entry_point_paths(state, backwards)

    function_ids = [i for i in target_ids if isinstance(state.node(i), FunctionNode)]
    sensitive: list[DataPath] = []
    forward_truncated = False
    if function_ids:
        onwards = bounded_bfs(function_ids, max_depth, _forward_neighbours(state, min_confidence))
        sensitive = _sensitive_paths(state, onwards)
        forward_truncated = onwards.truncated
    else:
        # A data target is itself the sensitive endpoint of every entry path
        for node_id in target_ids:
            node = state.node(node_id)
            if node.sensitivity.is_sensitive:
                sensitive.append(
                    DataPath(
                        data=node_ref(node),
                        sensitivity=node.sensitivity.value,
                        access=sorted({e.access.value for e in state.accessors_of(node_id)}),
                        path=[],
                    )
                )

    affected_tests = None
    if test_topology is not None:
        affected_tests = sorted(set(test_topology(target_ids + [r.id for r in callers])))

    logger.debug(
        f"Impact of {target}: {len(callers)} callers, {len(entries)} entry points, "
        f"{len(sensitive)} sensitive paths"
    )
    return ImpactResult(
        target=target,
        target_ids=target_ids,
        max_depth=max_depth,
        direct_callers=direct_callers,
        callers=callers,
        entry_points=entries,
        sensitive_data_paths=sensitive,
        affected_tests=affected_tests,
        risk=assess_risk(len(entries), len(sensitive), coverage, risk_config),
        truncated=backwards.truncated or forward_truncated,
        reason=None if entries else ReasonCode.NO_ENTRY_POINTS,
    )


def default_depth(max_depth: int | None, config: ReachConfig) -> int:
    return config.default_max_depth if max_depth is None else max_depth
