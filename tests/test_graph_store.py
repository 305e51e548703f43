"""Tests for the graph store and its invariants."""

import pytest


def _function(file, name, signature="1"):
    from reachgraph.graph.models import FunctionNode

    return FunctionNode(file=file, qualified_name=name, signature_hash=signature)


def _call(caller, callee, name, confidence=1.0):
    from reachgraph.facts.models import ExtractionMethod
    from reachgraph.graph.models import CallEdge, ResolutionTier

    return CallEdge(
        caller=caller.id,
        callee=callee.id,
        callee_name=name,
        confidence=confidence,
        tier=ResolutionTier.EXACT,
        method=ExtractionMethod.AST,
    )


def test_upsert_node_reports_changes():
    """upsert_node returns True for new or changed nodes only."""
    from reachgraph.graph.store import GraphState

    state = GraphState()
    node = _function("a.py", "f")

    assert state.upsert_node(node) is True
    assert state.upsert_node(_function("a.py", "f")) is False
    assert state.nodes_in_file("a.py") == [node]
    assert state.files() == ["a.py"]


def test_parallel_call_edges_collapse():
    """Two calls between the same pair become one edge with a count of two."""
    from reachgraph.graph.store import GraphState

    state = GraphState()
    main, helper = _function("a.py", "main"), _function("b.py", "helper")
    state.upsert_node(main)
    state.upsert_node(helper)

    state.upsert_edge(_call(main, helper, "helper"))
    stored = state.upsert_edge(_call(main, helper, "b.helper"))

    assert state.edge_count() == 1
    assert stored.call_site_count == 2
    assert state.callees_of(main.id) == [stored]
    assert state.callers_of(helper.id) == [stored]


def test_read_and_write_edges_are_separate_relations():
    """A function reading and writing a field has one edge per access kind."""
    from reachgraph.facts.models import AccessKind
    from reachgraph.graph.models import AccessEdge, DataAccessNode
    from reachgraph.graph.store import GraphState

    state = GraphState()
    f = _function("a.py", "f")
    data = DataAccessNode("users", "email")
    state.upsert_node(f)
    state.upsert_node(data)

    state.upsert_edge(AccessEdge(f.id, data.id, AccessKind.READ))
    state.upsert_edge(AccessEdge(f.id, data.id, AccessKind.WRITE))

    assert state.edge_count() == 2
    assert [e.access for e in state.accessors_of(data.id)] == [AccessKind.READ, AccessKind.WRITE]


def test_upsert_edge_with_missing_endpoint_raises():
    """Edges must connect existing nodes."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.store import GraphState

    state = GraphState()
    main = _function("a.py", "main")
    state.upsert_node(main)

    with pytest.raises(GraphInvariantViolation):
        state.upsert_edge(_call(main, _function("b.py", "missing"), "missing"))


def test_remove_node_retargets_incoming_calls_to_unresolved():
    """Callers of a removed function keep an edge into an UnresolvedRef."""
    from reachgraph.graph.models import UnresolvedRef
    from reachgraph.graph.store import GraphState

    state = GraphState()
    main, helper = _function("a.py", "main"), _function("b.py", "helper")
    state.upsert_node(main)
    state.upsert_node(helper)
    state.upsert_edge(_call(main, helper, "helper"))

    state.remove_node(helper.id)

    sink = UnresolvedRef("helper")
    assert not state.has_node(helper.id)
    assert state.node(sink.id) == sink
    [edge] = state.callees_of(main.id)
    assert edge.callee == sink.id
    assert edge.confidence == 0.0
    assert edge.tier is None
    state.check_invariants()


def test_remove_file_drops_owned_nodes_and_intra_file_edges():
    """Removing a file does not leave sinks for calls inside that file."""
    from reachgraph.graph.store import GraphState

    state = GraphState()
    f, g = _function("b.py", "f"), _function("b.py", "g")
    caller = _function("a.py", "main")
    for node in (f, g, caller):
        state.upsert_node(node)
    state.upsert_edge(_call(f, g, "g"))
    state.upsert_edge(_call(caller, f, "f"))

    removed = state.remove_file("b.py")

    assert removed == sorted([f.id, g.id])
    assert state.files() == ["a.py"]
    # Only the cross-file call survives, retargeted
    assert [e.callee for e in state.edges()] == ["unresolved::f"]
    assert not state.has_node("unresolved::g")


def test_prune_orphans_removes_unreferenced_sinks():
    """Data and unresolved nodes nothing points at are pruned."""
    from reachgraph.graph.models import DataAccessNode, UnresolvedRef
    from reachgraph.graph.store import GraphState

    state = GraphState()
    state.upsert_node(_function("a.py", "f"))
    state.upsert_node(DataAccessNode("users", "email"))
    state.upsert_node(UnresolvedRef("gone"))

    assert state.prune_orphans() == ["data::users.email", "unresolved::gone"]
    assert state.node_count() == 1


def test_check_invariants_rejects_call_into_data_node(make_state):
    """A call edge may not target a data node."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.facts.models import ExtractionMethod
    from reachgraph.graph.models import CallEdge

    state = make_state(accesses=[("f", "users.email", "pii")])
    state.upsert_edge(
        CallEdge(
            caller="f.py::f@s",
            callee="data::users.email",
            callee_name="users",
            confidence=1.0,
            tier=None,
            method=ExtractionMethod.AST,
        )
    )

    with pytest.raises(GraphInvariantViolation):
        state.check_invariants()


def test_copy_is_independent(make_state):
    """Mutating a copy leaves the original untouched."""
    state = make_state(calls=[("a", "b")])
    clone = state.copy()

    clone.remove_file("b.py")

    assert state.has_node("b.py::b@s")
    assert not clone.has_node("b.py::b@s")
    assert state != clone


def test_state_equality_compares_content(make_state):
    """Two states built the same way are equal."""
    first = make_state(calls=[("a", "b")], accesses=[("b", "users.email", "pii")])
    second = make_state(calls=[("a", "b")], accesses=[("b", "users.email", "pii")])

    assert first == second


# =============================================================================
# GraphStore snapshots
# =============================================================================


def test_batch_publishes_on_success():
    """Changes made inside batch() become the new snapshot."""
    from reachgraph.graph.store import GraphStore

    store = GraphStore()
    before = store.snapshot()

    with store.batch() as staged:
        staged.upsert_node(_function("a.py", "f"))

    assert store.snapshot().node_count() == 1
    # Readers holding the old snapshot never see the change
    assert before.node_count() == 0


def test_batch_discards_on_error():
    """A batch that raises publishes nothing."""
    from reachgraph.graph.store import GraphStore

    store = GraphStore()

    with pytest.raises(RuntimeError):
        with store.batch() as staged:
            staged.upsert_node(_function("a.py", "f"))
            raise RuntimeError("boom")

    assert store.snapshot().node_count() == 0


def test_batch_rejects_inconsistent_state(make_state):
    """A staged state that violates invariants is not published."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.store import GraphStore

    store = GraphStore(make_state(calls=[("a", "b")]))

    with pytest.raises(GraphInvariantViolation):
        with store.batch() as staged:
            # Corrupt the file index behind the store's back
            staged._files["b.py"] = {"a.py::a@s"}

    assert store.snapshot().files() == ["a.py", "b.py"]
    store.snapshot().check_invariants()


def test_store_conveniences(make_state):
    """Single-operation helpers each run as their own batch."""
    from reachgraph.graph.store import GraphStore

    store = GraphStore(make_state(calls=[("a", "b")], entry_points=["a"]))

    assert [e.callee for e in store.callees_of("a.py::a@s")] == ["b.py::b@s"]
    assert [n.id for n in store.entry_points()] == ["a.py::a@s"]

    store.remove_file("b.py")

    assert [e.callee for e in store.callees_of("a.py::a@s")] == ["unresolved::b"]
