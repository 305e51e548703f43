"""Shared pytest fixtures for all tests."""

import pytest


# =============================================================================
# Sample projects
# =============================================================================

LOGIN_FILES = {
    "api.py": '''from fastapi import FastAPI

from auth import verify_password

app = FastAPI()


@app.post("/login")
def login(db, username, password):
    return verify_password(db, username, password)
''',
    "auth.py": '''def verify_password(db, username, password):
    row = db.query("SELECT password_hash FROM users WHERE username = ?", username)
    return row is not None and check_hash(row, password)


def check_hash(row, password):
    return row == password
''',
}


MUTUAL_FILES = {
    "a.py": '''from b import g


def f(n):
    return g(n)
''',
    "b.py": '''from a import f


def g(n):
    return f(n)
''',
}


@pytest.fixture
def login_files():
    """Scenario with login -> verify_password -> users.password_hash."""
    return dict(LOGIN_FILES)


@pytest.fixture
def mutual_files():
    """Two files whose functions call each other."""
    return dict(MUTUAL_FILES)


@pytest.fixture
def open_memory_project(tmp_path):
    """Factory opening project graphs over in-memory files.

    Returns (handle, source); handles are closed without saving at teardown.
    """
    from reachgraph.config import Config
    from reachgraph.files import MemoryFileSource
    from reachgraph.project import open_project

    handles = []

    def _open(files, config=None, **kwargs):
        source = MemoryFileSource(files)
        handle = open_project(
            tmp_path, config=config or Config(tmp_path), file_source=source, **kwargs
        )
        handles.append(handle)
        return handle, source

    yield _open

    for handle in handles:
        handle.close(save=False)


# =============================================================================
# Hand-built graphs
# =============================================================================


def function_id(name: str) -> str:
    """Id of the function a ``make_state`` name stands for."""
    return f"{name}.py::{name}@s"


@pytest.fixture
def fid():
    return function_id


@pytest.fixture
def make_state():
    """Factory for small graph states.

    Every function name becomes its own file ``<name>.py``. Calls are
    ``(caller, callee)`` or ``(caller, callee, confidence)``; accesses are
    ``(function, "table.field", sensitivity)`` with an optional trailing
    access kind; ``unresolved`` lists ``(caller, name)`` pairs.
    """
    from reachgraph.facts.models import (
        AccessKind,
        EntryPoint,
        EntryPointKind,
        ExtractionMethod,
        Sensitivity,
    )
    from reachgraph.graph.models import (
        AccessEdge,
        CallEdge,
        DataAccessNode,
        FunctionNode,
        ResolutionTier,
        UnresolvedRef,
    )
    from reachgraph.graph.store import GraphState

    def _make(calls=(), accesses=(), entry_points=(), unresolved=(), functions=()):
        state = GraphState()

        def ensure(name):
            node = FunctionNode(
                file=f"{name}.py",
                qualified_name=name,
                signature_hash="s",
                language="python",
                entry_point=(
                    EntryPoint(EntryPointKind.HTTP_ROUTE, f"GET /{name}")
                    if name in entry_points
                    else None
                ),
            )
            if not state.has_node(node.id):
                state.upsert_node(node)
            return node.id

        for name in functions:
            ensure(name)
        for name in entry_points:
            ensure(name)

        for call in calls:
            caller, callee = call[0], call[1]
            confidence = call[2] if len(call) > 2 else 1.0
            tier = ResolutionTier.EXACT if confidence == 1.0 else ResolutionTier.HEURISTIC
            state.upsert_edge(
                CallEdge(
                    caller=ensure(caller),
                    callee=ensure(callee),
                    callee_name=callee,
                    confidence=confidence,
                    tier=tier,
                    method=ExtractionMethod.AST,
                )
            )

        for access in accesses:
            name, pattern, sensitivity = access[0], access[1], access[2]
            kind = AccessKind(access[3]) if len(access) > 3 else AccessKind.READ
            table, field_name = pattern.split(".", 1)
            data = DataAccessNode(table, field_name, Sensitivity(sensitivity))
            state.upsert_node(data)
            state.upsert_edge(AccessEdge(function=ensure(name), data=data.id, access=kind))

        for caller, name in unresolved:
            sink = UnresolvedRef(name)
            state.upsert_node(sink)
            state.upsert_edge(
                CallEdge(
                    caller=ensure(caller),
                    callee=sink.id,
                    callee_name=name,
                    confidence=0.0,
                    tier=None,
                    method=ExtractionMethod.AST,
                )
            )

        state.check_invariants()
        return state

    return _make
