"""Tests for sharded JSON persistence of the graph."""

import json

import pytest


@pytest.fixture
def built(tmp_path, login_files):
    """A scanned login project: (config, state, records)."""
    from reachgraph.config import Config
    from reachgraph.facts.sensitivity import PatternClassifier
    from reachgraph.files import MemoryFileSource
    from reachgraph.graph.incremental import IncrementalMaintainer
    from reachgraph.graph.store import GraphStore

    files = dict(login_files)
    files["src/billing/invoices.py"] = (
        "def total(db):\n"
        '    return db.query("SELECT amount FROM invoices")\n'
    )
    store = GraphStore()
    maintainer = IncrementalMaintainer(
        store, MemoryFileSource(files), classifier=PatternClassifier()
    )
    maintainer.scan()
    return Config(tmp_path), store.snapshot(), maintainer.records()


@pytest.mark.parametrize(
    "path,depth,expected",
    [
        ("src/api/users.py", 2, "src__api"),
        ("src/api/users.py", 1, "src"),
        ("src/api/users.py", 0, "_root"),
        ("src/users.py", 3, "src"),
        ("main.py", 1, "_root"),
    ],
)
def test_shard_key(path, depth, expected):
    """Shards are the leading directory segments of a path."""
    from reachgraph.graph.persistence import shard_key

    assert shard_key(path, depth) == expected


def test_round_trip(built):
    """A saved graph loads back equal, with identical records."""
    from reachgraph.graph.persistence import load_graph, save_graph

    config, state, records = built

    save_graph(state, records, config)
    loaded_state, loaded_records = load_graph(config)

    assert loaded_state == state
    assert sorted(loaded_records, key=lambda r: r.path) == sorted(records, key=lambda r: r.path)


def test_layout_on_disk(built):
    """Function nodes and edges are sharded; sinks live in shared.json."""
    from reachgraph.graph.persistence import save_graph

    config, state, records = built

    root = save_graph(state, records, config)

    assert root == config.graph_path
    assert sorted(p.name for p in (root / "nodes").iterdir()) == ["_root.json", "src.json"]
    assert sorted(p.name for p in (root / "facts").iterdir()) == ["_root.json", "src.json"]
    shared = json.loads((root / "shared.json").read_text())
    assert {n["kind"] for n in shared} <= {"data", "unresolved"}
    metadata = json.loads((root / "metadata.json").read_text())
    assert metadata["version"] == 1
    assert metadata["node_count"] == state.node_count()
    assert not config.graph_staging_path.exists()


def test_missing_store_loads_empty(tmp_path):
    """A project that was never saved loads as an empty graph."""
    from reachgraph.config import Config
    from reachgraph.graph.persistence import load_graph

    state, records = load_graph(Config(tmp_path))

    assert state.node_count() == 0
    assert records == []


def test_version_mismatch_is_rejected(built):
    """Another format version is refused rather than misread."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.persistence import load_graph, save_graph

    config, state, records = built
    root = save_graph(state, records, config)
    metadata = json.loads((root / "metadata.json").read_text())
    metadata["version"] = 99
    (root / "metadata.json").write_text(json.dumps(metadata))

    with pytest.raises(GraphInvariantViolation, match="version 99"):
        load_graph(config)


def test_missing_endpoint_is_rejected(built):
    """Edges into nodes that were not persisted fail the load."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.persistence import load_graph, save_graph

    config, state, records = built
    root = save_graph(state, records, config)
    (root / "shared.json").write_text("[]")

    with pytest.raises(GraphInvariantViolation, match="missing endpoint"):
        load_graph(config)


def test_fingerprint_without_facts_is_rejected(built):
    """Every fingerprinted file needs its retained facts."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.persistence import load_graph, save_graph

    config, state, records = built
    root = save_graph(state, records, config)
    (root / "facts" / "src.json").write_text("[]")

    with pytest.raises(GraphInvariantViolation, match="no retained facts"):
        load_graph(config)


def test_unreadable_shard_is_rejected(built):
    """Corrupt JSON is reported as an unusable store."""
    from reachgraph.errors import GraphInvariantViolation
    from reachgraph.graph.persistence import load_graph, save_graph

    config, state, records = built
    root = save_graph(state, records, config)
    (root / "nodes" / "_root.json").write_text("{not json")

    with pytest.raises(GraphInvariantViolation, match="cannot read"):
        load_graph(config)


def test_interrupted_save_leaves_last_graph_intact(built):
    """Staging leftovers are detected and replaced by the next save."""
    from reachgraph.graph.persistence import has_incomplete_save, load_graph, save_graph

    config, state, records = built
    save_graph(state, records, config)
    config.graph_staging_path.mkdir(parents=True)
    (config.graph_staging_path / "metadata.json").write_text("garbage")

    assert has_incomplete_save(config)
    assert load_graph(config)[0] == state

    save_graph(state, records, config)

    assert not has_incomplete_save(config)
    assert load_graph(config)[0] == state
