"""Sharded JSON persistence of the graph and its fingerprint table.

Layout under ``<data_dir>/graph/``::

    metadata.json            format version, save time, counts
    shared.json              data and unresolved nodes (owned by no file)
    nodes/<shard>.json       function nodes of the files in a shard
    edges/<shard>.json       edges whose source lives in a shard
    fingerprints/<shard>.json
    facts/<shard>.json       retained facts, needed for re-resolution

A shard is the first ``shard_prefix_depth`` directory segments of a file
path. Saves build in ``graph-building/`` and only replace ``graph/`` once
every shard is written, so an interrupted save never corrupts the last good
copy.
"""

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from reachgraph.config import Config
from reachgraph.constants import (
    EDGES_DIR,
    FACTS_DIR,
    FINGERPRINTS_DIR,
    METADATA_FILE,
    NODES_DIR,
    ROOT_SHARD,
    SHARED_FILE,
    STORE_FORMAT_VERSION,
)
from reachgraph.errors import GraphInvariantViolation
from reachgraph.facts.models import FileFacts
from reachgraph.graph.incremental import FileFingerprint, FileRecord
from reachgraph.graph.models import FunctionNode, edge_from_dict, node_from_dict
from reachgraph.graph.resolver import ResolutionStats
from reachgraph.graph.store import GraphState

logger = logging.getLogger(__name__)


def shard_key(path: str, depth: int) -> str:
    """Shard name for a file path.

    >>> shard_key("src/api/users.py", 2)
    'src__api'
    """
    directories = path.split("/")[:-1][:depth]
    if not directories:
        return ROOT_SHARD
    return "__".join(directories)


def prepare_staging_directory(staging_path: Path) -> None:
    """Create an empty staging directory, wiping any incomplete save."""
    if staging_path.exists():
        shutil.rmtree(staging_path)
    staging_path.mkdir(parents=True, exist_ok=True)


def promote_staging_to_production(staging_path: Path, production_path: Path) -> None:
    """Replace the persisted graph with the staging directory."""
    if production_path.exists():
        shutil.rmtree(production_path)
    shutil.move(str(staging_path), str(production_path))


def has_incomplete_save(config: Config) -> bool:
    """True if a previous save left its staging directory behind."""
    return config.graph_staging_path.exists()


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise GraphInvariantViolation(f"cannot read {path}: {e}") from e


def save_graph(state: GraphState, records: list[FileRecord], config: Config) -> Path:
    """Persist a graph snapshot and its per-file records.

    Args:
        state: Snapshot to persist; it is only read.
        records: Fingerprints and facts of every tracked file.
        config: Project configuration with storage paths.

    Returns:
        Path of the persisted graph directory.
    """
    depth = config.storage.shard_prefix_depth
    staging = config.graph_staging_path
    prepare_staging_directory(staging)

    nodes: dict[str, list[dict]] = {}
    shared: list[dict] = []
    owner_shard: dict[str, str] = {}
    for node in sorted(state.nodes(), key=lambda n: n.id):
        if isinstance(node, FunctionNode):
            shard = shard_key(node.file, depth)
            owner_shard[node.id] = shard
            nodes.setdefault(shard, []).append(node.to_dict())
        else:
            shared.append(node.to_dict())

    edges: dict[str, list[dict]] = {}
    for edge in sorted(state.edges(), key=lambda e: (e.source, e.target, e.kind.value)):
        edges.setdefault(owner_shard[edge.source], []).append(edge.to_dict())

    fingerprints: dict[str, list[dict]] = {}
    facts: dict[str, list[dict]] = {}
    for record in sorted(records, key=lambda r: r.path):
        shard = shard_key(record.path, depth)
        fingerprints.setdefault(shard, []).append(
            {
                "path": record.path,
                "content_hash": record.fingerprint.content_hash,
                "dependencies": sorted(record.fingerprint.dependencies),
                "referenced_names": sorted(record.referenced_names),
                "stats": record.stats.to_dict(),
            }
        )
        facts.setdefault(shard, []).append(record.facts.to_dict())

    for directory, shards in (
        (NODES_DIR, nodes),
        (EDGES_DIR, edges),
        (FINGERPRINTS_DIR, fingerprints),
        (FACTS_DIR, facts),
    ):
        for shard, items in shards.items():
            _write_json(staging / directory / f"{shard}.json", items)
    _write_json(staging / SHARED_FILE, shared)
    _write_json(
        staging / METADATA_FILE,
        {
            "version": STORE_FORMAT_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "node_count": state.node_count(),
            "edge_count": state.edge_count(),
            "file_count": len(records),
        },
    )

    promote_staging_to_production(staging, config.graph_path)
    logger.info(
        f"Saved graph: {state.node_count()} nodes, {state.edge_count()} edges, "
        f"{len(records)} files to {config.graph_path}"
    )
    return config.graph_path


def load_graph(config: Config) -> tuple[GraphState, list[FileRecord]]:
    """Load the persisted graph and records.

    A project that was never saved loads as an empty graph.

    Raises:
        GraphInvariantViolation: If the store has another format version, is
            unreadable, or does not satisfy the graph invariants.
    """
    root = config.graph_path
    metadata_path = root / METADATA_FILE
    if not metadata_path.exists():
        logger.debug(f"No persisted graph at {root}")
        return GraphState(), []

    metadata = _read_json(metadata_path)
    version = metadata.get("version")
    if version != STORE_FORMAT_VERSION:
        raise GraphInvariantViolation(
            f"graph store version {version} is not supported (expected {STORE_FORMAT_VERSION})"
        )

    state = GraphState()
    for data in _read_json(root / SHARED_FILE):
        state.upsert_node(node_from_dict(data))
    for shard in sorted((root / NODES_DIR).glob("*.json")):
        for data in _read_json(shard):
            state.upsert_node(node_from_dict(data))
    for shard in sorted((root / EDGES_DIR).glob("*.json")):
        for data in _read_json(shard):
            edge = edge_from_dict(data)
            if not state.has_node(edge.source) or not state.has_node(edge.target):
                raise GraphInvariantViolation(
                    f"persisted edge {edge.source} -> {edge.target} has a missing endpoint"
                )
            state.upsert_edge(edge)
    state.check_invariants()

    facts_by_path: dict[str, FileFacts] = {}
    for shard in sorted((root / FACTS_DIR).glob("*.json")):
        for data in _read_json(shard):
            facts = FileFacts.from_dict(data)
            facts_by_path[facts.path] = facts

    records: list[FileRecord] = []
    for shard in sorted((root / FINGERPRINTS_DIR).glob("*.json")):
        for data in _read_json(shard):
            path = data["path"]
            if path not in facts_by_path:
                raise GraphInvariantViolation(f"fingerprint of {path} has no retained facts")
            records.append(
                FileRecord(
                    fingerprint=FileFingerprint(
                        path, data["content_hash"], frozenset(data.get("dependencies", []))
                    ),
                    facts=facts_by_path[path],
                    referenced_names=frozenset(data.get("referenced_names", [])),
                    stats=ResolutionStats.from_dict(data.get("stats", {})),
                )
            )

    logger.info(
        f"Loaded graph: {state.node_count()} nodes, {state.edge_count()} edges, "
        f"{len(records)} files from {root}"
    )
    return state, records
