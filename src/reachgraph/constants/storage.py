"""On-disk layout of the persisted graph.

The graph is written under <project>/<data_dir>/graph/ as JSON shards keyed
by file-path prefix, so a large codebase never produces one giant file.
"""

# =============================================================================
# Format
# =============================================================================
# Bump when the node/edge/fingerprint JSON layout changes incompatibly.

STORE_FORMAT_VERSION = 1

# =============================================================================
# Directory and File Names
# =============================================================================

GRAPH_DIR = "graph"
GRAPH_STAGING_DIR = "graph-building"
NODES_DIR = "nodes"
EDGES_DIR = "edges"
FINGERPRINTS_DIR = "fingerprints"
FACTS_DIR = "facts"
SHARED_FILE = "shared.json"
METADATA_FILE = "metadata.json"

# Shard name for files that live directly in the project root.
ROOT_SHARD = "_root"
