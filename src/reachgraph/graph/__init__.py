"""Call and data-access graph: construction, maintenance and queries."""

from reachgraph.graph.models import (
    AccessEdge,
    CallEdge,
    DataAccessNode,
    EdgeKind,
    FunctionNode,
    NodeKind,
    ResolutionTier,
    UnresolvedRef,
)
from reachgraph.graph.store import GraphState, GraphStore
from reachgraph.graph.resolver import Resolver, SymbolTable
from reachgraph.graph.builder import build_graph, file_contribution
from reachgraph.graph.incremental import FileFingerprint, IncrementalMaintainer
from reachgraph.graph.persistence import load_graph, save_graph
from reachgraph.graph.reachability import forward, impact, inverse
from reachgraph.graph.risk import assess_risk

__all__ = [
    # Models
    "AccessEdge",
    "CallEdge",
    "DataAccessNode",
    "EdgeKind",
    "FunctionNode",
    "NodeKind",
    "ResolutionTier",
    "UnresolvedRef",
    # Store
    "GraphState",
    "GraphStore",
    # Resolution and building
    "Resolver",
    "SymbolTable",
    "build_graph",
    "file_contribution",
    # Incremental maintenance
    "FileFingerprint",
    "IncrementalMaintainer",
    # Persistence
    "save_graph",
    "load_graph",
    # Queries
    "forward",
    "inverse",
    "impact",
    "assess_risk",
]
