"""Build graph tables from extracted file facts."""

from collections.abc import Iterable

from reachgraph.facts.models import DefinitionKind, FileFacts
from reachgraph.facts.sensitivity import Classifier
from reachgraph.graph.models import FunctionNode
from reachgraph.graph.resolver import FileResolution, Resolver, SymbolTable
from reachgraph.graph.store import GraphState


def file_contribution(facts: FileFacts) -> list[FunctionNode]:
    """FunctionNodes owned by a file.

    Classes are not nodes. When a symbol is defined twice the later
    definition wins. The module pseudo function is added only when some site
    lies outside every function of the file.

    Args:
        facts: The file's extracted facts.

    Returns:
        Nodes sorted by id.
    """
    nodes: dict[str, FunctionNode] = {}
    for definition in facts.definitions:
        if definition.kind == DefinitionKind.CLASS:
            continue
        nodes[definition.symbol] = FunctionNode(
            file=facts.path,
            qualified_name=definition.symbol,
            signature_hash=definition.signature_hash,
            language=facts.language,
            exported=definition.exported,
            structural_fingerprint=definition.structural_fingerprint,
            entry_point=definition.entry_point,
            line_start=definition.line_start,
            line_end=definition.line_end,
        )

    owners = {site.caller_symbol for site in facts.call_sites}
    owners |= {site.symbol for site in facts.access_sites}
    if owners - set(nodes):
        module = FunctionNode.module(facts.path, facts.language)
        nodes[module.qualified_name] = module

    return sorted(nodes.values(), key=lambda n: n.id)


def apply_resolution(state: GraphState, resolution: FileResolution) -> None:
    """Insert a file's resolved sinks and edges; the file's nodes must exist."""
    for sink in resolution.sinks:
        state.upsert_node(sink)
    for edge in resolution.call_edges:
        state.upsert_edge(edge)
    for edge in resolution.access_edges:
        state.upsert_edge(edge)


def build_graph(
    facts_list: Iterable[FileFacts],
    classifier: Classifier | None = None,
    ambiguity_penalty: float = 0.5,
) -> GraphState:
    """Build the graph of a set of files from scratch.

    Args:
        facts_list: Facts of every file in the project.
        classifier: Sensitivity lookup for data nodes.
        ambiguity_penalty: Confidence multiplier for ambiguous heuristic matches.

    Returns:
        A complete, collapsed GraphState.
    """
    state = GraphState()
    table = SymbolTable()
    ordered = sorted(facts_list, key=lambda f: f.path)

    for facts in ordered:
        nodes = file_contribution(facts)
        for node in nodes:
            state.upsert_node(node)
        table.update_file(facts.path, facts.language, facts.definitions, nodes)

    resolver = Resolver(table, classifier, ambiguity_penalty)
    for facts in ordered:
        apply_resolution(state, resolver.resolve_file(facts))

    state.check_invariants()
    return state
