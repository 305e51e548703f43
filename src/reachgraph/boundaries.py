"""Boundary rules over sensitivity-tagged data access.

A rule matches access edges by the accessor's file (glob) and the accessed
``table.field`` pattern (glob), optionally narrowed to some sensitivity
classes:

- ``deny``: every matching edge is a violation.
- ``allow``: an edge whose access matches some allow rule must come from a
  file matching one of those rules' sources, else it is a violation.
- ``require``: a matching edge whose function has no callee or access
  matching the rule's companion glob is a warning.

Evaluation is a pure function of the rule set and the edge set.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any

import yaml

from reachgraph.errors import RuleParseError
from reachgraph.facts.models import Sensitivity
from reachgraph.graph.models import FunctionNode
from reachgraph.graph.reachability import bounded_bfs
from reachgraph.graph.store import GraphState
from reachgraph.schemas import BoundaryFinding, BoundaryReport

logger = logging.getLogger(__name__)


class RuleKind(Enum):
    ALLOW = "allow"
    DENY = "deny"
    REQUIRE = "require"


@dataclass(frozen=True)
class BoundaryRule:
    """One allow, deny or require clause."""

    id: str
    kind: RuleKind
    source: str
    access: str
    companion: str | None = None
    sensitivity: frozenset[Sensitivity] = frozenset()
    message: str = ""

    def matches_access(self, edge: "BoundaryEdge") -> bool:
        if self.sensitivity and edge.sensitivity not in self.sensitivity:
            return False
        return fnmatchcase(edge.access, self.access)

    def matches_source(self, edge: "BoundaryEdge") -> bool:
        return fnmatchcase(edge.source_file, self.source)


@dataclass
class RuleSet:
    """Parsed rules plus the messages of rules that failed to parse."""

    rules: list[BoundaryRule] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def of_kind(self, kind: RuleKind) -> list[BoundaryRule]:
        return [r for r in self.rules if r.kind == kind]


@dataclass(frozen=True)
class BoundaryEdge:
    """An access edge as seen by rule evaluation."""

    source_file: str
    function_id: str
    function: str
    access: str
    sensitivity: Sensitivity
    kinds: tuple[str, ...] = ()
    companions: frozenset[str] = frozenset()
    path: tuple[str, ...] = ()


# =============================================================================
# Loading
# =============================================================================


def _required_string(data: dict, key: str, index: int) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RuleParseError(index, f"missing or empty '{key}'")
    return value.strip()


def parse_rule(data: Any, index: int) -> BoundaryRule:
    """Parse one rule mapping.

    Raises:
        RuleParseError: If the rule is not a mapping or a field is invalid.
    """
    if not isinstance(data, dict):
        raise RuleParseError(index, f"expected a mapping, got {type(data).__name__}")

    raw_kind = _required_string(data, "kind", index)
    try:
        kind = RuleKind(raw_kind.lower())
    except ValueError:
        raise RuleParseError(index, f"unknown kind '{raw_kind}'") from None

    companion = data.get("companion")
    if kind == RuleKind.REQUIRE:
        companion = _required_string(data, "companion", index)
    elif companion is not None and not isinstance(companion, str):
        raise RuleParseError(index, "'companion' must be a string")

    raw_sensitivity = data.get("sensitivity") or []
    if isinstance(raw_sensitivity, str):
        raw_sensitivity = [raw_sensitivity]
    if not isinstance(raw_sensitivity, list):
        raise RuleParseError(index, "'sensitivity' must be a string or a list")
    try:
        sensitivity = frozenset(Sensitivity(str(s).lower()) for s in raw_sensitivity)
    except ValueError as e:
        raise RuleParseError(index, f"unknown sensitivity: {e}") from None

    return BoundaryRule(
        id=str(data.get("id") or f"rule-{index}"),
        kind=kind,
        source=_required_string(data, "source", index),
        access=_required_string(data, "access", index),
        companion=companion,
        sensitivity=sensitivity,
        message=str(data.get("message") or ""),
    )


def load_rules(items: list[Any]) -> RuleSet:
    """Parse a list of rule mappings, skipping malformed ones with a warning."""
    ruleset = RuleSet()
    for index, item in enumerate(items):
        try:
            ruleset.rules.append(parse_rule(item, index))
        except RuleParseError as e:
            logger.warning(f"Skipping boundary rule: {e}")
            ruleset.errors.append(str(e))
    return ruleset


def load_rules_text(text: str) -> RuleSet:
    """Parse rules from YAML: a ``rules:`` list or a bare list.

    Raises:
        RuleParseError: If the document is not valid YAML or has no rule list.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RuleParseError(None, f"invalid YAML: {e}") from e

    if data is None:
        return RuleSet()
    if isinstance(data, dict):
        data = data.get("rules") or []
    if not isinstance(data, list):
        raise RuleParseError(None, "expected a list of rules or a 'rules' key")
    return load_rules(data)


def load_rules_file(path: Path) -> RuleSet:
    """Load a YAML rule file; a missing file is an empty rule set."""
    if not path.exists():
        logger.debug(f"No boundary rule file at {path}")
        return RuleSet()
    return load_rules_text(path.read_text(encoding="utf-8"))


# =============================================================================
# Edge collection
# =============================================================================


def collect_edges(
    state: GraphState,
    files: list[str] | None,
    max_depth: int,
) -> list[BoundaryEdge]:
    """Access edges reachable from the functions of some files.

    Args:
        state: Graph snapshot.
        files: Changed or inspected files; None takes every function.
        max_depth: Hop bound of the forward traversal (the access hop counts).

    Returns:
        One BoundaryEdge per (function, data node), sorted.
    """
    if files is None:
        starts = sorted(n.id for n in state.function_nodes())
    else:
        starts = sorted({n.id for path in files for n in state.nodes_in_file(path)})
    if not starts:
        return []

    def callees(node_id: str) -> list[str]:
        return [
            e.target for e in state.callees_of(node_id)
            if isinstance(state.node(e.target), FunctionNode)
        ]

    traversal = bounded_bfs(starts, max(0, max_depth - 1), callees)
    edges = []
    for function_id in sorted(traversal.depth):
        function = state.node(function_id)
        accesses = state.accesses_of(function_id)
        if not accesses:
            continue
        companions = _companions(state, function_id)
        by_data: dict[str, list[str]] = {}
        for edge in accesses:
            by_data.setdefault(edge.target, []).append(edge.access.value)
        for data_id, kinds in sorted(by_data.items()):
            data = state.node(data_id)
            edges.append(
                BoundaryEdge(
                    source_file=function.file,
                    function_id=function_id,
                    function=function.qualified_name,
                    access=data.pattern,
                    sensitivity=data.sensitivity,
                    kinds=tuple(sorted(kinds)),
                    companions=companions,
                    path=traversal.path[function_id],
                )
            )
    return edges


def _companions(state: GraphState, function_id: str) -> frozenset[str]:
    """Names a require rule's companion can match: callees and accessed data."""
    names: set[str] = set()
    for edge in state.callees_of(function_id):
        names.add(edge.callee_name)
        target = state.node(edge.target)
        if isinstance(target, FunctionNode):
            names.add(target.qualified_name)
            names.add(target.name)
    for edge in state.accesses_of(function_id):
        names.add(state.node(edge.target).pattern)
    return frozenset(names)


# =============================================================================
# Evaluation
# =============================================================================


def _finding(
    rule: BoundaryRule, edge: BoundaryEdge, severity: str, default: str
) -> BoundaryFinding:
    return BoundaryFinding(
        rule_id=rule.id,
        rule_kind=rule.kind.value,
        severity=severity,
        source_file=edge.source_file,
        function=edge.function_id,
        access=edge.access,
        sensitivity=edge.sensitivity.value,
        message=rule.message or default,
        path=list(edge.path),
    )


def evaluate(ruleset: RuleSet, edges: list[BoundaryEdge]) -> BoundaryReport:
    """Check access edges against a rule set.

    Args:
        ruleset: Parsed rules; its parse errors are carried into the report.
        edges: Access edges to check.

    Returns:
        BoundaryReport with violations and warnings in a stable order.
    """
    violations: list[BoundaryFinding] = []
    warnings: list[BoundaryFinding] = []
    deny = ruleset.of_kind(RuleKind.DENY)
    allow = ruleset.of_kind(RuleKind.ALLOW)
    require = ruleset.of_kind(RuleKind.REQUIRE)

    for edge in edges:
        for rule in deny:
            if rule.matches_access(edge) and rule.matches_source(edge):
                violations.append(
                    _finding(rule, edge, "violation",
                             f"{edge.source_file} must not access {edge.access}")
                )

        scopes = [rule for rule in allow if rule.matches_access(edge)]
        if scopes and not any(rule.matches_source(edge) for rule in scopes):
            violations.append(
                _finding(scopes[0], edge, "violation",
                         f"{edge.access} may only be accessed from "
                         f"{', '.join(sorted({r.source for r in scopes}))}")
            )

        for rule in require:
            if not (rule.matches_access(edge) and rule.matches_source(edge)):
                continue
            if not any(fnmatchcase(name, rule.companion) for name in edge.companions):
                warnings.append(
                    _finding(rule, edge, "warning",
                             f"access to {edge.access} without {rule.companion}")
                )

    def order(finding: BoundaryFinding) -> tuple:
        return (finding.source_file, finding.function, finding.access, finding.rule_id)

    return BoundaryReport(
        violations=sorted(violations, key=order),
        warnings=sorted(warnings, key=order),
        rule_errors=list(ruleset.errors),
        edges_checked=len(edges),
    )
