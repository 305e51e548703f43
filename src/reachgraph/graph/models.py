"""Data models for the call/data-access graph."""

from dataclasses import dataclass, field, replace
from enum import Enum

from reachgraph.constants import (
    ANY_FIELD,
    EXACT_CONFIDENCE,
    FRAMEWORK_CONFIDENCE,
    HEURISTIC_CONFIDENCE,
    MODULE_SIGNATURE,
    MODULE_SYMBOL,
)
from reachgraph.facts.models import AccessKind, EntryPoint, ExtractionMethod, Sensitivity


class ResolutionTier(Enum):
    """How a call site was bound to its callee."""

    EXACT = "exact"
    HEURISTIC = "heuristic"
    FRAMEWORK = "framework"

    @property
    def ceiling(self) -> float:
        """Highest confidence an edge resolved by this tier can carry."""
        return _CEILINGS[self]


_CEILINGS = {
    ResolutionTier.EXACT: EXACT_CONFIDENCE,
    ResolutionTier.FRAMEWORK: FRAMEWORK_CONFIDENCE,
    ResolutionTier.HEURISTIC: HEURISTIC_CONFIDENCE,
}


class NodeKind(Enum):
    """Types of nodes in the graph."""

    FUNCTION = "function"
    DATA = "data"
    UNRESOLVED = "unresolved"


class EdgeKind(Enum):
    """Relation keys of the multigraph; one collapsed edge per (source, target, kind)."""

    CALLS = "calls"
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class FunctionNode:
    """A function or method, or the per-file module pseudo function.

    Identity is (file, qualified_name, signature_hash). Line numbers take no
    part in equality.
    """

    file: str
    qualified_name: str
    signature_hash: str
    language: str = "unknown"
    exported: bool = True
    structural_fingerprint: str = ""
    entry_point: EntryPoint | None = None
    line_start: int = field(default=0, compare=False)
    line_end: int = field(default=0, compare=False)

    kind = NodeKind.FUNCTION

    @property
    def id(self) -> str:
        return f"{self.file}::{self.qualified_name}@{self.signature_hash}"

    @property
    def name(self) -> str:
        """Simple name (last dotted segment)."""
        return self.qualified_name.rsplit(".", 1)[-1]

    @property
    def is_entry_point(self) -> bool:
        return self.entry_point is not None

    @property
    def is_module(self) -> bool:
        return self.qualified_name == MODULE_SYMBOL

    @classmethod
    def module(cls, file: str, language: str) -> "FunctionNode":
        """Pseudo function holding a file's top-level call and access sites."""
        return cls(
            file=file,
            qualified_name=MODULE_SYMBOL,
            signature_hash=MODULE_SIGNATURE,
            language=language,
            exported=False,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "file": self.file,
            "qualified_name": self.qualified_name,
            "signature_hash": self.signature_hash,
            "language": self.language,
            "exported": self.exported,
            "structural_fingerprint": self.structural_fingerprint,
            "entry_point": self.entry_point.to_dict() if self.entry_point else None,
            "line_start": self.line_start,
            "line_end": self.line_end,
        }


@dataclass(frozen=True)
class DataAccessNode:
    """A table or resource field with its sensitivity classification."""

    table: str
    field: str = ANY_FIELD
    sensitivity: Sensitivity = Sensitivity.NONE

    kind = NodeKind.DATA

    @property
    def id(self) -> str:
        return f"data::{self.pattern}"

    @property
    def pattern(self) -> str:
        """The "table.field" form boundary rules match against."""
        return f"{self.table}.{self.field}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "table": self.table,
            "field": self.field,
            "sensitivity": self.sensitivity.value,
        }


@dataclass(frozen=True)
class UnresolvedRef:
    """Sink for call sites that no tier could bind."""

    name: str

    kind = NodeKind.UNRESOLVED

    @property
    def id(self) -> str:
        return f"unresolved::{self.name}"

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "name": self.name}


Node = FunctionNode | DataAccessNode | UnresolvedRef


def node_from_dict(data: dict) -> Node:
    """Rebuild a node from its to_dict() form."""
    kind = NodeKind(data["kind"])
    if kind == NodeKind.DATA:
        return DataAccessNode(
            table=data["table"],
            field=data.get("field", ANY_FIELD),
            sensitivity=Sensitivity(data.get("sensitivity", "none")),
        )
    if kind == NodeKind.UNRESOLVED:
        return UnresolvedRef(name=data["name"])
    return FunctionNode(
        file=data["file"],
        qualified_name=data["qualified_name"],
        signature_hash=data["signature_hash"],
        language=data.get("language", "unknown"),
        exported=data.get("exported", True),
        structural_fingerprint=data.get("structural_fingerprint", ""),
        entry_point=EntryPoint.from_dict(data.get("entry_point")),
        line_start=data.get("line_start", 0),
        line_end=data.get("line_end", 0),
    )


# Preference among equally confident collapsed edges
_TIER_RANK = {
    None: 0,
    ResolutionTier.HEURISTIC: 1,
    ResolutionTier.FRAMEWORK: 2,
    ResolutionTier.EXACT: 3,
}


@dataclass(frozen=True)
class CallEdge:
    """Collapsed call relation between a caller and a callee (or unresolved sink)."""

    caller: str
    callee: str
    callee_name: str  # As written at the call site, smallest seen after collapsing
    confidence: float
    tier: ResolutionTier | None
    method: ExtractionMethod
    call_site_count: int = 1

    kind = EdgeKind.CALLS

    @property
    def source(self) -> str:
        return self.caller

    @property
    def target(self) -> str:
        return self.callee

    def _rank(self) -> tuple:
        return (self.confidence, _TIER_RANK[self.tier], self.method.value)

    def merge(self, other: "CallEdge") -> "CallEdge":
        """Collapse a parallel edge into this one.

        Counts add up; the binding with the highest confidence (then tier)
        is kept. The result does not depend on merge order.
        """
        best = self if self._rank() >= other._rank() else other
        return replace(
            best,
            callee_name=min(self.callee_name, other.callee_name),
            call_site_count=self.call_site_count + other.call_site_count,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "caller": self.caller,
            "callee": self.callee,
            "callee_name": self.callee_name,
            "confidence": self.confidence,
            "tier": self.tier.value if self.tier else None,
            "method": self.method.value,
            "call_site_count": self.call_site_count,
        }


@dataclass(frozen=True)
class AccessEdge:
    """Collapsed read or write of a data node by a function."""

    function: str
    data: str
    access: AccessKind
    access_count: int = 1

    @property
    def kind(self) -> EdgeKind:
        return EdgeKind(self.access.value)

    @property
    def source(self) -> str:
        return self.function

    @property
    def target(self) -> str:
        return self.data

    def merge(self, other: "AccessEdge") -> "AccessEdge":
        return replace(self, access_count=self.access_count + other.access_count)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "function": self.function,
            "data": self.data,
            "access": self.access.value,
            "access_count": self.access_count,
        }


Edge = CallEdge | AccessEdge


def edge_from_dict(data: dict) -> Edge:
    """Rebuild an edge from its to_dict() form."""
    if EdgeKind(data["kind"]) == EdgeKind.CALLS:
        tier = data.get("tier")
        return CallEdge(
            caller=data["caller"],
            callee=data["callee"],
            callee_name=data["callee_name"],
            confidence=data["confidence"],
            tier=ResolutionTier(tier) if tier else None,
            method=ExtractionMethod(data["method"]),
            call_site_count=data.get("call_site_count", 1),
        )
    return AccessEdge(
        function=data["function"],
        data=data["data"],
        access=AccessKind(data["access"]),
        access_count=data.get("access_count", 1),
    )
