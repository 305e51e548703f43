"""Pydantic schemas for scan summaries and query results.

These are the shapes handed to downstream consumers (CLI, dashboards,
editor integrations); every field is plain JSON data.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ReasonCode(str, Enum):
    """Why a query result is empty or partial."""

    ORIGIN_NOT_FOUND = "origin_not_found"
    TARGET_NOT_FOUND = "target_not_found"
    NO_ENTRY_POINTS = "no_entry_points"
    NO_SENSITIVE_DATA = "no_sensitive_data"


class RiskLevel(str, Enum):
    """Risk bucket of an impact assessment."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Scan
# =============================================================================


class FailedFile(BaseModel):
    """A file whose extraction failed; its previous contribution is kept."""

    path: str
    reason: str


class ScanSummary(BaseModel):
    """Outcome of one incremental or forced scan."""

    updated_node_count: int = 0
    updated_edge_count: int = 0
    unresolved_count: int = Field(0, description="Unresolved sites in the whole graph")
    duration_ms: float = 0.0
    files_scanned: int = 0
    files_skipped: int = 0
    files_removed: int = 0
    failed_files: list[FailedFile] = Field(default_factory=list)
    resolution_rate: float = 1.0
    tier_counts: dict[str, int] = Field(default_factory=dict)
    cancelled: bool = False
    forced: bool = False


# =============================================================================
# Reachability
# =============================================================================


class NodeRef(BaseModel):
    """A graph node as reported in query results."""

    id: str
    kind: str
    name: str
    file: str | None = None
    depth: int = 0
    sensitivity: str | None = None
    entry_point: str | None = Field(None, description="Entry point kind, if any")


class DataPath(BaseModel):
    """A sensitive data node and one concrete call path that reaches it."""

    data: NodeRef
    sensitivity: str
    access: list[str] = Field(default_factory=list, description="Access kinds along the last hop")
    path: list[str] = Field(..., description="FunctionNode ids from origin to the accessor")


class ReachResult(BaseModel):
    """Everything reachable from an origin within max_depth hops."""

    origin: str
    origin_ids: list[str] = Field(default_factory=list)
    max_depth: int
    nodes: list[NodeRef] = Field(default_factory=list)
    sensitive_paths: list[DataPath] = Field(default_factory=list)
    unresolved_calls: int = 0
    truncated: bool = False
    reason: ReasonCode | None = None


class EntryPointPath(BaseModel):
    """An entry point from which the target is reachable."""

    entry_point: NodeRef
    kind: str
    descriptor: str = ""
    path: list[str] = Field(..., description="FunctionNode ids from entry point to target")


class InverseResult(BaseModel):
    """Entry points that can reach a target within max_depth hops."""

    target: str
    target_ids: list[str] = Field(default_factory=list)
    max_depth: int
    entry_points: list[EntryPointPath] = Field(default_factory=list)
    reached_count: int = Field(0, description="Functions that can reach the target")
    truncated: bool = False
    reason: ReasonCode | None = None

    @property
    def paths(self) -> list[list[str]]:
        return [e.path for e in self.entry_points]


class RiskAssessment(BaseModel):
    """Deterministic risk score of a change target."""

    score: float = Field(..., ge=0.0, le=100.0)
    level: RiskLevel
    factors: dict[str, float] = Field(default_factory=dict)


class ImpactResult(BaseModel):
    """What reaches a target, what it reaches, and how risky changing it is."""

    target: str
    target_ids: list[str] = Field(default_factory=list)
    max_depth: int
    direct_callers: int = 0
    callers: list[NodeRef] = Field(default_factory=list, description="Transitive callers")
    entry_points: list[EntryPointPath] = Field(default_factory=list)
    sensitive_data_paths: list[DataPath] = Field(default_factory=list)
    affected_tests: list[str] | None = None
    risk: RiskAssessment
    truncated: bool = False
    reason: ReasonCode | None = None


# =============================================================================
# Boundaries
# =============================================================================


class BoundaryFinding(BaseModel):
    """A rule violation or warning on one access edge."""

    rule_id: str
    rule_kind: str
    severity: str = Field(..., description="violation or warning")
    source_file: str
    function: str
    access: str
    sensitivity: str
    message: str = ""
    path: list[str] = Field(default_factory=list)


class BoundaryReport(BaseModel):
    """Result of evaluating a rule set."""

    violations: list[BoundaryFinding] = Field(default_factory=list)
    warnings: list[BoundaryFinding] = Field(default_factory=list)
    rule_errors: list[str] = Field(default_factory=list)
    edges_checked: int = 0
