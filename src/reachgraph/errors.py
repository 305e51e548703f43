"""Error taxonomy for graph construction and querying.

Only conditions that stop an operation are exceptions. Ambiguous resolution
degrades edge confidence and depth-bounded traversal marks its result as
truncated; neither raises.
"""


class ReachGraphError(Exception):
    """Base class for all reachgraph errors."""

    pass


class ExtractionFailure(ReachGraphError):
    """A single file's fact extraction failed or timed out.

    Recovered per file by the incremental maintainer: the file keeps its
    previous graph contribution and is listed in the scan summary.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class GraphInvariantViolation(ReachGraphError):
    """The graph tables are structurally inconsistent.

    Signals an internal bug. A scan that hits it publishes nothing; recover
    with a forced full rebuild.
    """

    pass


class RuleParseError(ReachGraphError):
    """A boundary rule is malformed."""

    def __init__(self, index: int | None, reason: str):
        self.index = index
        self.reason = reason
        where = f"rule #{index}" if index is not None else "rule file"
        super().__init__(f"{where}: {reason}")


class InvalidTransitionError(ReachGraphError):
    """A pattern lifecycle transition is not allowed from the current state."""

    pass


class ScanInProgressError(ReachGraphError):
    """Another scan already owns the graph store."""

    pass
