"""Project handles: one graph per project with an explicit lifecycle.

``open_project`` loads the persisted graph (if any) and returns a
ProjectGraph; callers thread that handle through scans and queries and end
with ``close_project``, which saves by default. There is no module-level
graph state.
"""

import logging
import threading
from pathlib import Path
from typing import Any

from reachgraph.boundaries import (
    RuleSet,
    collect_edges,
    evaluate,
    load_rules,
    load_rules_file,
)
from reachgraph.config import Config, load_config
from reachgraph.errors import GraphInvariantViolation, ReachGraphError
from reachgraph.facts.registry import ProviderRegistry
from reachgraph.facts.sensitivity import Classifier, PatternClassifier
from reachgraph.files import DiskFileSource, FileFilter, FileSource
from reachgraph.graph import reachability
from reachgraph.graph.incremental import IncrementalMaintainer
from reachgraph.graph.persistence import has_incomplete_save, load_graph, save_graph
from reachgraph.graph.reachability import TopologyLookup
from reachgraph.graph.store import GraphState, GraphStore
from reachgraph.patterns import PatternInstance, group_by_fingerprint
from reachgraph.schemas import (
    BoundaryReport,
    ImpactResult,
    InverseResult,
    ReachResult,
    ScanSummary,
)

logger = logging.getLogger(__name__)

Rules = RuleSet | list[dict[str, Any]] | Path | None


class ProjectGraph:
    """Scan and query operations on one project's graph.

    Queries read the snapshot published by the last completed scan, so they
    may run while the next scan extracts and merges.
    """

    def __init__(
        self,
        config: Config,
        store: GraphStore,
        maintainer: IncrementalMaintainer,
        test_topology: TopologyLookup | None = None,
        needs_rebuild: bool = False,
    ):
        self.config = config
        self.store = store
        self.maintainer = maintainer
        self.test_topology = test_topology
        self.needs_rebuild = needs_rebuild
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> GraphState:
        self._check_open()
        return self.store.snapshot()

    def _check_open(self) -> None:
        if self._closed:
            raise ReachGraphError(f"project graph for {self.config.project_path} is closed")

    # -------------------------------------------------------------------------
    # Scan
    # -------------------------------------------------------------------------

    def scan(
        self,
        changed_files: list[str] | None = None,
        force: bool = False,
        cancel: threading.Event | None = None,
    ) -> ScanSummary:
        """Update the graph; see IncrementalMaintainer.scan.

        A project whose persisted graph could not be loaded is rebuilt in
        full on its first scan.
        """
        self._check_open()
        if self.needs_rebuild and not force:
            logger.info("Persisted graph was unusable, forcing a full rebuild")
            force = True
            changed_files = None
        summary = self.maintainer.scan(changed_files, force=force, cancel=cancel)
        if force and not summary.cancelled:
            self.needs_rebuild = False
        return summary

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _depth(self, max_depth: int | None) -> int:
        return reachability.default_depth(max_depth, self.config.reach)

    def _confidence(self, min_confidence: float | None) -> float:
        return self.config.reach.min_confidence if min_confidence is None else min_confidence

    def reach(
        self,
        origin: str,
        max_depth: int | None = None,
        min_confidence: float | None = None,
    ) -> ReachResult:
        return reachability.forward(
            self.snapshot(), origin, self._depth(max_depth), self._confidence(min_confidence)
        )

    def inverse(
        self,
        target: str,
        max_depth: int | None = None,
        min_confidence: float | None = None,
    ) -> InverseResult:
        return reachability.inverse(
            self.snapshot(), target, self._depth(max_depth), self._confidence(min_confidence)
        )

    def impact(
        self,
        target: str,
        max_depth: int | None = None,
        coverage: float | None = None,
        min_confidence: float | None = None,
    ) -> ImpactResult:
        return reachability.impact(
            self.snapshot(),
            target,
            self._depth(max_depth),
            self.config.risk,
            coverage=coverage,
            test_topology=self.test_topology,
            min_confidence=self._confidence(min_confidence),
        )

    def load_rules(self, rules: Rules = None) -> RuleSet:
        """Rule set from parsed rules, raw mappings, a YAML file or the default file."""
        if isinstance(rules, RuleSet):
            return rules
        if isinstance(rules, list):
            return load_rules(rules)
        return load_rules_file(rules if rules is not None else self.config.rules_path)

    def check_boundaries(
        self,
        files: list[str] | None = None,
        rules: Rules = None,
        max_depth: int | None = None,
    ) -> BoundaryReport:
        """Evaluate boundary rules on access edges reachable from some files.

        Args:
            files: Changed or inspected files; None checks the whole graph.
            rules: See ``load_rules``.
            max_depth: Hop bound; defaults to the configured depth.

        Raises:
            RuleParseError: If the rule file itself is not valid YAML.
        """
        ruleset = self.load_rules(rules)
        edges = collect_edges(self.snapshot(), files, self._depth(max_depth))
        return evaluate(ruleset, edges)

    def patterns(self, min_size: int = 2) -> list[PatternInstance]:
        """Functions grouped by structural fingerprint."""
        return group_by_fingerprint(self.snapshot().function_nodes(), min_size)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def save(self) -> Path:
        self._check_open()
        return save_graph(self.store.snapshot(), self.maintainer.records(), self.config)

    def close(self, save: bool = True) -> None:
        if self._closed:
            return
        if save:
            self.save()
        self._closed = True
        logger.info(f"Closed project graph for {self.config.project_path}")

    def __enter__(self) -> "ProjectGraph":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(save=exc_type is None)


def open_project(
    project_path: Path,
    config: Config | None = None,
    file_source: FileSource | None = None,
    classifier: Classifier | None = None,
    registry: ProviderRegistry | None = None,
    test_topology: TopologyLookup | None = None,
    load: bool = True,
) -> ProjectGraph:
    """Open the graph of a project.

    Args:
        project_path: Project root.
        config: Configuration; defaults to ``load_config(project_path)``.
        file_source: Where scans read files; defaults to the project
            directory filtered by the configured excludes and size limit.
        classifier: Sensitivity lookup; defaults to PatternClassifier.
        registry: Fact providers; defaults to the built-in providers.
        test_topology: Maps node ids to tests for impact queries.
        load: Load the persisted graph, if there is one.

    Returns:
        An open ProjectGraph. If the persisted graph is unusable the handle
        starts empty and its first scan is a full rebuild.
    """
    project_path = Path(project_path)
    config = config or load_config(project_path)
    registry = registry or ProviderRegistry()
    if file_source is None:
        file_filter = FileFilter(
            project_path,
            max_file_size_kb=config.scan.max_file_size_kb,
            ignore_path=config.ignore_path,
        )
        file_source = DiskFileSource(project_path, file_filter, supports=registry.supports)

    store = GraphStore()
    maintainer = IncrementalMaintainer(
        store,
        file_source,
        registry=registry,
        classifier=classifier or PatternClassifier(),
        scan_config=config.scan,
        resolver_config=config.resolver,
    )

    needs_rebuild = False
    if load:
        if has_incomplete_save(config):
            logger.warning(
                f"Found an interrupted save in {config.graph_staging_path}, "
                "loading the last complete graph"
            )
        try:
            state, records = load_graph(config)
            store.replace(state)
            maintainer.restore(records)
        except GraphInvariantViolation as e:
            logger.error(f"Persisted graph is unusable, a full rebuild is required: {e}")
            store.replace(GraphState())
            needs_rebuild = True

    logger.info(f"Opened project graph for {project_path}")
    return ProjectGraph(config, store, maintainer, test_topology, needs_rebuild)


def close_project(handle: ProjectGraph, save: bool = True) -> None:
    """Close a project handle, saving its graph unless told otherwise."""
    handle.close(save=save)
