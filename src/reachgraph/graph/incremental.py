"""Incremental graph maintenance.

Every tracked file has a fingerprint (content hash plus the files its edges
resolved into) and a retained copy of its facts. A scan re-extracts only
files whose content hash changed, merges their node diff into a staged copy
of the graph, and re-resolves exactly the files whose bindings may have
moved:

- files that were re-extracted,
- files with edges into a file whose node identities changed,
- files referencing a name that gained or lost a definition, an export or
  an identity anywhere in the project.

The staged graph is published atomically, so a scan yields the same graph
as a forced rebuild of the final file set.
"""

import hashlib
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from reachgraph.config import ResolverConfig, ScanConfig
from reachgraph.errors import ExtractionFailure, ScanInProgressError
from reachgraph.facts.models import FileFacts
from reachgraph.facts.registry import ProviderRegistry
from reachgraph.facts.sensitivity import Classifier
from reachgraph.files import FileSource
from reachgraph.graph.builder import apply_resolution, file_contribution
from reachgraph.graph.resolver import ResolutionStats, Resolver, SymbolTable
from reachgraph.graph.store import GraphState, GraphStore
from reachgraph.schemas import FailedFile, ScanSummary

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    """SHA-256 of file text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FileFingerprint:
    """Content hash of a tracked file and the files its edges resolved into."""

    path: str
    content_hash: str
    dependencies: frozenset[str] = frozenset()


@dataclass
class FileRecord:
    """Everything the maintainer keeps per tracked file."""

    fingerprint: FileFingerprint
    facts: FileFacts
    referenced_names: frozenset[str] = frozenset()
    stats: ResolutionStats = field(default_factory=ResolutionStats)

    @property
    def path(self) -> str:
        return self.fingerprint.path


class MaintainerState:
    """Fingerprint and fact tables plus the indexes derived from them."""

    def __init__(self):
        self.records: dict[str, FileRecord] = {}
        self.table = SymbolTable()
        # file -> files whose edges resolved into it
        self._dependents: dict[str, set[str]] = {}
        # name -> files referencing it
        self._name_index: dict[str, set[str]] = {}

    def copy(self) -> "MaintainerState":
        clone = MaintainerState()
        clone.records = dict(self.records)
        clone.table = self.table.copy()
        clone._dependents = {k: set(v) for k, v in self._dependents.items()}
        clone._name_index = {k: set(v) for k, v in self._name_index.items()}
        return clone

    def set_record(self, record: FileRecord) -> None:
        self.drop_record(record.path)
        self.records[record.path] = record
        for dependency in record.fingerprint.dependencies:
            self._dependents.setdefault(dependency, set()).add(record.path)
        for name in record.referenced_names:
            self._name_index.setdefault(name, set()).add(record.path)

    def drop_record(self, path: str) -> None:
        """Forget a file's record; files depending on it stay indexed."""
        old = self.records.pop(path, None)
        if old is None:
            return
        for index, keys in (
            (self._dependents, old.fingerprint.dependencies),
            (self._name_index, old.referenced_names),
        ):
            for key in keys:
                files = index.get(key)
                if files is not None:
                    files.discard(path)
                    if not files:
                        del index[key]

    def dependents_of(self, path: str) -> set[str]:
        return set(self._dependents.get(path, ()))

    def files_referencing(self, names: set[str]) -> set[str]:
        found: set[str] = set()
        for name in names:
            found |= self._name_index.get(name, set())
        return found

    def totals(self) -> ResolutionStats:
        total = ResolutionStats()
        for record in self.records.values():
            total.add(record.stats)
        return total


@dataclass
class _Extracted:
    path: str
    content_hash: str
    facts: FileFacts


class IncrementalMaintainer:
    """Keeps a GraphStore in step with a file source.

    The maintainer exclusively owns the store's write side and its own
    fingerprint table; scans are serialised.
    """

    def __init__(
        self,
        store: GraphStore,
        source: FileSource,
        registry: ProviderRegistry | None = None,
        classifier: Classifier | None = None,
        scan_config: ScanConfig | None = None,
        resolver_config: ResolverConfig | None = None,
    ):
        self.store = store
        self.source = source
        self.registry = registry or ProviderRegistry()
        self.classifier = classifier
        self.scan_config = scan_config or ScanConfig(
            worker_count=4, extraction_timeout_seconds=30.0, max_file_size_kb=500
        )
        self.resolver_config = resolver_config or ResolverConfig(
            ambiguity_penalty=0.5, low_resolution_warning_rate=0.5
        )
        self._state = MaintainerState()
        self._scan_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def fingerprints(self) -> dict[str, FileFingerprint]:
        return {path: r.fingerprint for path, r in self._state.records.items()}

    def records(self) -> list[FileRecord]:
        return [self._state.records[path] for path in sorted(self._state.records)]

    def tracked_files(self) -> list[str]:
        return sorted(self._state.records)

    def restore(self, records: list[FileRecord]) -> None:
        """Adopt persisted records; the store must hold the matching graph."""
        state = MaintainerState()
        for record in records:
            nodes = file_contribution(record.facts)
            state.table.update_file(record.path, record.facts.language, record.facts.definitions,
                                    nodes)
            state.set_record(record)
        self._state = state

    # -------------------------------------------------------------------------
    # Scan
    # -------------------------------------------------------------------------

    def scan(
        self,
        changed_files: list[str] | None = None,
        force: bool = False,
        cancel: threading.Event | None = None,
    ) -> ScanSummary:
        """Bring the graph up to date with the file source.

        Args:
            changed_files: Paths to examine. None walks the whole source and
                also notices deleted files. Ignored when force is set.
            force: Ignore fingerprints and rebuild every file from scratch,
                re-reading the whole source.
            cancel: Event checked between file units; when set, files not yet
                extracted are left for the next scan.

        Returns:
            ScanSummary with change counts and resolution quality.

        Raises:
            ScanInProgressError: If another scan is running.
            GraphInvariantViolation: If the merged graph is inconsistent; the
                published graph is left untouched.
        """
        if not self._scan_lock.acquire(blocking=False):
            raise ScanInProgressError("a scan is already running on this graph")
        try:
            return self._scan(changed_files, force, cancel)
        finally:
            self._scan_lock.release()

    def _scan(
        self,
        changed_files: list[str] | None,
        force: bool,
        cancel: threading.Event | None,
    ) -> ScanSummary:
        start = time.perf_counter()
        summary = ScanSummary(forced=force)
        previous = self._state
        mode = "forced" if force else "incremental"
        if force:
            changed_files = None
        scope = "all files" if changed_files is None else f"{len(changed_files)} files"
        logger.info(f"Scan started ({mode}, {scope})")

        if changed_files is None:
            candidates = set(self.source.list_files()) | set(previous.records)
        else:
            candidates = set(changed_files)

        pending: dict[str, tuple[str, str]] = {}
        deleted: list[str] = []
        for path in sorted(candidates):
            if not self.registry.supports(path):
                continue
            content = self.source.read(path)
            if content is None:
                if path in previous.records:
                    deleted.append(path)
                continue
            digest = content_hash(content)
            record = previous.records.get(path)
            if not force and record is not None and record.fingerprint.content_hash == digest:
                logger.debug(f"Skipping {path}: unchanged")
                summary.files_skipped += 1
                continue
            pending[path] = (digest, content)

        extracted, failed, cancelled = self._extract_all(pending, cancel)
        summary.files_scanned = len(extracted) + len(failed)
        summary.failed_files = failed
        summary.cancelled = cancelled

        if force:
            # The rebuild starts empty; files not extracted this time (failed or
            # cancelled) are rebuilt from their retained facts
            for path, record in previous.records.items():
                if path not in extracted and path not in deleted:
                    extracted[path] = _Extracted(
                        path, record.fingerprint.content_hash, record.facts
                    )

        before = self.store.snapshot()
        with self.store.batch() as staged:
            state = MaintainerState() if force else previous.copy()
            if force:
                staged.clear()
            self._merge(staged, state, extracted, [] if force else deleted)
            summary.updated_node_count, summary.updated_edge_count = _diff_counts(before, staged)
        self._state = state

        summary.files_removed = len(deleted)
        totals = state.totals()
        summary.unresolved_count = totals.unresolved
        summary.resolution_rate = round(totals.resolution_rate, 4)
        summary.tier_counts = dict(sorted(totals.tiers.items()))
        summary.duration_ms = round((time.perf_counter() - start) * 1000, 3)

        threshold = self.resolver_config.low_resolution_warning_rate
        if totals.sites and totals.resolution_rate < threshold:
            logger.warning(
                f"Low resolution rate {totals.resolution_rate:.0%}: "
                f"{totals.unresolved} of {totals.sites} sites unresolved"
            )
        logger.info(
            f"Scan finished: {summary.files_scanned} scanned, {summary.files_skipped} skipped, "
            f"{summary.files_removed} removed, {len(failed)} failed, "
            f"{summary.updated_node_count} nodes and {summary.updated_edge_count} edges updated "
            f"in {summary.duration_ms:.0f}ms"
        )
        return summary

    def _extract_all(
        self,
        pending: dict[str, tuple[str, str]],
        cancel: threading.Event | None,
    ) -> tuple[dict[str, _Extracted], list[FailedFile], bool]:
        """Extract facts on a worker pool with a per-file timeout.

        Files are handed to the pool only when a worker is free, so each
        file's deadline runs from the moment its own extraction starts. A
        worker stuck past its deadline cannot be reclaimed: its file is marked
        failed and the remaining files move to a fresh pool.
        """
        extracted: dict[str, _Extracted] = {}
        failed: list[FailedFile] = []
        if not pending:
            return extracted, failed, False
        if cancel is not None and cancel.is_set():
            logger.debug("Scan cancelled before extraction")
            return extracted, failed, True

        timeout = self.scan_config.extraction_timeout_seconds
        workers = self.scan_config.worker_count
        queue = sorted(pending)
        running: dict[Future, tuple[str, float]] = {}
        executor = ThreadPoolExecutor(max_workers=workers)
        cancelled = False
        try:
            while queue or running:
                if cancel is not None and cancel.is_set():
                    logger.debug(f"Scan cancelled with {len(queue) + len(running)} files left")
                    cancelled = True
                    break
                while queue and len(running) < workers:
                    path = queue.pop(0)
                    future = executor.submit(self.registry.extract, path, pending[path][1])
                    running[future] = (path, time.monotonic() + timeout)

                nearest = min(deadline for _, deadline in running.values())
                done, _ = wait(
                    list(running),
                    timeout=max(0.0, nearest - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for future in sorted(done, key=lambda f: running[f][0]):
                    path, _ = running.pop(future)
                    result = self._collect(path, future, failed)
                    if result is not None:
                        extracted[path] = _Extracted(path, pending[path][0], result)

                now = time.monotonic()
                overdue = sorted(
                    (path, future)
                    for future, (path, deadline) in running.items()
                    if deadline <= now and not future.done()
                )
                if overdue:
                    for path, future in overdue:
                        del running[future]
                        failure = ExtractionFailure(path, f"timed out after {timeout}s")
                        logger.warning(f"Extraction failed: {failure}")
                        failed.append(FailedFile(path=path, reason=failure.reason))
                    # Hung threads stay with the old pool
                    executor.shutdown(wait=False)
                    executor = ThreadPoolExecutor(max_workers=workers)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return extracted, failed, cancelled

    def _collect(self, path: str, future: Future, failed: list[FailedFile]) -> FileFacts | None:
        """Facts of a finished extraction, or None after recording the failure."""
        try:
            result = future.result()
            if not result.ok:
                raise ExtractionFailure(path, result.error or "extraction failed")
        except ExtractionFailure as e:
            logger.warning(f"Extraction failed: {e}")
            failed.append(FailedFile(path=path, reason=e.reason))
            return None
        except Exception as e:
            logger.warning(f"Extraction failed: {path}: {e}")
            failed.append(FailedFile(path=path, reason=f"{type(e).__name__}: {e}"))
            return None
        return result.facts

    def _merge(
        self,
        staged: GraphState,
        state: MaintainerState,
        extracted: dict[str, _Extracted],
        deleted: list[str],
    ) -> None:
        """Apply deletions and new facts, then re-resolve every affected file."""
        changed_names: set[str] = set()
        identity_changed: set[str] = set()

        for path in sorted(deleted):
            staged.remove_file(path)
            changed_names |= state.table.remove_file(path)
            identity_changed.add(path)
            state.drop_record(path)
            logger.debug(f"Removed {path}")

        for path in sorted(extracted):
            facts = extracted[path].facts
            nodes = file_contribution(facts)
            new_ids = {n.id for n in nodes}
            old_ids = {n.id for n in staged.nodes_in_file(path)}
            staged.clear_outgoing(old_ids)
            for node_id in sorted(old_ids - new_ids):
                staged.remove_node(node_id)
            for node in nodes:
                staged.upsert_node(node)
            if old_ids != new_ids:
                identity_changed.add(path)
            changed_names |= state.table.update_file(path, facts.language, facts.definitions, nodes)

        to_resolve = set(extracted)
        for path in identity_changed:
            to_resolve |= state.dependents_of(path)
        to_resolve |= state.files_referencing(changed_names)
        to_resolve -= set(deleted)

        resolver = Resolver(state.table, self.classifier, self.resolver_config.ambiguity_penalty)
        for path in sorted(to_resolve):
            if path in extracted:
                item = extracted[path]
                digest, facts = item.content_hash, item.facts
            elif path in state.records:
                record = state.records[path]
                digest, facts = record.fingerprint.content_hash, record.facts
            else:
                continue
            staged.clear_outgoing(n.id for n in staged.nodes_in_file(path))
            resolution = resolver.resolve_file(facts)
            apply_resolution(staged, resolution)
            state.set_record(
                FileRecord(
                    fingerprint=FileFingerprint(path, digest, resolution.dependencies),
                    facts=facts,
                    referenced_names=resolution.referenced_names,
                    stats=resolution.stats,
                )
            )
            if path not in extracted:
                logger.debug(f"Re-resolved {path}")

        staged.prune_orphans()


def _diff_counts(before: GraphState, after: GraphState) -> tuple[int, int]:
    """Nodes and edges added, removed or changed between two states."""
    old_nodes = {n.id: n for n in before.nodes()}
    new_nodes = {n.id: n for n in after.nodes()}
    node_changes = sum(
        1 for node_id in old_nodes.keys() | new_nodes.keys()
        if old_nodes.get(node_id) != new_nodes.get(node_id)
    )

    old_edges = {(e.source, e.target, e.kind): e for e in before.edges()}
    new_edges = {(e.source, e.target, e.kind): e for e in after.edges()}
    edge_changes = sum(
        1 for key in old_edges.keys() | new_edges.keys()
        if old_edges.get(key) != new_edges.get(key)
    )
    return node_changes, edge_changes
