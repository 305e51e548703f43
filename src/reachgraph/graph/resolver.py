"""Cross-file call resolution using a project-wide symbol table.

Each call site is bound by the first tier that succeeds:

1. Exact: the name is in scope (same file, ``self``/``this`` inside the
   class, or reached through an import) and the arity fits.
2. Heuristic: a definition with the same name exists elsewhere in the
   project. Ambiguous matches keep the first candidate by node id, with a
   confidence penalty.
3. Framework: a framework convention binds the site, either a
   dependency-injected receiver or a site the provider hinted as framework
   wiring (route registrations, ``Depends(...)``).

Sites no tier can bind become edges into an UnresolvedRef sink.
"""

import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from reachgraph.constants import (
    CONSTRUCTOR_NAMES,
    FRAMEWORK_CONFIDENCE,
    HEURISTIC_CONFIDENCE,
    EXACT_CONFIDENCE,
    SELF_RECEIVERS,
    UNKNOWN_TABLE,
    UNRESOLVED_CONFIDENCE,
)
from reachgraph.facts.models import (
    CallSite,
    DefinitionKind,
    ExtractionMethod,
    FileFacts,
    FrameworkBinding,
    ImportBinding,
    SymbolDefinition,
)
from reachgraph.facts.sensitivity import Classifier, no_classification
from reachgraph.graph.models import (
    AccessEdge,
    CallEdge,
    DataAccessNode,
    FunctionNode,
    ResolutionTier,
    UnresolvedRef,
)

logger = logging.getLogger(__name__)

JS_LANGUAGES = frozenset({"javascript", "typescript"})
JVM_LANGUAGES = frozenset({"java", "kotlin", "scala"})
# Languages whose imports name packages that are matched by path suffix
SUFFIX_MATCHED = frozenset({"go"}) | JVM_LANGUAGES
JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")

_NAME_SPLIT = re.compile(r"[./:\\]+")


def language_family(language: str) -> str:
    """Languages that can call each other share a family."""
    return "javascript" if language in JS_LANGUAGES else language


def _segments(name: str) -> set[str]:
    return {part for part in _NAME_SPLIT.split(name) if part}


def module_keys(path: str, language: str) -> set[str]:
    """Keys under which other files can import this file.

    Python files are importable by dotted module path (with and without a
    leading ``src``), JS/TS files by path without extension (directories
    through ``index``), Go and JVM files by their package directory.
    """
    pure = PurePosixPath(path)
    if language == "python":
        parts = list(pure.with_suffix("").parts)
        if parts and parts[-1] == "__init__":
            parts = parts[:-1]
        keys = set()
        if parts:
            keys.add(".".join(parts))
        if len(parts) > 1 and parts[0] == "src":
            keys.add(".".join(parts[1:]))
        return keys
    if language in JS_LANGUAGES:
        keys = {pure.with_suffix("").as_posix()}
        if pure.stem == "index" and pure.parent.as_posix() != ".":
            keys.add(pure.parent.as_posix())
        return keys
    directory = pure.parent.as_posix()
    if directory == ".":
        return set()
    if language in JVM_LANGUAGES:
        return {directory.replace("/", ".")}
    return {directory}


def resolve_import_key(importing_path: str, language: str, module: str) -> str | None:
    """Module key an import statement refers to, relative to the importing file."""
    if language == "python" and module.startswith("."):
        level = len(module) - len(module.lstrip("."))
        rest = module[level:]
        package = list(PurePosixPath(importing_path).with_suffix("").parts[:-1])
        if level - 1 > len(package):
            return None
        package = package[: len(package) - (level - 1)]
        parts = package + ([p for p in rest.split(".") if p] if rest else [])
        return ".".join(parts) or None
    if language in JS_LANGUAGES and module.startswith("."):
        directory = posixpath.dirname(importing_path)
        target = posixpath.normpath(posixpath.join(directory, module))
        for extension in JS_EXTENSIONS:
            if target.endswith(extension):
                target = target[: -len(extension)]
                break
        return target
    return module


def _join(language: str, base: str, parts: list[str]) -> str:
    separator = "/" if language in JS_LANGUAGES or language == "go" else "."
    return separator.join([base] + parts) if parts else base


# =============================================================================
# Symbol table
# =============================================================================


@dataclass(frozen=True)
class SymbolEntry:
    """Resolution-relevant view of one FunctionNode."""

    node_id: str
    file: str
    qualified_name: str
    language: str
    exported: bool
    min_args: int | None = None
    max_args: int | None = None

    @property
    def name(self) -> str:
        return self.qualified_name.rsplit(".", 1)[-1]

    def accepts(self, arg_count: int | None) -> bool:
        """Whether a call with arg_count arguments fits this definition."""
        if arg_count is None or self.min_args is None:
            return True
        if arg_count < self.min_args:
            return False
        return self.max_args is None or arg_count <= self.max_args


@dataclass(frozen=True)
class FileSymbols:
    """Everything one file contributes to the symbol table."""

    language: str
    functions: dict[str, SymbolEntry]
    classes: frozenset[str]
    module_keys: frozenset[str]

    def names(self) -> set[str]:
        """Every name segment another file could look this file up by."""
        names: set[str] = set()
        for qualified in self.functions:
            names |= _segments(qualified)
        for cls in self.classes:
            names |= _segments(cls)
        for key in self.module_keys:
            names |= _segments(key)
            names.add(key)
        return names


def _changed_names(old: FileSymbols | None, new: FileSymbols | None) -> set[str]:
    """Names whose lookups may give a different answer after old -> new."""
    if old is None and new is None:
        return set()
    if old is None:
        return new.names()
    if new is None:
        return old.names()

    names: set[str] = set()
    old_entries = set(old.functions.values())
    new_entries = set(new.functions.values())
    for entry in old_entries ^ new_entries:
        names |= _segments(entry.qualified_name)
    for cls in old.classes ^ new.classes:
        names |= _segments(cls)
    for key in old.module_keys ^ new.module_keys:
        names |= _segments(key)
        names.add(key)
    return names


class SymbolTable:
    """Index of every function definition in the project, updated per file."""

    def __init__(self):
        self._files: dict[str, FileSymbols] = {}
        self._by_qualified: dict[str, set[str]] = {}
        self._by_name: dict[str, set[str]] = {}
        self._entries: dict[str, SymbolEntry] = {}
        # (language family, module key) -> files
        self._modules: dict[tuple[str, str], set[str]] = {}

    def copy(self) -> "SymbolTable":
        clone = SymbolTable()
        clone._files = dict(self._files)
        clone._by_qualified = {k: set(v) for k, v in self._by_qualified.items()}
        clone._by_name = {k: set(v) for k, v in self._by_name.items()}
        clone._entries = dict(self._entries)
        clone._modules = {k: set(v) for k, v in self._modules.items()}
        return clone

    def update_file(
        self,
        path: str,
        language: str,
        definitions: list[SymbolDefinition],
        nodes: list[FunctionNode],
    ) -> set[str]:
        """Replace a file's symbols.

        Args:
            path: Project-relative file path.
            language: File language.
            definitions: The file's definitions (for arity and classes).
            nodes: The file's FunctionNodes.

        Returns:
            Names whose lookups may have changed.
        """
        arity = {d.symbol: (d.min_args, d.max_args) for d in definitions}
        functions = {}
        for node in nodes:
            if node.is_module:
                continue
            min_args, max_args = arity.get(node.qualified_name, (None, None))
            functions[node.qualified_name] = SymbolEntry(
                node_id=node.id,
                file=path,
                qualified_name=node.qualified_name,
                language=language,
                exported=node.exported,
                min_args=min_args,
                max_args=max_args,
            )
        symbols = FileSymbols(
            language=language,
            functions=functions,
            classes=frozenset(d.symbol for d in definitions if d.kind == DefinitionKind.CLASS),
            module_keys=frozenset(module_keys(path, language)),
        )

        old = self._files.get(path)
        if old == symbols:
            return set()
        self._unindex(path)
        self._index(path, symbols)
        return _changed_names(old, symbols)

    def remove_file(self, path: str) -> set[str]:
        """Drop a file's symbols, returning the names whose lookups changed."""
        old = self._files.get(path)
        self._unindex(path)
        return _changed_names(old, None)

    def _index(self, path: str, symbols: FileSymbols) -> None:
        self._files[path] = symbols
        for entry in symbols.functions.values():
            self._entries[entry.node_id] = entry
            self._by_qualified.setdefault(entry.qualified_name, set()).add(entry.node_id)
            self._by_name.setdefault(entry.name, set()).add(entry.node_id)
        family = language_family(symbols.language)
        for key in symbols.module_keys:
            self._modules.setdefault((family, key), set()).add(path)

    def _unindex(self, path: str) -> None:
        symbols = self._files.pop(path, None)
        if symbols is None:
            return
        for entry in symbols.functions.values():
            self._entries.pop(entry.node_id, None)
            for index, key in ((self._by_qualified, entry.qualified_name),
                               (self._by_name, entry.name)):
                ids = index.get(key)
                if ids is not None:
                    ids.discard(entry.node_id)
                    if not ids:
                        del index[key]
        family = language_family(symbols.language)
        for key in symbols.module_keys:
            files = self._modules.get((family, key))
            if files is not None:
                files.discard(path)
                if not files:
                    del self._modules[(family, key)]

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def file_symbols(self, path: str) -> FileSymbols | None:
        return self._files.get(path)

    def files(self) -> list[str]:
        return sorted(self._files)

    def lookup_in_file(self, path: str, qualified_name: str) -> SymbolEntry | None:
        symbols = self._files.get(path)
        if symbols is None:
            return None
        return symbols.functions.get(qualified_name)

    def has_class(self, path: str, name: str) -> bool:
        symbols = self._files.get(path)
        return symbols is not None and name in symbols.classes

    def constructor(self, path: str, class_name: str) -> SymbolEntry | None:
        """The method a call of the class name runs, if the class defines one."""
        if not self.has_class(path, class_name):
            return None
        for ctor in CONSTRUCTOR_NAMES:
            entry = self.lookup_in_file(path, f"{class_name}.{ctor}")
            if entry is not None:
                return entry
        return None

    def by_qualified(self, qualified_name: str) -> list[SymbolEntry]:
        ids = self._by_qualified.get(qualified_name, ())
        return [self._entries[node_id] for node_id in sorted(ids)]

    def by_name(self, name: str) -> list[SymbolEntry]:
        ids = self._by_name.get(name, ())
        return [self._entries[node_id] for node_id in sorted(ids)]

    def classes_named(self, name: str, language: str) -> list[str]:
        """Files in the language family defining a class with this name."""
        family = language_family(language)
        return sorted(
            path
            for path, symbols in self._files.items()
            if name in symbols.classes and language_family(symbols.language) == family
        )

    def files_for_module(self, key: str, language: str) -> list[str]:
        """Files an import of ``key`` can refer to."""
        family = language_family(language)
        files = self._modules.get((family, key))
        if files:
            return sorted(files)
        if language not in SUFFIX_MATCHED:
            return []

        separator = "/" if language == "go" else "."
        matches: set[str] = set()
        for (candidate_family, candidate), candidate_files in self._modules.items():
            if candidate_family != family or not candidate:
                continue
            if key.endswith(separator + candidate) or candidate.endswith(separator + key):
                matches |= candidate_files
        return sorted(matches)


# =============================================================================
# Resolution results
# =============================================================================


@dataclass
class ResolutionStats:
    """Per-file resolution quality counters."""

    sites: int = 0
    unresolved: int = 0
    ambiguous: int = 0
    tiers: dict[str, int] = field(default_factory=dict)

    def add(self, other: "ResolutionStats") -> None:
        self.sites += other.sites
        self.unresolved += other.unresolved
        self.ambiguous += other.ambiguous
        for tier, count in other.tiers.items():
            self.tiers[tier] = self.tiers.get(tier, 0) + count

    @property
    def resolution_rate(self) -> float:
        if self.sites == 0:
            return 1.0
        return (self.sites - self.unresolved) / self.sites

    def to_dict(self) -> dict:
        return {
            "sites": self.sites,
            "unresolved": self.unresolved,
            "ambiguous": self.ambiguous,
            "tiers": dict(sorted(self.tiers.items())),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResolutionStats":
        return cls(
            sites=data.get("sites", 0),
            unresolved=data.get("unresolved", 0),
            ambiguous=data.get("ambiguous", 0),
            tiers=dict(data.get("tiers", {})),
        )


@dataclass
class FileResolution:
    """Edges and bookkeeping produced by resolving one file."""

    path: str
    call_edges: list[CallEdge] = field(default_factory=list)
    access_edges: list[AccessEdge] = field(default_factory=list)
    sinks: list[DataAccessNode | UnresolvedRef] = field(default_factory=list)
    dependencies: frozenset[str] = frozenset()
    referenced_names: frozenset[str] = frozenset()
    stats: ResolutionStats = field(default_factory=ResolutionStats)


@dataclass
class _Binding:
    entry: SymbolEntry | None
    tier: ResolutionTier | None = None
    confidence: float = UNRESOLVED_CONFIDENCE
    ambiguous: bool = False


_UNRESOLVED = _Binding(entry=None)


class _FileScope:
    """Names visible in one file."""

    def __init__(self, table: SymbolTable, facts: FileFacts):
        self.path = facts.path
        self.language = facts.language
        self.imports: dict[str, ImportBinding] = {b.local_name: b for b in facts.imports}
        self.bindings: list[FrameworkBinding] = list(facts.framework_bindings)
        symbols = table.file_symbols(facts.path)
        self.functions = symbols.functions if symbols else {}
        self.classes = symbols.classes if symbols else frozenset()

    def module_node_id(self) -> str:
        return FunctionNode.module(self.path, self.language).id

    def owner_id(self, symbol: str) -> str:
        entry = self.functions.get(symbol)
        return entry.node_id if entry else self.module_node_id()

    def enclosing_class(self, caller_symbol: str) -> str | None:
        if caller_symbol in self.classes:
            return caller_symbol
        if caller_symbol in self.functions and "." in caller_symbol:
            parent = caller_symbol.rsplit(".", 1)[0]
            return parent if parent in self.classes else None
        return None

    def binding_for(
        self, caller_symbol: str, parts: list[str]
    ) -> tuple[FrameworkBinding | None, list[str]]:
        """Longest injected name that prefixes the callee, and what follows it."""
        enclosing = self.enclosing_class(caller_symbol)
        best: FrameworkBinding | None = None
        best_length = 0
        for binding in self.bindings:
            if binding.scope not in (caller_symbol, enclosing):
                continue
            local = binding.local_name.split(".")
            if len(local) > best_length and parts[: len(local)] == local:
                best, best_length = binding, len(local)
        return best, parts[best_length:]


# =============================================================================
# Resolver
# =============================================================================


class Resolver:
    """Binds a file's call and access sites against the symbol table."""

    def __init__(
        self,
        table: SymbolTable,
        classifier: Classifier | None = None,
        ambiguity_penalty: float = 0.5,
    ):
        self.table = table
        self.classifier = classifier or no_classification
        self.ambiguity_penalty = ambiguity_penalty

    def resolve_file(self, facts: FileFacts) -> FileResolution:
        """Resolve every call and access site of a file.

        The file's own symbols must already be in the table. Resolution is
        a pure function of (facts, table): re-resolving unchanged facts
        against an unchanged table gives the same edges.

        Args:
            facts: The file's extracted facts.

        Returns:
            FileResolution with edges, sink nodes and bookkeeping.
        """
        scope = _FileScope(self.table, facts)
        result = FileResolution(path=facts.path)
        stats = result.stats
        sinks: dict[str, DataAccessNode | UnresolvedRef] = {}
        dependencies: set[str] = set()

        for site in facts.call_sites:
            stats.sites += 1
            binding = self._resolve_call(scope, site)
            caller = scope.owner_id(site.caller_symbol)

            if binding.entry is None:
                stats.unresolved += 1
                sink = UnresolvedRef(site.callee_name)
                sinks[sink.id] = sink
                result.call_edges.append(
                    CallEdge(
                        caller=caller,
                        callee=sink.id,
                        callee_name=site.callee_name,
                        confidence=UNRESOLVED_CONFIDENCE,
                        tier=None,
                        method=site.hint,
                    )
                )
                continue

            tier_name = binding.tier.value
            stats.tiers[tier_name] = stats.tiers.get(tier_name, 0) + 1
            if binding.ambiguous:
                stats.ambiguous += 1
            if binding.entry.file != facts.path:
                dependencies.add(binding.entry.file)
            result.call_edges.append(
                CallEdge(
                    caller=caller,
                    callee=binding.entry.node_id,
                    callee_name=site.callee_name,
                    confidence=binding.confidence,
                    tier=binding.tier,
                    method=site.hint,
                )
            )

        for site in facts.access_sites:
            stats.sites += 1
            table = site.table or UNKNOWN_TABLE
            if table == UNKNOWN_TABLE:
                stats.unresolved += 1
            data = DataAccessNode(table, site.field, self.classifier(table, site.field))
            sinks[data.id] = data
            result.access_edges.append(
                AccessEdge(function=scope.owner_id(site.symbol), data=data.id, access=site.kind)
            )

        result.sinks = [sinks[key] for key in sorted(sinks)]
        result.dependencies = frozenset(dependencies)
        result.referenced_names = frozenset(self._referenced_names(scope, facts))
        return result

    # -------------------------------------------------------------------------
    # Tiers
    # -------------------------------------------------------------------------

    def _resolve_call(self, scope: _FileScope, site: CallSite) -> _Binding:
        parts = [p for p in site.callee_name.split(".") if p]
        if not parts:
            return _UNRESOLVED

        if site.hint == ExtractionMethod.FRAMEWORK:
            # Wiring registered with a framework: look the handler up in scope
            entry = self._first(self._scoped(scope, site.caller_symbol, parts), None)
            entry = entry or self._injected(scope, site, parts)
            if entry is None:
                return _UNRESOLVED
            return _Binding(entry, ResolutionTier.FRAMEWORK, FRAMEWORK_CONFIDENCE)

        entry = self._first(self._scoped(scope, site.caller_symbol, parts), site.arg_count)
        if entry is not None:
            return _Binding(entry, ResolutionTier.EXACT, EXACT_CONFIDENCE)

        injected, _ = scope.binding_for(site.caller_symbol, parts)
        if injected is None and not self._is_external(scope, parts):
            entry, ambiguous = self._heuristic(scope, site, parts)
            if entry is not None:
                confidence = HEURISTIC_CONFIDENCE
                if ambiguous:
                    confidence *= self.ambiguity_penalty
                return _Binding(entry, ResolutionTier.HEURISTIC, confidence, ambiguous)

        entry = self._injected(scope, site, parts)
        if entry is not None:
            return _Binding(entry, ResolutionTier.FRAMEWORK, FRAMEWORK_CONFIDENCE)

        return _UNRESOLVED

    def _first(self, candidates: list[SymbolEntry], arg_count: int | None) -> SymbolEntry | None:
        for entry in candidates:
            if entry.accepts(arg_count):
                return entry
        return None

    def _scoped(self, scope: _FileScope, caller_symbol: str, parts: list[str]) -> list[SymbolEntry]:
        """Definitions the name refers to by scope rules, in priority order."""
        candidates: list[SymbolEntry | None] = []
        qualified = ".".join(parts)

        if parts[0] in SELF_RECEIVERS:
            enclosing = scope.enclosing_class(caller_symbol)
            if enclosing is not None and len(parts) == 2:
                candidates.append(self.table.lookup_in_file(scope.path, f"{enclosing}.{parts[1]}"))
            return [c for c in candidates if c is not None]

        # Same file: functions, Class.method, or a class name standing for its constructor
        candidates.append(self.table.lookup_in_file(scope.path, qualified))
        candidates.append(self.table.constructor(scope.path, qualified))

        binding = scope.imports.get(parts[0])
        if binding is not None:
            candidates.extend(self._through_import(scope, binding, parts[1:]))
        elif len(parts) == 1 and scope.language == "go":
            # Files of one Go package share a namespace
            for key in module_keys(scope.path, scope.language):
                for path in self.table.files_for_module(key, scope.language):
                    if path != scope.path:
                        candidates.append(self.table.lookup_in_file(path, qualified))

        return [c for c in candidates if c is not None]

    def _through_import(
        self, scope: _FileScope, binding: ImportBinding, rest: list[str]
    ) -> list[SymbolEntry]:
        """Definitions reached by following an import binding."""
        base = resolve_import_key(scope.path, scope.language, binding.module)
        if base is None:
            return []

        attempts: list[tuple[str, list[str]]] = []
        if binding.symbol is not None:
            attempts.append((base, [binding.symbol] + rest))
            if scope.language == "python":
                # from pkg import module
                attempts.append((_join(scope.language, base, [binding.symbol]), rest))
        else:
            # Longest submodule first: import a.b; a.b.c() -> module a.b, name c
            for split in range(len(rest) - 1, -1, -1):
                attempts.append((_join(scope.language, base, rest[:split]), rest[split:]))
            if not rest:
                # Default import called directly
                attempts.append((base, [binding.local_name]))

        found = []
        for module, names in attempts:
            if not names:
                continue
            qualified = ".".join(names)
            for path in self.table.files_for_module(module, scope.language):
                entry = self.table.lookup_in_file(path, qualified)
                entry = entry or self.table.constructor(path, qualified)
                if entry is not None:
                    found.append(entry)
        return found

    def _is_external(self, scope: _FileScope, parts: list[str]) -> bool:
        """The callee goes through an import that names no project module."""
        binding = scope.imports.get(parts[0])
        if binding is None:
            return False
        base = resolve_import_key(scope.path, scope.language, binding.module)
        if base is None:
            return True
        if self.table.files_for_module(base, scope.language):
            return False
        if binding.symbol is not None and scope.language == "python":
            submodule = _join(scope.language, base, [binding.symbol])
            return not self.table.files_for_module(submodule, scope.language)
        return True

    def _heuristic(
        self, scope: _FileScope, site: CallSite, parts: list[str]
    ) -> tuple[SymbolEntry | None, bool]:
        """Same-name match anywhere in the project.

        Returns:
            (entry, ambiguous). Ambiguity keeps the first candidate by node id.
        """
        candidates: list[SymbolEntry] = []
        if len(parts) > 1 and parts[0] not in SELF_RECEIVERS:
            candidates = self.table.by_qualified(".".join(parts))
        if not candidates:
            candidates = self.table.by_name(parts[-1])

        family = language_family(scope.language)
        candidates = [c for c in candidates if language_family(c.language) == family]

        visible = [c for c in candidates if c.exported or c.file == scope.path]
        if visible:
            candidates = visible
        compatible = [c for c in candidates if c.accepts(site.arg_count)]
        if compatible:
            candidates = compatible

        if not candidates:
            return None, False
        return candidates[0], len(candidates) > 1

    def _injected(self, scope: _FileScope, site: CallSite, parts: list[str]) -> SymbolEntry | None:
        """Resolve through a dependency-injected receiver's declared type."""
        binding, rest = scope.binding_for(site.caller_symbol, parts)
        if binding is None:
            return None

        type_parts = [p for p in binding.target.split(".") if p]
        if not type_parts:
            return None
        entry = self._first(
            self._scoped(scope, site.caller_symbol, type_parts + rest), site.arg_count
        )
        if entry is not None:
            return entry

        # The type lives elsewhere without an import we can follow
        class_name = type_parts[-1]
        if not rest:
            for path in self.table.classes_named(class_name, scope.language):
                entry = self.table.constructor(path, class_name)
                if entry is not None:
                    return entry
            return None
        for path in self.table.classes_named(class_name, scope.language):
            entry = self.table.lookup_in_file(path, ".".join([class_name] + rest))
            if entry is not None and entry.accepts(site.arg_count):
                return entry
        return None

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def _referenced_names(self, scope: _FileScope, facts: FileFacts) -> set[str]:
        """Every name whose definitions can change how this file resolves."""
        names: set[str] = set()
        for site in facts.call_sites:
            names |= _segments(site.callee_name)
        for binding in facts.imports:
            names.add(binding.local_name)
            if binding.symbol:
                names.add(binding.symbol)
            names |= _segments(binding.module)
            base = resolve_import_key(scope.path, scope.language, binding.module)
            if base:
                names.add(base)
                names |= _segments(base)
        for binding in facts.framework_bindings:
            names |= _segments(binding.target)
        if scope.language == "go":
            for key in module_keys(scope.path, scope.language):
                names.add(key)
        return names
