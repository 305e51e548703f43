"""Data models for extracted per-file facts.

A fact provider turns one source file into definitions, call sites and
data-access sites. These records are the only thing the graph layer knows
about source code.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum


class ExtractionMethod(Enum):
    """How a fact was obtained; doubles as the resolution hint of a call site."""

    AST = "ast"
    REGEX = "regex"
    FRAMEWORK = "framework"


class DefinitionKind(Enum):
    """Types of definitions a provider reports."""

    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"


class AccessKind(Enum):
    """Direction of a data access."""

    READ = "read"
    WRITE = "write"


class Sensitivity(Enum):
    """Classification of a data field, most severe first."""

    CRITICAL = "critical"
    SENSITIVE = "sensitive"
    PII = "pii"
    INTERNAL = "internal"
    NONE = "none"

    @property
    def is_sensitive(self) -> bool:
        """True for classes that boundary rules and sensitive paths track."""
        return self in (Sensitivity.CRITICAL, Sensitivity.SENSITIVE, Sensitivity.PII)


class EntryPointKind(Enum):
    """Ways a function can be invoked from outside the codebase."""

    HTTP_ROUTE = "http_route"
    CLI_COMMAND = "cli_command"
    SCHEDULED_JOB = "scheduled_job"
    MESSAGE_CONSUMER = "message_consumer"


@dataclass(frozen=True)
class EntryPoint:
    """External trigger of a function, e.g. kind=HTTP_ROUTE, descriptor="GET /login"."""

    kind: EntryPointKind
    descriptor: str = ""

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "descriptor": self.descriptor}

    @classmethod
    def from_dict(cls, data: dict | None) -> "EntryPoint | None":
        if not data:
            return None
        return cls(kind=EntryPointKind(data["kind"]), descriptor=data.get("descriptor", ""))


@dataclass(frozen=True)
class SymbolDefinition:
    """A definition found in a file.

    Line numbers are positional metadata and take no part in equality, so a
    definition that only moved is still the same definition.
    """

    symbol: str  # Qualified within the file, e.g. "AuthService.login"
    kind: DefinitionKind
    exported: bool = True
    signature_hash: str = ""
    structural_fingerprint: str = ""
    min_args: int | None = None  # Required arguments, receiver excluded
    max_args: int | None = None  # None when variadic
    entry_point: EntryPoint | None = None
    line_start: int = field(default=0, compare=False)
    line_end: int = field(default=0, compare=False)

    @property
    def name(self) -> str:
        """Simple name (last dotted segment)."""
        return self.symbol.rsplit(".", 1)[-1]

    @property
    def parent(self) -> str | None:
        """Enclosing class for methods, None for top-level definitions."""
        if "." in self.symbol:
            return self.symbol.rsplit(".", 1)[0]
        return None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "kind": self.kind.value,
            "exported": self.exported,
            "signature_hash": self.signature_hash,
            "structural_fingerprint": self.structural_fingerprint,
            "min_args": self.min_args,
            "max_args": self.max_args,
            "entry_point": self.entry_point.to_dict() if self.entry_point else None,
            "line_start": self.line_start,
            "line_end": self.line_end,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SymbolDefinition":
        return cls(
            symbol=data["symbol"],
            kind=DefinitionKind(data["kind"]),
            exported=data.get("exported", True),
            signature_hash=data.get("signature_hash", ""),
            structural_fingerprint=data.get("structural_fingerprint", ""),
            min_args=data.get("min_args"),
            max_args=data.get("max_args"),
            entry_point=EntryPoint.from_dict(data.get("entry_point")),
            line_start=data.get("line_start", 0),
            line_end=data.get("line_end", 0),
        )


@dataclass(frozen=True)
class CallSite:
    """A call as written in source."""

    caller_symbol: str  # Enclosing definition, or "<module>"
    callee_name: str  # e.g. "verify_password", "self.repo.find", "db.query"
    line: int = field(default=0, compare=False)
    hint: ExtractionMethod = ExtractionMethod.AST
    arg_count: int | None = None  # None when unknown (splats, regex extraction)

    def to_dict(self) -> dict:
        return {
            "caller_symbol": self.caller_symbol,
            "callee_name": self.callee_name,
            "line": self.line,
            "hint": self.hint.value,
            "arg_count": self.arg_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CallSite":
        return cls(
            caller_symbol=data["caller_symbol"],
            callee_name=data["callee_name"],
            line=data.get("line", 0),
            hint=ExtractionMethod(data.get("hint", "ast")),
            arg_count=data.get("arg_count"),
        )


@dataclass(frozen=True)
class AccessSite:
    """A read or write of a table/resource field."""

    symbol: str  # Enclosing definition, or "<module>"
    table: str
    field: str = "*"
    kind: AccessKind = AccessKind.READ
    # The "field" attribute shadows dataclasses.field inside this class body
    line: int = dataclasses.field(default=0, compare=False)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "table": self.table,
            "field": self.field,
            "kind": self.kind.value,
            "line": self.line,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccessSite":
        return cls(
            symbol=data["symbol"],
            table=data["table"],
            field=data.get("field", "*"),
            kind=AccessKind(data.get("kind", "read")),
            line=data.get("line", 0),
        )


@dataclass(frozen=True)
class ImportBinding:
    """A name bound by an import statement.

    symbol is None when the whole module is bound (``import a.b as x``,
    ``import * as db from './db'``, default imports).
    """

    local_name: str
    module: str  # As written: "auth.utils", ".utils", "./db"
    symbol: str | None = None

    def to_dict(self) -> dict:
        return {"local_name": self.local_name, "module": self.module, "symbol": self.symbol}

    @classmethod
    def from_dict(cls, data: dict) -> "ImportBinding":
        return cls(
            local_name=data["local_name"], module=data["module"], symbol=data.get("symbol")
        )


@dataclass(frozen=True)
class FrameworkBinding:
    """A framework-injected name, e.g. a typed constructor parameter.

    scope is the definition the binding is visible in: a function symbol for
    injected parameters, a class name for ``self.x``/``this.x`` attributes.
    """

    scope: str
    local_name: str  # "repo" or "self.repo"
    target: str  # Type name the binding resolves to, e.g. "UserRepository"

    def to_dict(self) -> dict:
        return {"scope": self.scope, "local_name": self.local_name, "target": self.target}

    @classmethod
    def from_dict(cls, data: dict) -> "FrameworkBinding":
        return cls(scope=data["scope"], local_name=data["local_name"], target=data["target"])


@dataclass
class FileFacts:
    """Everything a provider extracted from a single file."""

    path: str
    language: str
    definitions: list[SymbolDefinition] = field(default_factory=list)
    call_sites: list[CallSite] = field(default_factory=list)
    access_sites: list[AccessSite] = field(default_factory=list)
    imports: list[ImportBinding] = field(default_factory=list)
    framework_bindings: list[FrameworkBinding] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "path": self.path,
            "language": self.language,
            "definitions": [d.to_dict() for d in self.definitions],
            "call_sites": [c.to_dict() for c in self.call_sites],
            "access_sites": [a.to_dict() for a in self.access_sites],
            "imports": [i.to_dict() for i in self.imports],
            "framework_bindings": [b.to_dict() for b in self.framework_bindings],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileFacts":
        return cls(
            path=data["path"],
            language=data.get("language", "unknown"),
            definitions=[SymbolDefinition.from_dict(d) for d in data.get("definitions", [])],
            call_sites=[CallSite.from_dict(c) for c in data.get("call_sites", [])],
            access_sites=[AccessSite.from_dict(a) for a in data.get("access_sites", [])],
            imports=[ImportBinding.from_dict(i) for i in data.get("imports", [])],
            framework_bindings=[
                FrameworkBinding.from_dict(b) for b in data.get("framework_bindings", [])
            ],
        )


@dataclass
class FactResult:
    """Result of an extraction (success or failure)."""

    ok: bool
    facts: FileFacts | None
    error: str | None
    path: str | None = None

    @classmethod
    def success(cls, facts: FileFacts) -> "FactResult":
        """Create a successful extraction result."""
        return cls(ok=True, facts=facts, error=None, path=facts.path)

    @classmethod
    def failure(cls, path: str, error: str) -> "FactResult":
        """Create a failed extraction result."""
        return cls(ok=False, facts=None, error=error, path=path)
