"""Regex-based fact provider for brace-delimited languages.

This provider covers JavaScript, TypeScript, Go and the C-like languages
with regex patterns and brace matching instead of a real parser. It never
fails: malformed input yields fewer facts, not an error. Comments are
blanked out before anything else, so comment-only edits do not change
signature hashes or fingerprints.
"""

import bisect
import hashlib
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from reachgraph.constants import MODULE_SYMBOL, SIGNATURE_HASH_LENGTH
from reachgraph.facts.base import FactProvider
from reachgraph.facts.models import (
    AccessKind,
    AccessSite,
    CallSite,
    DefinitionKind,
    EntryPoint,
    EntryPointKind,
    ExtractionMethod,
    FactResult,
    FileFacts,
    FrameworkBinding,
    ImportBinding,
    SymbolDefinition,
)
from reachgraph.facts.sql import detect_sql


# Extension to language name mapping
EXTENSION_LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".cs": "csharp",
    ".php": "php",
    ".rs": "rust",
    ".scala": "scala",
    ".swift": "swift",
}

JS_LANGUAGES = frozenset({"javascript", "typescript"})

# Words that look like calls or method names but are control flow
KEYWORDS = frozenset({
    "if", "for", "while", "switch", "catch", "return", "new", "else", "do", "try",
    "with", "function", "fn", "func", "fun", "def", "synchronized", "using", "lock",
    "foreach", "when", "match", "throw", "await", "yield", "typeof", "sizeof",
    "super", "this", "import", "require", "constructor_", "delete", "void", "in", "of",
})

# =============================================================================
# Lexical helpers
# =============================================================================

_STRING_OR_COMMENT = re.compile(
    r"""("(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`)|(//[^\n]*|/\*.*?\*/)""",
    re.DOTALL,
)
_STRING = re.compile(r"""("(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`)""", re.DOTALL)
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")

# =============================================================================
# Definition patterns
# =============================================================================

CLASS_PATTERN = re.compile(
    r"^[ \t]*(?P<export>export\s+(?:default\s+)?)?"
    r"(?:(?:public|private|protected|internal|abstract|final|sealed|open|data|static|partial)\s+)*"
    r"(?:class|struct|interface|trait|object|enum)\s+(?P<name>[A-Za-z_$][\w$]*)",
    re.MULTILINE,
)
IMPL_PATTERN = re.compile(
    r"^[ \t]*impl(?:<[^>]*>)?\s+(?:[\w:<>]+\s+for\s+)?(?P<name>\w+)", re.MULTILINE
)

JS_FUNCTION = re.compile(
    r"^[ \t]*(?P<export>export\s+(?:default\s+)?)?(?:async\s+)?function\s*\*?\s*"
    r"(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^>()]*>)?\s*\(",
    re.MULTILINE,
)
JS_ARROW = re.compile(
    r"^[ \t]*(?P<export>export\s+)?(?:const|let|var)\s+(?P<name>[A-Za-z_$][\w$]*)\s*"
    r"(?::[^=\n]+)?=\s*(?:async\s+)?(?P<keyword>function\b\s*\*?\s*[\w$]*\s*)?\(",
    re.MULTILINE,
)
JS_METHOD = re.compile(
    r"^[ \t]*(?:(?:public|private|protected|static|async|readonly|override|abstract|get|set)\s+)*"
    r"(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^>()]*>)?\s*\(",
    re.MULTILINE,
)
GO_FUNCTION = re.compile(
    r"^func\s+(?:\((?P<receiver>[^)]*)\)\s*)?(?P<name>\w+)\s*(?:\[[^\]]*\])?\s*\(",
    re.MULTILINE,
)
KEYWORD_FUNCTION = re.compile(
    r"^[ \t]*(?:(?:pub(?:\([^)]*\))?|public|private|protected|internal|static|async|suspend|"
    r"inline|open|override|unsafe|const|final|abstract)\s+)*"
    r"(?:fn|func|fun|function|def)\s+(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^>()]*>)?\s*\(",
    re.MULTILINE,
)
TYPED_METHOD = re.compile(
    r"^[ \t]*(?:(?:public|private|protected|internal|static|final|abstract|override|virtual|"
    r"async|synchronized|native|sealed)\s+)*"
    r"(?:[\w<>\[\],.?]+\s+)?(?P<name>[A-Za-z_$][\w$]*)\s*(?:<[^>()]*>)?\s*\(",
    re.MULTILINE,
)

# What may sit between a parameter list and the body
BRACE_BODY = re.compile(r"\s*(?::[^{};=]{0,200}?)?\s*\{")
ARROW_BODY = re.compile(r"\s*(?::[^{};=]{0,200}?)?\s*=>\s*(?P<brace>\{)?")
GO_BODY = re.compile(r"[^{};=\n]{0,200}?\{")
TYPED_BODY = re.compile(r"[^{};=]{0,200}?\{")

# =============================================================================
# Site patterns
# =============================================================================

CALL_PATTERN = re.compile(
    r"(?<![\w$.@])(?P<name>(?:[A-Za-z_$][\w$]*\s*(?:\?\.|\.)\s*)*[A-Za-z_$][\w$]*)"
    r"\s*(?:<[\w\s,.\[\]|]*>)?\s*\("
)
EXPRESS_ROUTE = re.compile(
    r"\b(?P<object>[A-Za-z_$][\w$]*)\s*\.\s*(?P<method>get|post|put|patch|delete|all|head|options)"
    r"\s*\(\s*(?P<quote>['\"`])(?P<path>[^'\"`]*)(?P=quote)\s*,"
)
GO_ROUTE = re.compile(
    r"\b(?P<method>HandleFunc|Handle|GET|POST|PUT|PATCH|DELETE)\s*\(\s*\"(?P<path>[^\"]*)\"\s*,"
    r"\s*(?P<handler>[A-Za-z_][\w.]*)\s*\)"
)
DECORATOR = re.compile(
    r"@(?P<name>[A-Za-z_][\w.]*)\s*(?:\((?P<args>[^()]*(?:\([^()]*\)[^()]*)*)\))?"
)
PRISMA_ACCESS = re.compile(r"\bprisma\s*\.\s*(?P<model>\w+)\s*\.\s*(?P<op>\w+)\s*\(")
QUERY_BUILDER_FROM = re.compile(r"\.\s*from\s*\(\s*['\"`](?P<table>\w+)['\"`]\s*\)")
PRISMA_WRITE_PREFIXES = ("create", "update", "delete", "upsert")

# Constructor injection: constructor(private readonly repo: UserRepository)
TS_INJECTED_PARAM = re.compile(
    r"(?:private|public|protected|readonly)\s+(?:readonly\s+)?(?P<name>[A-Za-z_$][\w$]*)\s*\??\s*:"
    r"\s*(?P<type>[A-Z][\w$]*)"
)
# Field injection: @Autowired private UserRepository repo;
JAVA_INJECTED_FIELD = re.compile(
    r"@(?:Autowired|Inject|Resource)\s+(?:(?:private|protected|public|final)\s+)*"
    r"(?P<type>[A-Z]\w*)(?:<[^>]*>)?\s+(?P<name>\w+)\s*;"
)

# =============================================================================
# Import and export patterns
# =============================================================================

JS_IMPORT = re.compile(
    r"^[ \t]*import\s+(?:type\s+)?(?P<clause>[^'\";]+?)\s+from\s+['\"](?P<module>[^'\"]+)['\"]",
    re.MULTILINE,
)
JS_REQUIRE = re.compile(
    r"(?:const|let|var)\s+(?P<target>[A-Za-z_$][\w$]*|\{[^}]*\})\s*=\s*"
    r"require\(\s*['\"](?P<module>[^'\"]+)['\"]\s*\)"
)
JS_EXPORT_LIST = re.compile(r"\bexport\s*\{(?P<names>[^}]*)\}")
JS_MODULE_EXPORTS = re.compile(r"\bmodule\.exports\s*=\s*(?:\{(?P<names>[^}]*)\}|(?P<name>[\w$]+))")
JS_EXPORTS_ASSIGN = re.compile(r"\b(?:module\.)?exports\.(?P<name>[\w$]+)\s*=")
JS_EXPORT_DEFAULT = re.compile(
    r"\bexport\s+default\s+(?P<name>[A-Za-z_$][\w$]*)\s*;?\s*$", re.MULTILINE
)
GO_IMPORT_SINGLE = re.compile(
    r"^import\s+(?:(?P<alias>[\w.]+)\s+)?\"(?P<module>[^\"]+)\"", re.MULTILINE
)
GO_IMPORT_BLOCK = re.compile(r"^import\s*\((?P<body>.*?)\)", re.MULTILINE | re.DOTALL)
GO_IMPORT_LINE = re.compile(r"(?:(?P<alias>[\w.]+)\s+)?\"(?P<module>[^\"]+)\"")
JAVA_IMPORT = re.compile(r"^import\s+(?:static\s+)?(?P<path>[\w.]+)\s*;?", re.MULTILINE)


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:SIGNATURE_HASH_LENGTH]


def _strip_comments(content: str) -> str:
    """Blank out comments, keeping offsets and line numbers intact."""

    def replace(match: re.Match) -> str:
        if match.group(2) is not None:
            return re.sub(r"[^\n]", " ", match.group(2))
        return match.group(1)

    return _STRING_OR_COMMENT.sub(replace, content)


def _match_pair(code: str, open_idx: int, open_ch: str, close_ch: str) -> int:
    """Index of the bracket closing the one at open_idx (end of text if unbalanced)."""
    depth = 0
    for idx in range(open_idx, len(code)):
        ch = code[idx]
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return idx
    return len(code) - 1


def _statement_end(code: str, pos: int) -> int:
    """End of an expression statement: ';' or newline outside brackets."""
    depth = 0
    for idx in range(pos, len(code)):
        ch = code[idx]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                return idx
            depth -= 1
        elif ch in ";\n" and depth == 0:
            return idx
    return len(code)


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested in brackets."""
    parts = []
    depth = 0
    current = []
    for ch in text:
        if ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def _line_of(code: str, pos: int) -> int:
    return code.count("\n", 0, pos) + 1


@dataclass
class _ClassBlock:
    """A class-like body: class, struct, interface, impl."""

    name: str
    start: int
    body_start: int
    body_end: int
    exported: bool
    header: str  # Text before the declaration that may hold decorators


@dataclass
class _FunctionBlock:
    """A function definition located by pattern and brace matching."""

    name: str
    parent: str | None
    start: int
    params_start: int
    params: str
    body_start: int
    body_end: int
    exported: bool
    entry_point: EntryPoint | None = None

    @property
    def symbol(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name

    def contains(self, pos: int) -> bool:
        return self.params_start <= pos <= self.body_end


class RegexFactProvider(FactProvider):
    """Regex-based provider for languages without a dedicated provider.

    Features:
        - Functions, arrow functions, class methods and Go receivers
        - ES module, CommonJS, Go and Java imports
        - Express/Go route registrations and NestJS/Spring decorators as entry points
        - Constructor and field injection as framework bindings
        - Embedded SQL, Prisma and query-builder data access
    """

    @property
    def supported_extensions(self) -> list[str]:
        """File extensions this provider handles."""
        return list(EXTENSION_LANGUAGES.keys())

    @property
    def language_name(self) -> str:
        """Human-readable language name."""
        return "Generic"

    def extract(self, path: str, content: str) -> FactResult:
        """Extract facts using regex patterns.

        This method never fails - it always returns a successful FactResult,
        even if no definitions are found or the content is malformed.

        Args:
            path: Project-relative path (used for language detection).
            content: File content as string.

        Returns:
            FactResult with extracted facts (always successful).
        """
        language = self._detect_language(path)
        code = _strip_comments(content)
        strings = [(m.start(), m.end()) for m in _STRING.finditer(code)]
        string_starts = [start for start, _ in strings]

        def in_string(pos: int) -> bool:
            idx = bisect.bisect_right(string_starts, pos) - 1
            return idx >= 0 and strings[idx][0] < pos < strings[idx][1]

        facts = FileFacts(path=path, language=language)
        classes = self._find_classes(code, in_string)
        functions = self._find_functions(code, language, classes, in_string)
        exports = self._find_exports(code) if language in JS_LANGUAGES else set()

        for block in functions:
            if language in JS_LANGUAGES and block.name in exports:
                block.exported = True
            block.entry_point = self._decorator_entry_point(
                code, block, classes, functions, language
            )

        self._add_route_registrations(facts, code, functions)

        for cls in classes:
            facts.definitions.append(
                SymbolDefinition(
                    symbol=cls.name,
                    kind=DefinitionKind.CLASS,
                    exported=cls.exported or cls.name in exports,
                    signature_hash=_digest(" ".join(code[cls.start:cls.body_start].split())),
                    structural_fingerprint=self._shape(code[cls.body_start:cls.body_end + 1]),
                    line_start=_line_of(code, cls.start),
                    line_end=_line_of(code, cls.body_end),
                )
            )

        for block in functions:
            min_args, max_args = self._arity(block.params)
            facts.definitions.append(
                SymbolDefinition(
                    symbol=block.symbol,
                    kind=DefinitionKind.METHOD if block.parent else DefinitionKind.FUNCTION,
                    exported=block.exported,
                    signature_hash=_digest(f"{block.name}({' '.join(block.params.split())})"),
                    structural_fingerprint=self._shape(code[block.body_start:block.body_end + 1]),
                    min_args=min_args,
                    max_args=max_args,
                    entry_point=block.entry_point,
                    line_start=_line_of(code, block.start),
                    line_end=_line_of(code, block.body_end),
                )
            )

        self._add_calls(facts, code, language, functions, in_string)
        self._add_accesses(facts, code, functions)
        facts.imports = self._find_imports(code, language)
        facts.framework_bindings = self._find_bindings(code, classes, functions)

        return FactResult.success(facts)

    def extract_string(self, code: str, filename: str = "<string>.ts") -> FactResult:
        """Convenience method to extract facts from a string of code.

        Args:
            code: Source code as string.
            filename: Filename to use for language detection.

        Returns:
            FactResult with extracted facts.
        """
        return self.extract(filename, code)

    def _detect_language(self, path: str) -> str:
        """Detect language from file extension.

        Args:
            path: Path to the file.

        Returns:
            Language name (lowercase) or 'unknown'.
        """
        return EXTENSION_LANGUAGES.get(PurePosixPath(path).suffix.lower(), "unknown")

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------

    def _find_classes(self, code: str, in_string) -> list[_ClassBlock]:
        """Locate class-like blocks and their brace spans."""
        classes = []
        for pattern in (CLASS_PATTERN, IMPL_PATTERN):
            for match in pattern.finditer(code):
                if in_string(match.start("name")):
                    continue
                brace = self._open_brace_after(code, match.end())
                if brace is None:
                    continue
                header_start = max(
                    code.rfind(";", 0, match.start()), code.rfind("}", 0, match.start())
                )
                classes.append(
                    _ClassBlock(
                        name=match.group("name"),
                        start=match.start(),
                        body_start=brace,
                        body_end=_match_pair(code, brace, "{", "}"),
                        exported="export" in (match.groupdict().get("export") or ""),
                        header=code[header_start + 1:match.start()],
                    )
                )
        classes.sort(key=lambda c: c.start)
        return classes

    def _open_brace_after(self, code: str, pos: int) -> int | None:
        """Position of the next '{' unless a ';' comes first."""
        for idx in range(pos, min(len(code), pos + 500)):
            if code[idx] == "{":
                return idx
            if code[idx] == ";":
                return None
        return None

    def _find_functions(
        self, code: str, language: str, classes: list[_ClassBlock], in_string
    ) -> list[_FunctionBlock]:
        """Locate function definitions, skipping anything nested in another function."""
        # (match, body pattern, class-only, arrow)
        candidates: list[tuple[re.Match, re.Pattern, bool, bool]] = []
        if language in JS_LANGUAGES:
            candidates.extend((m, BRACE_BODY, False, False) for m in JS_FUNCTION.finditer(code))
            for m in JS_ARROW.finditer(code):
                if m.group("keyword"):
                    candidates.append((m, BRACE_BODY, False, False))
                else:
                    candidates.append((m, ARROW_BODY, False, True))
            candidates.extend((m, BRACE_BODY, True, False) for m in JS_METHOD.finditer(code))
        elif language == "go":
            candidates.extend((m, GO_BODY, False, False) for m in GO_FUNCTION.finditer(code))
        else:
            candidates.extend(
                (m, TYPED_BODY, False, False) for m in KEYWORD_FUNCTION.finditer(code)
            )
            candidates.extend((m, TYPED_BODY, True, False) for m in TYPED_METHOD.finditer(code))

        candidates.sort(key=lambda c: c[0].start())
        accepted: list[_FunctionBlock] = []

        for match, body_pattern, class_only, arrow in candidates:
            name = match.group("name")
            start = match.start()
            if name in KEYWORDS or in_string(match.start("name")):
                continue
            if any(block.start <= start <= block.body_end for block in accepted):
                continue

            enclosing = self._enclosing_class(classes, start)
            if class_only and enclosing is None:
                continue

            params_start = match.end() - 1
            params_end = _match_pair(code, params_start, "(", ")")
            body = body_pattern.match(code, params_end + 1)
            if body is None:
                continue
            if arrow and not body.group("brace"):
                body_start = body.end()
                body_end = _statement_end(code, body_start)
            else:
                body_start = body.end() - 1
                body_end = _match_pair(code, body_start, "{", "}")

            parent = enclosing.name if enclosing else None
            receiver = match.groupdict().get("receiver")
            if receiver:
                parent = self._receiver_type(receiver)

            accepted.append(
                _FunctionBlock(
                    name=name,
                    parent=parent,
                    start=start,
                    params_start=params_start,
                    params=code[params_start + 1:params_end],
                    body_start=body_start,
                    body_end=body_end,
                    exported=self._is_exported(match, language, name, enclosing),
                )
            )

        return accepted

    def _enclosing_class(self, classes: list[_ClassBlock], pos: int) -> _ClassBlock | None:
        """Innermost class whose body contains pos."""
        enclosing = None
        for cls in classes:
            if cls.body_start < pos < cls.body_end:
                enclosing = cls
        return enclosing

    def _receiver_type(self, receiver: str) -> str:
        """Go receiver "(s *Server)" -> "Server"."""
        type_part = receiver.split()[-1] if receiver.split() else receiver
        return type_part.lstrip("*").split("[")[0]

    def _is_exported(
        self, match: re.Match, language: str, name: str, enclosing: _ClassBlock | None
    ) -> bool:
        if language == "go":
            return name[:1].isupper()
        if language in JS_LANGUAGES:
            if enclosing is not None:
                return enclosing.exported and not name.startswith("#")
            return bool(match.groupdict().get("export"))
        return "private" not in match.group(0)

    def _arity(self, params: str) -> tuple[int | None, int | None]:
        """Required and maximum argument counts from a parameter list."""
        parts = [p for p in _split_top_level(params) if not p.startswith("this:")]
        required = 0
        variadic = False
        for part in parts:
            if "..." in part:
                variadic = True
                continue
            name_part = part.split(":")[0].split("=")[0]
            if "=" in part or name_part.rstrip().endswith("?"):
                continue
            required += 1
        return required, None if variadic else len(parts)

    def _shape(self, body: str) -> str:
        """Token shape of a body: identifiers collapsed, whitespace normalized."""
        return _digest(" ".join(_IDENTIFIER.sub("x", body).split()))

    def _find_exports(self, code: str) -> set[str]:
        """Names exported through export lists and CommonJS assignments."""
        names: set[str] = set()
        for match in JS_EXPORT_LIST.finditer(code):
            for item in match.group("names").split(","):
                local = item.strip().split(" as ")[0].strip()
                if local:
                    names.add(local)
        for match in JS_MODULE_EXPORTS.finditer(code):
            if match.group("name"):
                names.add(match.group("name"))
            else:
                for item in match.group("names").split(","):
                    item = item.strip()
                    if not item:
                        continue
                    # { login: handleLogin } exports the local handleLogin
                    local = item.split(":")[-1].strip()
                    if _IDENTIFIER.fullmatch(local):
                        names.add(local)
        names.update(m.group("name") for m in JS_EXPORTS_ASSIGN.finditer(code))
        names.update(m.group("name") for m in JS_EXPORT_DEFAULT.finditer(code))
        return names

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def _decorator_entry_point(
        self,
        code: str,
        block: _FunctionBlock,
        classes: list[_ClassBlock],
        functions: list[_FunctionBlock],
        language: str,
    ) -> EntryPoint | None:
        """Entry point from decorators/annotations right above a definition."""
        patterns = self._get_entry_point_patterns(language)
        if not patterns:
            return None

        lower = 0
        for other in functions:
            if other.body_end < block.start:
                lower = max(lower, other.body_end + 1)
        enclosing = self._enclosing_class(classes, block.start)
        if enclosing is not None:
            lower = max(lower, enclosing.body_start + 1)
        gap = code[lower:block.start]
        gap = gap[max(gap.rfind(";"), gap.rfind("}")) + 1:]

        for decorator in DECORATOR.finditer(gap):
            name = decorator.group("name").split(".")[-1]
            for pattern in patterns:
                if self._matches_decorator_pattern(name, None, pattern):
                    descriptor = self._describe(pattern.kind, name, decorator.group("args"), block)
                    if pattern.kind == EntryPointKind.HTTP_ROUTE and enclosing is not None:
                        descriptor = self._with_prefix(descriptor, enclosing.header)
                    return EntryPoint(kind=pattern.kind, descriptor=descriptor)
        return None

    def _describe(
        self, kind: EntryPointKind, decorator: str, args: str | None, block: _FunctionBlock
    ) -> str:
        literal = re.search(r"['\"]([^'\"]*)['\"]", args or "")
        value = literal.group(1) if literal else ""
        if kind == EntryPointKind.HTTP_ROUTE:
            method = re.sub(r"Mapping$", "", decorator).upper()
            if method == "REQUEST":
                verb = re.search(r"RequestMethod\.(\w+)", args or "")
                method = verb.group(1) if verb else "GET"
            return f"{method} /{value.strip('/')}"
        return value or block.name

    def _with_prefix(self, descriptor: str, class_header: str) -> str:
        """Prepend a controller-level route prefix to "METHOD /path"."""
        prefix = re.search(
            r"@(?:Controller|RequestMapping)\(\s*(?:(?:value|path)\s*=\s*)?['\"]([^'\"]*)['\"]",
            class_header,
        )
        if not prefix:
            return descriptor
        method, _, path = descriptor.partition(" ")
        segments = [s for s in (prefix.group(1).strip("/"), path.strip("/")) if s]
        return f"{method} /{'/'.join(segments)}"

    def _add_route_registrations(
        self, facts: FileFacts, code: str, functions: list[_FunctionBlock]
    ) -> None:
        """Express-style and net/http route registrations.

        Every named handler becomes a framework call site from the
        registering scope; a handler defined in this file is also marked as
        an HTTP entry point.
        """
        by_name: dict[str, list[_FunctionBlock]] = {}
        for block in functions:
            by_name.setdefault(block.name, []).append(block)

        registrations: list[tuple[int, str, str, list[str]]] = []
        for match in EXPRESS_ROUTE.finditer(code):
            paren = code.index("(", match.start("method"))
            args = _split_top_level(code[paren + 1:_match_pair(code, paren, "(", ")")])
            handlers = [a for a in args[1:] if re.fullmatch(r"[A-Za-z_$][\w$.]*", a)]
            registrations.append(
                (match.start(), match.group("method").upper(), match.group("path"), handlers)
            )
        for match in GO_ROUTE.finditer(code):
            method = match.group("method")
            method = "ANY" if method.startswith("Handle") else method
            registrations.append(
                (match.start(), method, match.group("path"), [match.group("handler")])
            )

        for position, method, route, handlers in registrations:
            caller = self._owner(functions, position)
            line = _line_of(code, position)
            for handler in handlers:
                facts.call_sites.append(
                    CallSite(
                        caller_symbol=caller,
                        callee_name=handler.replace("this.", "", 1),
                        line=line,
                        hint=ExtractionMethod.FRAMEWORK,
                    )
                )
            if not handlers:
                continue
            targets = by_name.get(handlers[-1].split(".")[-1], [])
            if len(targets) == 1 and targets[0].entry_point is None:
                targets[0].entry_point = EntryPoint(
                    kind=EntryPointKind.HTTP_ROUTE, descriptor=f"{method} {route or '/'}"
                )

    # -------------------------------------------------------------------------
    # Sites
    # -------------------------------------------------------------------------

    def _owner(self, functions: list[_FunctionBlock], pos: int) -> str:
        """Symbol of the function whose parameters or body contain pos."""
        for block in functions:
            if block.contains(pos):
                return block.symbol
        return MODULE_SYMBOL

    def _add_calls(
        self,
        facts: FileFacts,
        code: str,
        language: str,
        functions: list[_FunctionBlock],
        in_string,
    ) -> None:
        """Record every call expression outside strings and declarations."""
        for match in CALL_PATTERN.finditer(code):
            start = match.start("name")
            if in_string(start):
                continue
            name = re.sub(r"\s+", "", match.group("name")).replace("?.", ".")
            if name.split(".")[-1] in KEYWORDS or name in KEYWORDS:
                continue
            if any(block.start <= start < block.params_start for block in functions):
                # The declared name itself
                continue

            preceding = code[max(0, start - 12):start].rstrip()
            if preceding.endswith(("function", "func", "fn", "fun", "def")):
                continue

            paren = match.end() - 1
            close = _match_pair(code, paren, "(", ")")
            if (
                language != "go"
                and BRACE_BODY.match(code, close + 1)
                and not preceding.endswith("new")
            ):
                # Object-literal or nested method definition, not a call
                continue

            facts.call_sites.append(
                CallSite(
                    caller_symbol=self._owner(functions, start),
                    callee_name=name,
                    line=_line_of(code, start),
                    hint=ExtractionMethod.REGEX,
                    arg_count=self._arg_count(code[paren + 1:close]),
                )
            )

    def _arg_count(self, args: str) -> int | None:
        parts = _split_top_level(args)
        if any(part.startswith("...") for part in parts):
            return None
        return len(parts)

    def _add_accesses(self, facts: FileFacts, code: str, functions: list[_FunctionBlock]) -> None:
        """SQL in string literals plus Prisma and query-builder table access."""
        for match in _STRING.finditer(code):
            for access in detect_sql(match.group(0)[1:-1]):
                facts.access_sites.append(
                    AccessSite(
                        symbol=self._owner(functions, match.start()),
                        table=access.table,
                        field=access.field,
                        kind=access.kind,
                        line=_line_of(code, match.start()),
                    )
                )

        for match in PRISMA_ACCESS.finditer(code):
            op = match.group("op")
            kind = AccessKind.WRITE if op.startswith(PRISMA_WRITE_PREFIXES) else AccessKind.READ
            facts.access_sites.append(
                AccessSite(
                    symbol=self._owner(functions, match.start()),
                    table=match.group("model"),
                    kind=kind,
                    line=_line_of(code, match.start()),
                )
            )

        for match in QUERY_BUILDER_FROM.finditer(code):
            facts.access_sites.append(
                AccessSite(
                    symbol=self._owner(functions, match.start()),
                    table=match.group("table"),
                    kind=AccessKind.READ,
                    line=_line_of(code, match.start()),
                )
            )

    # -------------------------------------------------------------------------
    # Imports and bindings
    # -------------------------------------------------------------------------

    def _find_imports(self, code: str, language: str) -> list[ImportBinding]:
        """Names bound by import statements."""
        bindings: list[ImportBinding] = []

        if language in JS_LANGUAGES:
            for match in JS_IMPORT.finditer(code):
                bindings.extend(
                    self._parse_import_clause(match.group("clause"), match.group("module"))
                )
            for match in JS_REQUIRE.finditer(code):
                target, module = match.group("target"), match.group("module")
                if target.startswith("{"):
                    for item in target.strip("{}").split(","):
                        item = item.strip()
                        if not item:
                            continue
                        imported, _, local = item.partition(":")
                        local = (local or imported).strip()
                        bindings.append(ImportBinding(local, module, imported.strip()))
                else:
                    bindings.append(ImportBinding(target, module))
        elif language == "go":
            specs = [(m.group("alias"), m.group("module")) for m in GO_IMPORT_SINGLE.finditer(code)]
            for block in GO_IMPORT_BLOCK.finditer(code):
                specs.extend(
                    (m.group("alias"), m.group("module"))
                    for m in GO_IMPORT_LINE.finditer(block.group("body"))
                )
            for alias, module in specs:
                if alias in ("_", "."):
                    continue
                bindings.append(ImportBinding(alias or module.rsplit("/", 1)[-1], module))
        elif language in ("java", "kotlin", "scala"):
            for match in JAVA_IMPORT.finditer(code):
                module, _, symbol = match.group("path").rpartition(".")
                if module and symbol and symbol != "*":
                    bindings.append(ImportBinding(symbol, module, symbol))

        return list(dict.fromkeys(bindings))

    def _parse_import_clause(self, clause: str, module: str) -> list[ImportBinding]:
        """import X, { a, b as c }, * as ns from 'module'."""
        bindings = []
        clause = " ".join(clause.split())

        namespace = re.search(r"\*\s+as\s+([A-Za-z_$][\w$]*)", clause)
        if namespace:
            bindings.append(ImportBinding(namespace.group(1), module))

        named = re.search(r"\{([^}]*)\}", clause)
        if named:
            for item in named.group(1).split(","):
                item = item.strip()
                if item.startswith("type "):
                    item = item[5:].strip()
                if not item:
                    continue
                imported, _, local = item.partition(" as ")
                local = (local or imported).strip()
                bindings.append(ImportBinding(local, module, imported.strip()))

        default = re.split(r"[{*]", clause)[0].strip().rstrip(",").strip()
        if default and _IDENTIFIER.fullmatch(default):
            bindings.append(ImportBinding(default, module))

        return bindings

    def _find_bindings(
        self, code: str, classes: list[_ClassBlock], functions: list[_FunctionBlock]
    ) -> list[FrameworkBinding]:
        """Constructor-injected and field-injected collaborators per class."""
        bindings: list[FrameworkBinding] = []

        for block in functions:
            if block.name != "constructor" or block.parent is None:
                continue
            for match in TS_INJECTED_PARAM.finditer(block.params):
                local = f"this.{match.group('name')}"
                bindings.append(FrameworkBinding(block.parent, local, match.group("type")))

        for cls in classes:
            body = code[cls.body_start:cls.body_end]
            for match in JAVA_INJECTED_FIELD.finditer(body):
                name, type_name = match.group("name"), match.group("type")
                bindings.append(FrameworkBinding(cls.name, name, type_name))
                bindings.append(FrameworkBinding(cls.name, f"this.{name}", type_name))

        return list(dict.fromkeys(bindings))
