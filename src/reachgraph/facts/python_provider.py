"""Python fact provider using the built-in ast module."""

import ast
import hashlib

from reachgraph.constants import MODULE_SYMBOL, SIGNATURE_HASH_LENGTH
from reachgraph.facts.base import FactProvider
from reachgraph.facts.models import (
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


# HTTP methods commonly used in web frameworks for route definitions
ROUTE_DECORATORS = frozenset({"get", "post", "put", "patch", "delete", "head", "options", "trace"})

# Calls whose first argument the framework invokes on the function's behalf
INJECTION_CALLS = frozenset({"Depends", "Security", "Inject", "Provide"})

# Annotation wrappers that carry the injected type as their first argument
ANNOTATION_WRAPPERS = frozenset({"Optional", "Annotated"})

CONSTRUCTORS = frozenset({"__init__"})


def _digest(text: str) -> str:
    """Short SHA-256 digest used for signature hashes and fingerprints."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:SIGNATURE_HASH_LENGTH]


class PythonFactProvider(FactProvider):
    """Fact provider for Python source files using the ast module."""

    @property
    def supported_extensions(self) -> list[str]:
        """File extensions this provider handles."""
        return [".py", ".pyi"]

    @property
    def language_name(self) -> str:
        """Human-readable language name."""
        return "Python"

    def extract(self, path: str, content: str) -> FactResult:
        """Extract definitions, call sites and access sites from Python code.

        Args:
            path: Project-relative path of the file.
            content: File content as string.

        Returns:
            FactResult with the file's facts, or a failure on syntax errors.
        """
        try:
            tree = ast.parse(content, filename=path)
        except (SyntaxError, ValueError) as e:
            return FactResult.failure(path, f"Syntax error: {e}")

        facts = FileFacts(path=path, language="python")
        exported_names = self._module_exports(tree)

        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                exported = self._is_exported(node.name, exported_names)
                self._add_function(facts, node, parent=None, exported=exported)
            elif isinstance(node, ast.ClassDef):
                self._add_class(facts, node, exported_names)
            else:
                self._collect_sites(facts, MODULE_SYMBOL, [node])

        facts.imports = self._extract_imports(tree)
        return FactResult.success(facts)

    def extract_string(self, code: str, filename: str = "<string>.py") -> FactResult:
        """Convenience method to extract facts from a string of Python code.

        Args:
            code: Python source code as string.
            filename: Path to report the facts under.

        Returns:
            FactResult with extracted facts or error.
        """
        return self.extract(filename, code)

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------

    def _add_class(
        self, facts: FileFacts, node: ast.ClassDef, exported_names: set[str] | None
    ) -> None:
        """Record a class, its methods, and any class-level statements."""
        exported = self._is_exported(node.name, exported_names)
        facts.definitions.append(
            SymbolDefinition(
                symbol=node.name,
                kind=DefinitionKind.CLASS,
                exported=exported,
                signature_hash=_digest(self._build_class_signature(node)),
                structural_fingerprint=self._structural_fingerprint(node),
                line_start=node.lineno,
                line_end=node.end_lineno or node.lineno,
            )
        )

        for item in node.body:
            if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                is_dunder = item.name.startswith("__") and item.name.endswith("__")
                method_exported = exported and (not item.name.startswith("_") or is_dunder)
                self._add_function(facts, item, parent=node.name, exported=method_exported)
            else:
                # Class bodies run at import time
                self._collect_sites(facts, MODULE_SYMBOL, [item])

    def _add_function(
        self,
        facts: FileFacts,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        parent: str | None,
        exported: bool,
    ) -> None:
        """Record a function or method with its call and access sites."""
        symbol = f"{parent}.{node.name}" if parent else node.name
        decorators = self._extract_decorators(node)
        takes_receiver = parent is not None and "staticmethod" not in decorators
        min_args, max_args = self._arity(node, skip_first=takes_receiver)

        facts.definitions.append(
            SymbolDefinition(
                symbol=symbol,
                kind=DefinitionKind.METHOD if parent else DefinitionKind.FUNCTION,
                exported=exported,
                signature_hash=_digest(self._build_signature(node)),
                structural_fingerprint=self._structural_fingerprint(node),
                min_args=min_args,
                max_args=max_args,
                entry_point=self._detect_entry_point(node),
                line_start=node.lineno,
                line_end=node.end_lineno or node.lineno,
            )
        )

        self._collect_sites(facts, symbol, self._function_parts(node))
        facts.framework_bindings.extend(self._injected_bindings(node, symbol, parent))

    def _module_exports(self, tree: ast.Module) -> set[str] | None:
        """Names listed in a literal __all__, or None when there is none."""
        for node in tree.body:
            if not isinstance(node, ast.Assign):
                continue
            if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets):
                continue
            if isinstance(node.value, (ast.List, ast.Tuple)):
                return {
                    elt.value
                    for elt in node.value.elts
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                }
        return None

    def _is_exported(self, name: str, exported_names: set[str] | None) -> bool:
        if exported_names is not None:
            return name in exported_names
        return not name.startswith("_")

    def _arity(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef, skip_first: bool
    ) -> tuple[int, int | None]:
        """Accepted argument counts, excluding self/cls.

        Returns:
            (required arguments, maximum arguments or None when variadic).
        """
        args = node.args
        positional = list(args.posonlyargs) + list(args.args)
        if skip_first and positional:
            positional = positional[1:]

        required_positional = max(0, len(positional) - len(args.defaults))
        required_keyword = sum(1 for default in args.kw_defaults if default is None)
        min_args = required_positional + required_keyword

        if args.vararg or args.kwarg:
            return min_args, None
        return min_args, len(positional) + len(args.kwonlyargs)

    def _structural_fingerprint(self, node: ast.AST) -> str:
        """Hash of the node-type sequence of a definition body.

        Identifiers, literals, docstrings and positions do not contribute, so
        clones that differ only in naming share a fingerprint.
        """
        body = list(getattr(node, "body", []))
        if body and self._is_docstring(body[0]):
            body = body[1:]
        shape = " ".join(type(child).__name__ for stmt in body for child in ast.walk(stmt))
        return _digest(shape)

    def _is_docstring(self, stmt: ast.stmt) -> bool:
        return (
            isinstance(stmt, ast.Expr)
            and isinstance(stmt.value, ast.Constant)
            and isinstance(stmt.value.value, str)
        )

    # -------------------------------------------------------------------------
    # Sites
    # -------------------------------------------------------------------------

    def _function_parts(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> list[ast.AST]:
        """Nodes evaluated on behalf of a function: defaults and body.

        Decorators are excluded; they run at definition time and only mark
        entry points.
        """
        parts: list[ast.AST] = list(node.args.defaults)
        parts.extend(d for d in node.args.kw_defaults if d is not None)
        parts.extend(node.body)
        return parts

    def _collect_sites(self, facts: FileFacts, symbol: str, roots: list[ast.AST]) -> None:
        """Record call sites and embedded SQL accesses under the given nodes."""
        for root in roots:
            docstrings = {
                id(child.value) for child in ast.walk(root) if isinstance(child, ast.Expr)
            }
            for child in ast.walk(root):
                if isinstance(child, ast.Call):
                    self._add_call(facts, symbol, child)
                elif (
                    isinstance(child, ast.Constant)
                    and isinstance(child.value, str)
                    and id(child) not in docstrings
                ):
                    for access in detect_sql(child.value):
                        facts.access_sites.append(
                            AccessSite(
                                symbol=symbol,
                                table=access.table,
                                field=access.field,
                                kind=access.kind,
                                line=child.lineno,
                            )
                        )

    def _add_call(self, facts: FileFacts, symbol: str, node: ast.Call) -> None:
        """Record a call, plus a framework site for dependency injection markers."""
        name = self._callee_name(node.func)
        if not name:
            return

        facts.call_sites.append(
            CallSite(
                caller_symbol=symbol,
                callee_name=name,
                line=node.lineno,
                hint=ExtractionMethod.AST,
                arg_count=self._arg_count(node),
            )
        )

        # Depends(get_db): the framework calls get_db for this function
        if name.split(".")[-1] in INJECTION_CALLS and node.args:
            provider = self._callee_name(node.args[0])
            if provider:
                facts.call_sites.append(
                    CallSite(
                        caller_symbol=symbol,
                        callee_name=provider,
                        line=node.lineno,
                        hint=ExtractionMethod.FRAMEWORK,
                    )
                )

    def _callee_name(self, node: ast.expr) -> str | None:
        """Dotted name of a call target, or None for computed targets."""
        if isinstance(node, ast.Name):
            return node.id
        if isinstance(node, ast.Attribute):
            return self._get_attribute_name(node)
        return None

    def _arg_count(self, node: ast.Call) -> int | None:
        """Number of arguments passed, or None when splats hide it."""
        if any(isinstance(arg, ast.Starred) for arg in node.args):
            return None
        if any(keyword.arg is None for keyword in node.keywords):
            return None
        return len(node.args) + len(node.keywords)

    def _injected_bindings(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        symbol: str,
        parent: str | None,
    ) -> list[FrameworkBinding]:
        """Framework-injected names visible inside a function.

        Two conventions are recognised: parameters whose default is an
        injection marker (``repo: Repo = Depends(get_repo)``), and
        constructor injection where ``__init__`` parameters or freshly built
        collaborators are stored on ``self``.
        """
        bindings: list[FrameworkBinding] = []
        is_constructor = parent is not None and node.name in CONSTRUCTORS
        annotated: dict[str, str] = {}

        args = node.args
        positional = list(args.posonlyargs) + list(args.args)
        defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
        defaults.extend(args.defaults)
        pairs = list(zip(positional, defaults)) + list(zip(args.kwonlyargs, args.kw_defaults))

        for arg, default in pairs:
            if arg.arg in ("self", "cls"):
                continue
            type_name = self._annotation_type(arg.annotation)
            if type_name is None:
                continue
            annotated[arg.arg] = type_name
            if self._is_injection_marker(default):
                bindings.append(FrameworkBinding(symbol, arg.arg, type_name))

        if not is_constructor:
            return bindings

        for child in ast.walk(node):
            if isinstance(child, ast.Assign):
                targets = child.targets
                value = child.value
                explicit = None
            elif isinstance(child, ast.AnnAssign):
                targets = [child.target]
                value = child.value
                explicit = self._annotation_type(child.annotation)
            else:
                continue

            for target in targets:
                if not (
                    isinstance(target, ast.Attribute)
                    and isinstance(target.value, ast.Name)
                    and target.value.id == "self"
                ):
                    continue
                type_name = explicit or self._assigned_type(value, annotated)
                if type_name:
                    bindings.append(FrameworkBinding(parent, f"self.{target.attr}", type_name))

        return bindings

    def _is_injection_marker(self, node: ast.expr | None) -> bool:
        if not isinstance(node, ast.Call):
            return False
        name = self._callee_name(node.func)
        return bool(name) and name.split(".")[-1] in INJECTION_CALLS

    def _assigned_type(self, value: ast.expr | None, annotated: dict[str, str]) -> str | None:
        """Type of a value stored on self: an annotated parameter or a constructor call."""
        if isinstance(value, ast.Name):
            return annotated.get(value.id)
        if isinstance(value, ast.Call):
            name = self._callee_name(value.func)
            if name and name.split(".")[-1][:1].isupper():
                return name
        return None

    def _annotation_type(self, node: ast.expr | None) -> str | None:
        """Class name carried by an annotation, unwrapping Optional/Annotated/X | None."""
        if node is None:
            return None
        if isinstance(node, ast.Constant) and isinstance(node.value, str):
            text = node.value.strip()
            return text if text.isidentifier() and text[:1].isupper() else None
        if isinstance(node, ast.Name):
            if node.id in ANNOTATION_WRAPPERS or not node.id[:1].isupper():
                return None
            return node.id
        if isinstance(node, ast.Attribute):
            name = self._get_attribute_name(node)
            return name if name.split(".")[-1][:1].isupper() else None
        if isinstance(node, ast.Subscript):
            wrapper = self._callee_name(node.value)
            if wrapper and wrapper.split(".")[-1] in ANNOTATION_WRAPPERS:
                inner = node.slice
                if isinstance(inner, ast.Tuple) and inner.elts:
                    inner = inner.elts[0]
                return self._annotation_type(inner)
            return None
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._annotation_type(node.left) or self._annotation_type(node.right)
        return None

    # -------------------------------------------------------------------------
    # Imports
    # -------------------------------------------------------------------------

    def _extract_imports(self, tree: ast.Module) -> list[ImportBinding]:
        """Names bound by import statements anywhere in the file."""
        bindings: list[ImportBinding] = []

        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.asname:
                        bindings.append(ImportBinding(alias.asname, alias.name))
                    else:
                        # "import a.b" binds "a"; submodules are reached through it
                        root = alias.name.split(".")[0]
                        bindings.append(ImportBinding(root, root))
            elif isinstance(node, ast.ImportFrom):
                module = "." * node.level + (node.module or "")
                for alias in node.names:
                    if alias.name == "*":
                        continue
                    bindings.append(ImportBinding(alias.asname or alias.name, module, alias.name))

        # Deduplicate while keeping first-seen order
        return list(dict.fromkeys(bindings))

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def _extract_decorators(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef
    ) -> list[str]:
        """Extract decorator names from a decorated node.

        Args:
            node: The AST node with decorators.

        Returns:
            List of decorator names as strings.
        """
        decorators = []

        for dec in node.decorator_list:
            func = dec.func if isinstance(dec, ast.Call) else dec
            name = self._callee_name(func)
            if name:
                decorators.append(name)

        return decorators

    def _detect_entry_point(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef
    ) -> EntryPoint | None:
        """Match decorators against the entry point pattern registry.

        Args:
            node: The AST function node.

        Returns:
            EntryPoint for the first matching decorator, or None.
        """
        for dec in node.decorator_list:
            call = dec if isinstance(dec, ast.Call) else None
            func = dec.func if call is not None else dec

            if isinstance(func, ast.Attribute):
                decorator_name = func.attr
                object_name = self._callee_name(func.value)
            elif isinstance(func, ast.Name):
                decorator_name = func.id
                object_name = None
            else:
                continue

            for pattern in self._get_entry_point_patterns():
                if self._matches_decorator_pattern(decorator_name, object_name, pattern):
                    descriptor = self._describe_entry_point(
                        pattern.kind, decorator_name, call, node.name
                    )
                    return EntryPoint(kind=pattern.kind, descriptor=descriptor)

        return None

    def _describe_entry_point(
        self,
        kind: EntryPointKind,
        decorator_name: str,
        call: ast.Call | None,
        function_name: str,
    ) -> str:
        """External descriptor: "METHOD /path", command name, schedule or topic."""
        if kind == EntryPointKind.HTTP_ROUTE:
            path = self._first_string(call, ("path", "rule", "url")) or "/"
            if decorator_name.lower() in ROUTE_DECORATORS:
                method = decorator_name.upper()
            else:
                method = self._first_method(call) or "GET"
            return f"{method} {path}"
        if kind == EntryPointKind.CLI_COMMAND:
            return self._first_string(call, ("name",)) or function_name.replace("_", "-")
        if kind == EntryPointKind.SCHEDULED_JOB:
            return self._first_string(call, ("schedule", "cron", "name")) or function_name
        return self._first_string(call, ("topic", "queue", "subject", "channel")) or function_name

    def _first_string(self, call: ast.Call | None, keywords: tuple[str, ...]) -> str | None:
        """First positional string argument, else the first named keyword that is a string."""
        if call is None:
            return None
        if call.args:
            first = call.args[0]
            if isinstance(first, ast.Constant) and isinstance(first.value, str):
                return first.value
        for keyword in call.keywords:
            if keyword.arg in keywords and isinstance(keyword.value, ast.Constant):
                if isinstance(keyword.value.value, str):
                    return keyword.value.value
        return None

    def _first_method(self, call: ast.Call | None) -> str | None:
        """First entry of a methods=[...] keyword (Flask style routes)."""
        if call is None:
            return None
        for keyword in call.keywords:
            if keyword.arg == "methods" and isinstance(keyword.value, (ast.List, ast.Tuple)):
                for elt in keyword.value.elts:
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str):
                        return elt.value.upper()
        return None

    # -------------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------------

    def _get_attribute_name(self, node: ast.Attribute) -> str:
        """Get the full dotted name from an Attribute node.

        Args:
            node: The AST attribute node.

        Returns:
            Dotted name string (e.g., 'app.route').
        """
        parts = []
        current: ast.expr = node

        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value

        if isinstance(current, ast.Name):
            parts.append(current.id)

        return ".".join(reversed(parts))

    def _build_signature(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
        """Build a human-readable function signature.

        Args:
            node: The AST function node.

        Returns:
            Function signature string.
        """
        args = node.args
        params = []

        positional = list(args.posonlyargs) + list(args.args)
        first_default_idx = len(positional) - len(args.defaults)

        for i, arg in enumerate(positional):
            param = self._format_arg(arg)
            if i >= first_default_idx:
                default = ast.unparse(args.defaults[i - first_default_idx])
                param = f"{param}={default}"
            params.append(param)
            if args.posonlyargs and i == len(args.posonlyargs) - 1:
                params.append("/")

        if args.vararg:
            params.append(f"*{self._format_arg(args.vararg)}")
        elif args.kwonlyargs:
            params.append("*")

        for arg, kw_default in zip(args.kwonlyargs, args.kw_defaults):
            param = self._format_arg(arg)
            if kw_default is not None:
                param = f"{param}={ast.unparse(kw_default)}"
            params.append(param)

        if args.kwarg:
            params.append(f"**{self._format_arg(args.kwarg)}")

        prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
        sig = f"{prefix} {node.name}({', '.join(params)})"

        if node.returns:
            sig += f" -> {ast.unparse(node.returns)}"

        return sig

    def _format_arg(self, arg: ast.arg) -> str:
        """Format a function argument with optional type annotation."""
        if arg.annotation:
            return f"{arg.arg}: {ast.unparse(arg.annotation)}"
        return arg.arg

    def _build_class_signature(self, node: ast.ClassDef) -> str:
        """Build a class signature including base classes.

        Args:
            node: The AST class node.

        Returns:
            Class signature string.
        """
        bases = [ast.unparse(base) for base in node.bases]
        keywords = [f"{kw.arg}={ast.unparse(kw.value)}" for kw in node.keywords]

        all_parts = bases + keywords
        if all_parts:
            return f"class {node.name}({', '.join(all_parts)})"
        return f"class {node.name}"
