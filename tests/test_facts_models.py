"""Fact model and provider registry tests."""

from reachgraph.facts import (
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
    ProviderRegistry,
    PythonFactProvider,
    RegexFactProvider,
    SymbolDefinition,
)


def _sample_facts() -> FileFacts:
    return FileFacts(
        path="src/auth.py",
        language="python",
        definitions=[
            SymbolDefinition(
                symbol="AuthService.login",
                kind=DefinitionKind.METHOD,
                signature_hash="abc123",
                structural_fingerprint="fp",
                min_args=1,
                max_args=None,
                entry_point=EntryPoint(EntryPointKind.HTTP_ROUTE, "POST /login"),
                line_start=10,
                line_end=20,
            )
        ],
        call_sites=[
            CallSite("AuthService.login", "self.repo.find", 12, ExtractionMethod.AST, 1)
        ],
        access_sites=[AccessSite("AuthService.login", "users", "email", AccessKind.READ, 13)],
        imports=[ImportBinding("find_user", ".repo", "find_user")],
        framework_bindings=[FrameworkBinding("AuthService", "self.repo", "UserRepository")],
    )


# =============================================================================
# Models
# =============================================================================


def test_file_facts_survive_serialization():
    """to_dict/from_dict keep every fact, including positions."""
    facts = _sample_facts()

    restored = FileFacts.from_dict(facts.to_dict())

    assert restored == facts
    assert restored.definitions[0].line_start == 10
    assert restored.call_sites[0].line == 12


def test_from_dict_fills_defaults():
    """Sparse dictionaries load with the documented defaults."""
    facts = FileFacts.from_dict(
        {
            "path": "a.py",
            "definitions": [{"symbol": "f", "kind": "function"}],
            "call_sites": [{"caller_symbol": "f", "callee_name": "g"}],
            "access_sites": [{"symbol": "f", "table": "users"}],
        }
    )

    assert facts.language == "unknown"
    assert facts.definitions[0].exported
    assert facts.definitions[0].entry_point is None
    assert facts.call_sites[0].hint == ExtractionMethod.AST
    assert facts.access_sites[0].field == "*"
    assert facts.access_sites[0].kind == AccessKind.READ


def test_package_imports_and_access_site_defaults():
    """The package imports cleanly and AccessSite keeps its field defaults."""
    import reachgraph

    site = AccessSite("load", "users")

    assert reachgraph.open_project is not None
    assert (site.field, site.kind, site.line) == ("*", AccessKind.READ, 0)
    assert AccessSite("load", "users", "email", line=7).field == "email"


def test_positions_do_not_affect_equality():
    """A definition or site that only moved compares equal."""
    moved = SymbolDefinition("f", DefinitionKind.FUNCTION, line_start=1, line_end=2)
    original = SymbolDefinition("f", DefinitionKind.FUNCTION, line_start=40, line_end=41)

    assert moved == original
    assert CallSite("f", "g", line=3) == CallSite("f", "g", line=9)
    assert AccessSite("f", "users", line=3) == AccessSite("f", "users", line=9)
    assert CallSite("f", "g", arg_count=1) != CallSite("f", "g", arg_count=2)


def test_symbol_name_and_parent():
    """Qualified symbols split into simple name and enclosing class."""
    method = SymbolDefinition("AuthService.login", DefinitionKind.METHOD)
    function = SymbolDefinition("login", DefinitionKind.FUNCTION)

    assert (method.name, method.parent) == ("login", "AuthService")
    assert (function.name, function.parent) == ("login", None)


def test_entry_point_from_empty_dict():
    """Missing entry point data means no entry point."""
    assert EntryPoint.from_dict(None) is None
    assert EntryPoint.from_dict({}) is None


def test_fact_result_constructors():
    """Success carries facts; failure carries the path and error."""
    facts = _sample_facts()

    ok = FactResult.success(facts)
    failed = FactResult.failure("bad.py", "Syntax error at line 1")

    assert ok.ok and ok.path == "src/auth.py" and ok.error is None
    assert not failed.ok and failed.facts is None and failed.path == "bad.py"


# =============================================================================
# Registry
# =============================================================================


def test_registry_picks_provider_by_extension():
    """Python files go to the AST provider, others to the regex provider."""
    registry = ProviderRegistry()

    assert isinstance(registry.get_provider("pkg/mod.py"), PythonFactProvider)
    assert isinstance(registry.get_provider("web/app.tsx"), RegexFactProvider)
    assert registry.get_provider("README.md") is None
    assert registry.supports("main.go")
    assert not registry.supports("notes.txt")
    assert registry.supported_languages == ["Python", "Generic"]


def test_registry_unsupported_file_is_failure():
    """Extraction of an unknown file type fails without raising."""
    result = ProviderRegistry().extract("docs/readme.md", "# Title")

    assert not result.ok
    assert result.path == "docs/readme.md"
    assert "no fact provider" in result.error


def test_registry_uses_given_providers():
    """A custom provider list replaces the defaults."""
    registry = ProviderRegistry([RegexFactProvider()])

    assert registry.get_provider("a.py") is None
    result = registry.extract("a.ts", "export function f() {}\n")
    assert result.ok
    assert [d.symbol for d in result.facts.definitions] == ["f"]
