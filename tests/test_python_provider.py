"""Python fact provider tests."""

import pytest

from reachgraph.facts import (
    AccessKind,
    DefinitionKind,
    EntryPointKind,
    ExtractionMethod,
    ImportBinding,
)
from reachgraph.facts.python_provider import PythonFactProvider


@pytest.fixture
def provider():
    """Create Python fact provider instance."""
    return PythonFactProvider()


def _definition(facts, symbol):
    return next(d for d in facts.definitions if d.symbol == symbol)


def test_provider_supported_extensions(provider):
    """Provider supports .py and .pyi files."""
    assert ".py" in provider.supported_extensions
    assert ".pyi" in provider.supported_extensions
    assert provider.can_extract("pkg/module.py")
    assert not provider.can_extract("web/app.ts")


def test_extracts_function_with_arity(provider):
    """Functions carry arity bounds, signature hash and export flag."""
    code = '''
def greet(name, greeting="hello", *, loud):
    """Say hello to someone."""
    return f"{greeting}, {name}"


def _helper(*args):
    return args
'''
    result = provider.extract_string(code, "greetings.py")

    assert result.ok
    facts = result.facts
    assert facts.language == "python"

    greet = _definition(facts, "greet")
    assert greet.kind == DefinitionKind.FUNCTION
    assert (greet.min_args, greet.max_args) == (2, 3)
    assert greet.exported
    assert len(greet.signature_hash) == 12
    assert greet.line_start == 2

    helper = _definition(facts, "_helper")
    assert not helper.exported
    assert (helper.min_args, helper.max_args) == (0, None)


def test_extracts_class_methods(provider):
    """Methods are qualified by their class and skip the receiver in arity."""
    code = '''
class UserService:
    def find(self, user_id):
        return self.repo.get(user_id)

    @staticmethod
    def normalize(email):
        return email.lower()

    def _cache_key(self, user_id):
        return str(user_id)
'''
    facts = provider.extract_string(code, "services.py").facts

    assert _definition(facts, "UserService").kind == DefinitionKind.CLASS
    find = _definition(facts, "UserService.find")
    assert find.kind == DefinitionKind.METHOD
    assert (find.min_args, find.max_args) == (1, 1)
    assert (_definition(facts, "UserService.normalize").min_args) == 1
    assert not _definition(facts, "UserService._cache_key").exported


def test_dunder_all_controls_exports(provider):
    """A literal __all__ decides which top-level names are exported."""
    code = '''
__all__ = ["public_api"]


def public_api():
    pass


def also_public_looking():
    pass
'''
    facts = provider.extract_string(code).facts

    assert _definition(facts, "public_api").exported
    assert not _definition(facts, "also_public_looking").exported


def test_signature_hash_ignores_body_and_position(provider):
    """Body edits and moves keep the signature; parameter changes do not."""
    first = provider.extract_string("def f(a):\n    return a\n").facts
    edited = provider.extract_string("\n\n# moved\ndef f(a):\n    return a + 1\n").facts
    changed = provider.extract_string("def f(a, b):\n    return a\n").facts

    assert first.definitions[0].signature_hash == edited.definitions[0].signature_hash
    assert first.definitions[0].signature_hash != changed.definitions[0].signature_hash
    assert first.definitions[0] == provider.extract_string(
        "\n\ndef f(a):\n    return a\n"
    ).facts.definitions[0]


def test_structural_fingerprint_ignores_names(provider):
    """Clones that differ only in naming share a fingerprint."""
    facts = provider.extract_string(
        '''
def get_user(db, key):
    """Fetch a user."""
    return db.get(key)


def get_order(store, order_id):
    return store.get(order_id)


def add(a, b):
    return a + b
'''
    ).facts

    fingerprints = {d.symbol: d.structural_fingerprint for d in facts.definitions}
    assert fingerprints["get_user"] == fingerprints["get_order"]
    assert fingerprints["get_user"] != fingerprints["add"]


# =============================================================================
# Sites
# =============================================================================


def test_extracts_call_sites(provider):
    """Calls record the enclosing symbol, dotted name and argument count."""
    code = '''
import logging

logger = logging.getLogger(__name__)


def handler(request, *extra):
    user = load_user(request.user_id, strict=True)
    audit.record(user)
    send(*extra)
    return user
'''
    facts = provider.extract_string(code).facts

    calls = [(c.caller_symbol, c.callee_name, c.arg_count) for c in facts.call_sites]
    assert calls == [
        ("<module>", "logging.getLogger", 1),
        ("handler", "load_user", 2),
        ("handler", "audit.record", 1),
        ("handler", "send", None),
    ]
    assert all(c.hint == ExtractionMethod.AST for c in facts.call_sites)


def test_embedded_sql_becomes_access_sites(provider):
    """SQL in string literals is recorded as table/field access."""
    code = '''
def verify_password(db, username):
    """SELECT in a docstring is not a query."""
    return db.query("SELECT password_hash FROM users WHERE username = ?", username)


def rename(db, user_id, name):
    db.execute("UPDATE users SET display_name = ? WHERE id = ?", name, user_id)
'''
    facts = provider.extract_string(code, "auth.py").facts

    accesses = [(a.symbol, a.table, a.field, a.kind) for a in facts.access_sites]
    assert accesses == [
        ("verify_password", "users", "password_hash", AccessKind.READ),
        ("rename", "users", "display_name", AccessKind.WRITE),
    ]
    assert facts.access_sites[0].line == 4


def test_depends_adds_framework_call_site(provider):
    """Depends(get_db) makes the framework a caller of get_db."""
    code = '''
@router.get("/users/{user_id}")
def read_user(user_id: int, repo: UserRepository = Depends(get_repository)):
    return repo.find(user_id)
'''
    facts = provider.extract_string(code, "routes.py").facts

    framework = [c for c in facts.call_sites if c.hint == ExtractionMethod.FRAMEWORK]
    assert [(c.caller_symbol, c.callee_name) for c in framework] == [
        ("read_user", "get_repository")
    ]
    [binding] = facts.framework_bindings
    assert (binding.scope, binding.local_name, binding.target) == (
        "read_user",
        "repo",
        "UserRepository",
    )


def test_constructor_injection_binds_self_attributes(provider):
    """Attributes stored in __init__ are bound to their types for the class."""
    code = '''
class UserService:
    def __init__(self, repo: "UserRepository", mailer: Optional[Mailer] = None):
        self.repo = repo
        self.mailer = mailer
        self.cache = LRUCache(100)
        self.count = 0
'''
    facts = provider.extract_string(code).facts

    bound = {(b.scope, b.local_name, b.target) for b in facts.framework_bindings}
    assert bound == {
        ("UserService", "self.repo", "UserRepository"),
        ("UserService", "self.mailer", "Mailer"),
        ("UserService", "self.cache", "LRUCache"),
    }


# =============================================================================
# Imports and entry points
# =============================================================================


def test_extracts_imports(provider):
    """Import statements become local name bindings."""
    code = '''
import os
import xml.etree.ElementTree
import numpy as np
from auth import verify_password
from .models import User as UserModel
from utils import *
'''
    facts = provider.extract_string(code).facts

    assert facts.imports == [
        ImportBinding("os", "os"),
        ImportBinding("xml", "xml"),
        ImportBinding("np", "numpy"),
        ImportBinding("verify_password", "auth", "verify_password"),
        ImportBinding("UserModel", ".models", "User"),
    ]


@pytest.mark.parametrize(
    "decorator,kind,descriptor",
    [
        ('@app.post("/login")', EntryPointKind.HTTP_ROUTE, "POST /login"),
        ('@bp.route("/items", methods=["PUT"])', EntryPointKind.HTTP_ROUTE, "PUT /items"),
        ("@cli.command()", EntryPointKind.CLI_COMMAND, "sync-users"),
        ('@celery.task(name="nightly")', EntryPointKind.SCHEDULED_JOB, "nightly"),
        ('@broker.subscriber("orders")', EntryPointKind.MESSAGE_CONSUMER, "orders"),
    ],
)
def test_detects_entry_points(provider, decorator, kind, descriptor):
    """Framework decorators mark entry points with a descriptor."""
    code = f"{decorator}\ndef sync_users(payload):\n    return payload\n"

    [definition] = provider.extract_string(code).facts.definitions

    assert definition.entry_point.kind == kind
    assert definition.entry_point.descriptor == descriptor


def test_plain_decorators_are_not_entry_points(provider):
    """Decorators outside the registry leave functions internal."""
    code = "@functools.lru_cache()\ndef cached():\n    return 1\n"

    [definition] = provider.extract_string(code).facts.definitions

    assert definition.entry_point is None


def test_decorator_calls_are_not_call_sites(provider):
    """Decorators run at definition time and are not attributed to the function."""
    code = '@app.post("/login")\ndef login():\n    return check()\n'

    facts = provider.extract_string(code).facts

    assert [c.callee_name for c in facts.call_sites] == ["check"]


def test_syntax_error_returns_failure(provider):
    """Invalid Python yields a failed result, not an exception."""
    result = provider.extract_string("def broken(:\n    pass\n", "broken.py")

    assert not result.ok
    assert result.facts is None
    assert result.path == "broken.py"
    assert result.error.startswith("Syntax error")
