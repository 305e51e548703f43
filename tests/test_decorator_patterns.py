"""Tests for decorator pattern registry."""

import re

import pytest

from reachgraph.facts.decorator_patterns import ENTRY_POINT_PATTERNS, EntryPointPattern
from reachgraph.facts.models import EntryPointKind
from reachgraph.facts.python_provider import PythonFactProvider


def _kinds(language, decorator_name):
    return {
        p.kind for p in ENTRY_POINT_PATTERNS[language] if re.match(p.decorator_name, decorator_name)
    }


def test_entry_point_pattern_dataclass_is_frozen():
    """EntryPointPattern is immutable (frozen dataclass)."""
    pattern = EntryPointPattern(r"^task$", None, EntryPointKind.SCHEDULED_JOB)

    with pytest.raises(AttributeError):
        pattern.decorator_name = "new"  # type: ignore[misc]


def test_every_language_has_patterns():
    """Each registered language maps to a non-empty pattern list."""
    for language in ("python", "typescript", "javascript", "java", "kotlin"):
        assert ENTRY_POINT_PATTERNS[language], language


def test_http_methods_match_routes_only():
    """HTTP verbs mark routes; unrelated names do not."""
    for method in ("get", "post", "put", "patch", "delete"):
        assert _kinds("python", method) == {EntryPointKind.HTTP_ROUTE}

    assert _kinds("python", "depends") == set()
    assert _kinds("python", "lru_cache") == set()


@pytest.mark.parametrize(
    "language,name,kind",
    [
        ("python", "command", EntryPointKind.CLI_COMMAND),
        ("python", "shared_task", EntryPointKind.SCHEDULED_JOB),
        ("python", "subscriber", EntryPointKind.MESSAGE_CONSUMER),
        ("typescript", "Cron", EntryPointKind.SCHEDULED_JOB),
        ("typescript", "EventPattern", EntryPointKind.MESSAGE_CONSUMER),
        ("java", "GetMapping", EntryPointKind.HTTP_ROUTE),
        ("java", "KafkaListener", EntryPointKind.MESSAGE_CONSUMER),
    ],
)
def test_framework_decorators_map_to_kinds(language, name, kind):
    """Framework decorator names map to the expected entry point kind."""
    assert kind in _kinds(language, name)


def test_object_name_is_required_when_pattern_names_one():
    """Patterns with an object only match attribute decorators."""
    provider = PythonFactProvider()
    route = next(
        p for p in ENTRY_POINT_PATTERNS["python"] if p.kind == EntryPointKind.HTTP_ROUTE
    )

    assert provider._matches_decorator_pattern("get", "router", route)
    assert not provider._matches_decorator_pattern("get", None, route)
    assert not provider._matches_decorator_pattern("helper", "router", route)
