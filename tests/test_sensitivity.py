"""Sensitivity classification tests."""

import pytest

from reachgraph.facts.models import Sensitivity
from reachgraph.facts.sensitivity import PatternClassifier, no_classification


@pytest.fixture
def classifier():
    """Classifier with default threshold and no overrides."""
    return PatternClassifier()


@pytest.mark.parametrize(
    "table,field,expected",
    [
        ("users", "email", Sensitivity.PII),
        ("users", "user_email", Sensitivity.PII),
        ("users", "ssn", Sensitivity.PII),
        ("users", "password_hash", Sensitivity.CRITICAL),
        ("api_clients", "api_key", Sensitivity.CRITICAL),
        ("payments", "credit_card_number", Sensitivity.CRITICAL),
        ("visits", "diagnosis", Sensitivity.SENSITIVE),
        ("accounts", "balance", Sensitivity.NONE),
        ("users", "id", Sensitivity.NONE),
    ],
)
def test_field_patterns(classifier, table, field, expected):
    """Field names map to the class of their most specific pattern."""
    assert classifier(table, field) == expected


def test_internal_tables(classifier):
    """Operational tables are internal unless a field says otherwise."""
    assert classifier.classify("sessions", "id") == Sensitivity.INTERNAL
    assert classifier.classify("audit_log_2024", "message") == Sensitivity.INTERNAL
    assert classifier.classify("sessions", "refresh_token") == Sensitivity.CRITICAL


def test_whole_table_access_uses_table_only(classifier):
    """A "*" field is classified by its table name alone."""
    assert classifier.classify("users", "*") == Sensitivity.NONE
    assert classifier.classify("audit_log", "*") == Sensitivity.INTERNAL


def test_lower_threshold_admits_vague_names():
    """Low-specificity names only count when the threshold allows them."""
    classifier = PatternClassifier(min_specificity=0.5)

    assert classifier.classify("accounts", "balance") == Sensitivity.CRITICAL
    assert classifier.classify("users", "address") == Sensitivity.PII


def test_overrides_win():
    """Explicit annotations beat the name heuristics, in both directions."""
    classifier = PatternClassifier(
        overrides={"orders.notes": Sensitivity.SENSITIVE, "marketing.*": Sensitivity.NONE}
    )

    assert classifier.classify("orders", "notes") == Sensitivity.SENSITIVE
    assert classifier.classify("marketing", "email") == Sensitivity.NONE
    assert classifier.classify("users", "email") == Sensitivity.PII


def test_custom_internal_tables():
    """The internal table list can be replaced."""
    classifier = PatternClassifier(internal_tables=["events_*"])

    assert classifier.classify("events_raw", "payload") == Sensitivity.INTERNAL
    assert classifier.classify("sessions", "id") == Sensitivity.NONE


def test_no_classification():
    """The null classifier tags nothing."""
    assert no_classification("users", "password_hash") == Sensitivity.NONE


def test_is_sensitive_excludes_internal():
    """Internal data is tracked but does not count as sensitive."""
    assert {s for s in Sensitivity if s.is_sensitive} == {
        Sensitivity.CRITICAL,
        Sensitivity.SENSITIVE,
        Sensitivity.PII,
    }
