"""Embedded SQL detection tests."""

import pytest

from reachgraph.facts.models import AccessKind
from reachgraph.facts.sql import detect_sql


def _accesses(text):
    return [(a.table, a.field, a.kind) for a in detect_sql(text)]


def test_select_lists_named_columns():
    """Qualified, aliased columns resolve to their field; aggregates are skipped."""
    sql = "SELECT id, u.email AS mail, COUNT(*) FROM users u WHERE u.active = 1"

    assert _accesses(sql) == [
        ("users", "id", AccessKind.READ),
        ("users", "email", AccessKind.READ),
    ]


def test_select_star_and_schema_qualified_table():
    """SELECT * covers the whole table and drops the schema."""
    assert _accesses("select * from public.accounts") == [("accounts", "*", AccessKind.READ)]


def test_quoted_identifiers():
    """Quoting around tables and columns is stripped."""
    assert _accesses('SELECT "email" FROM "users"') == [("users", "email", AccessKind.READ)]


def test_join_reads_whole_table():
    """Joined tables are read without a field list."""
    sql = "SELECT o.id FROM orders o JOIN customers c ON c.id = o.customer_id"

    assert _accesses(sql) == [
        ("orders", "id", AccessKind.READ),
        ("customers", "*", AccessKind.READ),
    ]


# =============================================================================
# Writes
# =============================================================================


def test_insert_with_columns():
    """INSERT column lists become written fields."""
    sql = "INSERT INTO sessions (user_id, token) VALUES (?, ?)"

    assert _accesses(sql) == [
        ("sessions", "user_id", AccessKind.WRITE),
        ("sessions", "token", AccessKind.WRITE),
    ]


def test_insert_without_columns():
    """INSERT without a column list writes the whole table."""
    assert _accesses("INSERT INTO audit_log VALUES (?)") == [
        ("audit_log", "*", AccessKind.WRITE)
    ]


def test_update_set_clause():
    """UPDATE writes the assigned columns only."""
    sql = "UPDATE users SET name = ?, email = ? WHERE id = ?"

    assert _accesses(sql) == [
        ("users", "name", AccessKind.WRITE),
        ("users", "email", AccessKind.WRITE),
    ]


def test_delete_writes_whole_table():
    """DELETE removes rows, so the whole table is written."""
    assert _accesses("DELETE FROM sessions WHERE expires_at < ?") == [
        ("sessions", "*", AccessKind.WRITE)
    ]


# =============================================================================
# Non-SQL and duplicates
# =============================================================================


@pytest.mark.parametrize(
    "text",
    ["", "Hello, world", "Profile updated successfully", "users.email"],
)
def test_plain_strings_are_not_sql(text):
    """Strings without SQL statements yield nothing."""
    assert detect_sql(text) == []


def test_repeated_statements_are_deduplicated():
    """The same access appears once, in first-seen order."""
    sql = "SELECT email FROM users; SELECT email FROM users; SELECT name FROM users"

    assert _accesses(sql) == [
        ("users", "email", AccessKind.READ),
        ("users", "name", AccessKind.READ),
    ]
