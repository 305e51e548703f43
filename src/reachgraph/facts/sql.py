"""Embedded SQL detection shared by the fact providers.

String literals that look like SQL statements become data-access sites:
SELECT and JOIN read, INSERT, UPDATE and DELETE write. Column lists are
split into fields where the statement names them; otherwise the access
covers the whole table ("*").
"""

import re
from dataclasses import dataclass

from reachgraph.constants import ANY_FIELD
from reachgraph.facts.models import AccessKind


_TABLE = r"[`\"\[]?(?P<table>[A-Za-z_][\w$]*(?:\.[A-Za-z_][\w$]*)?)[`\"\]]?"
_FLAGS = re.IGNORECASE | re.DOTALL

SELECT_PATTERN = re.compile(r"\bSELECT\s+(?P<fields>.+?)\s+FROM\s+" + _TABLE, _FLAGS)
JOIN_PATTERN = re.compile(r"\bJOIN\s+" + _TABLE, _FLAGS)
INSERT_PATTERN = re.compile(
    r"\bINSERT\s+(?:OR\s+\w+\s+)?INTO\s+" + _TABLE + r"\s*(?:\((?P<fields>[^)]*)\))?", _FLAGS
)
UPDATE_PATTERN = re.compile(
    r"\bUPDATE\s+" + _TABLE + r"\s+SET\s+(?P<assignments>.+?)(?=\bWHERE\b|\bRETURNING\b|;|$)",
    _FLAGS,
)
DELETE_PATTERN = re.compile(r"\bDELETE\s+FROM\s+" + _TABLE, _FLAGS)

# Quick rejection before running the full patterns
_SQL_KEYWORDS = re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE)\b", re.IGNORECASE)

_IDENTIFIER = re.compile(r"^[A-Za-z_][\w$]*$")


@dataclass(frozen=True)
class SqlAccess:
    """One table/field touched by a SQL statement."""

    table: str
    field: str
    kind: AccessKind


def _clean_identifier(raw: str) -> str | None:
    """Strip quoting and qualification from a column reference."""
    name = raw.strip().strip("`\"[]")
    if "." in name:
        name = name.rsplit(".", 1)[-1].strip("`\"[]")
    if name == "*":
        return ANY_FIELD
    if _IDENTIFIER.match(name):
        return name
    return None


def _table_name(raw: str) -> str:
    """Drop a schema qualifier: "public.users" -> "users"."""
    return raw.rsplit(".", 1)[-1]


def _select_fields(field_list: str) -> list[str]:
    """Parse the column list of a SELECT."""
    field_list = re.sub(r"^\s*DISTINCT\s+", "", field_list, flags=re.IGNORECASE)
    fields = []
    for column in field_list.split(","):
        column = re.split(r"\s+AS\s+", column.strip(), flags=re.IGNORECASE)[0]
        if "(" in column:
            # Aggregates and expressions do not name a single field
            continue
        column = column.split()[0] if column.split() else ""
        name = _clean_identifier(column)
        if name:
            fields.append(name)
    return fields or [ANY_FIELD]


def _column_list(field_list: str | None) -> list[str]:
    """Parse an INSERT column list."""
    if not field_list:
        return [ANY_FIELD]
    fields = [_clean_identifier(column) for column in field_list.split(",")]
    return [f for f in fields if f] or [ANY_FIELD]


def _assigned_fields(assignments: str) -> list[str]:
    """Parse the SET clause of an UPDATE."""
    fields = []
    for assignment in assignments.split(","):
        if "=" not in assignment:
            continue
        name = _clean_identifier(assignment.split("=", 1)[0])
        if name:
            fields.append(name)
    return fields or [ANY_FIELD]


def detect_sql(text: str) -> list[SqlAccess]:
    """Find table/field accesses in a string that may hold SQL.

    Args:
        text: A string literal from source code.

    Returns:
        Accesses in order of appearance, without duplicates.
    """
    if not _SQL_KEYWORDS.search(text):
        return []

    found: list[SqlAccess] = []

    for match in SELECT_PATTERN.finditer(text):
        table = _table_name(match.group("table"))
        for field_name in _select_fields(match.group("fields")):
            found.append(SqlAccess(table, field_name, AccessKind.READ))

    for match in JOIN_PATTERN.finditer(text):
        found.append(SqlAccess(_table_name(match.group("table")), ANY_FIELD, AccessKind.READ))

    for match in INSERT_PATTERN.finditer(text):
        table = _table_name(match.group("table"))
        for field_name in _column_list(match.group("fields")):
            found.append(SqlAccess(table, field_name, AccessKind.WRITE))

    for match in UPDATE_PATTERN.finditer(text):
        table = _table_name(match.group("table"))
        for field_name in _assigned_fields(match.group("assignments")):
            found.append(SqlAccess(table, field_name, AccessKind.WRITE))

    for match in DELETE_PATTERN.finditer(text):
        found.append(SqlAccess(_table_name(match.group("table")), ANY_FIELD, AccessKind.WRITE))

    # Deduplicate while keeping first-seen order
    return list(dict.fromkeys(found))
