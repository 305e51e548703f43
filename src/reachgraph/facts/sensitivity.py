"""Default sensitivity classification for data fields.

The graph consumes classification through a plain callable
``classify(table, field) -> Sensitivity``. PatternClassifier is the default:
name heuristics with a specificity score per pattern, so vague names such
as "token" or "balance" stay unclassified unless the threshold is lowered.
Explicit annotations (``overrides``) win over heuristics.
"""

import fnmatch
import re
from collections.abc import Callable
from dataclasses import dataclass

from reachgraph.constants import ANY_FIELD
from reachgraph.facts.models import Sensitivity


Classifier = Callable[[str, str], Sensitivity]


@dataclass(frozen=True)
class SensitivePattern:
    """A field-name pattern and how reliably it indicates sensitive data."""

    pattern: re.Pattern
    specificity: float


def _p(regex: str, specificity: float) -> SensitivePattern:
    return SensitivePattern(re.compile(regex, re.IGNORECASE), specificity)


SENSITIVE_PATTERNS: dict[str, list[SensitivePattern]] = {
    "pii": [
        _p(r"\bssn\b", 0.95),
        _p(r"\bsocial_security(?:_number)?\b", 0.95),
        _p(r"\bdate_of_birth\b", 0.9),
        _p(r"\bdob\b", 0.85),
        _p(r"\bphone_number\b", 0.85),
        _p(r"\bfull_name\b", 0.8),
        _p(r"\bfirst_name\b", 0.75),
        _p(r"\blast_name\b", 0.75),
        _p(r"\bemail\b", 0.65),
        _p(r"\bphone\b", 0.6),
        # Could be a memory or IP address
        _p(r"\baddress\b", 0.5),
    ],
    "credentials": [
        _p(r"\bpassword_hash\b", 0.95),
        _p(r"\bhashed_password\b", 0.95),
        _p(r"\bapi_key\b", 0.9),
        _p(r"\bprivate_key\b", 0.9),
        _p(r"\bsecret_key\b", 0.9),
        _p(r"\brefresh_token\b", 0.9),
        _p(r"\baccess_token\b", 0.85),
        _p(r"\bauth_token\b", 0.85),
        _p(r"\bpassword\b", 0.75),
        _p(r"\bsalt\b", 0.7),
        _p(r"\bsecret\b", 0.5),
        _p(r"\btoken\b", 0.5),
        _p(r"\bhash\b", 0.4),
    ],
    "financial": [
        _p(r"\bcredit_card(?:_number)?\b", 0.95),
        _p(r"\bcvv\b", 0.95),
        _p(r"\bcard_number\b", 0.9),
        _p(r"\bbank_account(?:_number)?\b", 0.9),
        _p(r"\brouting_number\b", 0.9),
        _p(r"\bsalary\b", 0.85),
        _p(r"\bincome\b", 0.8),
        _p(r"\bpayment\b", 0.5),
        _p(r"\bbalance\b", 0.5),
    ],
    "health": [
        _p(r"\bmedical_record\b", 0.95),
        _p(r"\bhealth_record\b", 0.95),
        _p(r"\bdiagnosis\b", 0.9),
        _p(r"\bprescription\b", 0.9),
        _p(r"\bmedical\b", 0.6),
        _p(r"\bhealth\b", 0.5),
    ],
}

CATEGORY_SENSITIVITY: dict[str, Sensitivity] = {
    "credentials": Sensitivity.CRITICAL,
    "financial": Sensitivity.CRITICAL,
    "health": Sensitivity.SENSITIVE,
    "pii": Sensitivity.PII,
}

# Operational tables that are not user data but still should not leak
INTERNAL_TABLE_PATTERNS = [
    "audit_log*",
    "*_audit",
    "sessions",
    "migrations",
    "schema_migrations",
    "jobs",
    "settings",
    "feature_flags",
]

# Severity order used to break specificity ties
_SEVERITY = [Sensitivity.CRITICAL, Sensitivity.SENSITIVE, Sensitivity.PII]


class PatternClassifier:
    """Classify (table, field) pairs by name patterns and explicit overrides."""

    def __init__(
        self,
        min_specificity: float = 0.6,
        overrides: dict[str, Sensitivity] | None = None,
        internal_tables: list[str] | None = None,
    ):
        """Initialize the classifier.

        Args:
            min_specificity: Patterns below this score are ignored.
            overrides: "table.field" globs mapped to a fixed classification.
            internal_tables: Table globs classified as internal. Defaults to
                INTERNAL_TABLE_PATTERNS.
        """
        self.min_specificity = min_specificity
        self.overrides = dict(overrides or {})
        self.internal_tables = list(
            internal_tables if internal_tables is not None else INTERNAL_TABLE_PATTERNS
        )

    def __call__(self, table: str, field: str) -> Sensitivity:
        return self.classify(table, field)

    def classify(self, table: str, field: str) -> Sensitivity:
        """Classify a field.

        Args:
            table: Table or resource name.
            field: Field name, or "*" for the whole table.

        Returns:
            The most severe matching classification, or Sensitivity.NONE.
        """
        qualified = f"{table}.{field}"
        for pattern in sorted(self.overrides):
            if fnmatch.fnmatch(qualified, pattern):
                return self.overrides[pattern]

        if field != ANY_FIELD:
            match = self._match_field(field)
            if match is not None:
                return match

        for pattern in self.internal_tables:
            if fnmatch.fnmatch(table.lower(), pattern):
                return Sensitivity.INTERNAL

        return Sensitivity.NONE

    def _match_field(self, field: str) -> Sensitivity | None:
        """Best pattern match for a field name, or None."""
        # Both forms: raw for underscore patterns, spaced so "user_email" hits \bemail\b
        candidates = (field, field.replace("_", " "))
        best: tuple[float, int] | None = None
        best_sensitivity: Sensitivity | None = None

        for category, patterns in SENSITIVE_PATTERNS.items():
            sensitivity = CATEGORY_SENSITIVITY[category]
            for entry in patterns:
                if entry.specificity < self.min_specificity:
                    continue
                if not any(entry.pattern.search(text) for text in candidates):
                    continue
                # Higher specificity wins, then the more severe class
                rank = (entry.specificity, -_SEVERITY.index(sensitivity))
                if best is None or rank > best:
                    best = rank
                    best_sensitivity = sensitivity

        return best_sensitivity


def no_classification(table: str, field: str) -> Sensitivity:
    """Classifier that tags nothing; useful when sensitivity comes only from overrides."""
    return Sensitivity.NONE
