"""Fact extraction: per-file definitions, call sites and data-access sites."""

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
    Sensitivity,
    SymbolDefinition,
)
from reachgraph.facts.base import FactProvider
from reachgraph.facts.python_provider import PythonFactProvider
from reachgraph.facts.regex_provider import RegexFactProvider
from reachgraph.facts.registry import ProviderRegistry
from reachgraph.facts.sensitivity import Classifier, PatternClassifier, no_classification

__all__ = [
    # Models
    "AccessKind",
    "AccessSite",
    "CallSite",
    "DefinitionKind",
    "EntryPoint",
    "EntryPointKind",
    "ExtractionMethod",
    "FactResult",
    "FileFacts",
    "FrameworkBinding",
    "ImportBinding",
    "Sensitivity",
    "SymbolDefinition",
    # Providers
    "FactProvider",
    "PythonFactProvider",
    "RegexFactProvider",
    "ProviderRegistry",
    # Classification
    "Classifier",
    "PatternClassifier",
    "no_classification",
]
