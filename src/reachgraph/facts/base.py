"""Base fact provider interface."""

import re
from abc import ABC, abstractmethod
from pathlib import PurePosixPath

from reachgraph.facts.decorator_patterns import ENTRY_POINT_PATTERNS, EntryPointPattern
from reachgraph.facts.models import FactResult


class FactProvider(ABC):
    """Abstract base class for language-specific fact providers."""

    @property
    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """File extensions this provider handles (e.g., ['.py'])."""
        pass

    @property
    @abstractmethod
    def language_name(self) -> str:
        """Human-readable language name."""
        pass

    @abstractmethod
    def extract(self, path: str, content: str) -> FactResult:
        """Extract facts from file content.

        Args:
            path: Project-relative POSIX path of the file.
            content: File content as string.

        Returns:
            FactResult with the file's facts or an error.
        """
        pass

    def can_extract(self, path: str) -> bool:
        """Check if this provider can handle the given file.

        Args:
            path: Project-relative path to check.

        Returns:
            True if this provider supports the file extension.
        """
        return PurePosixPath(path).suffix.lower() in self.supported_extensions

    def _get_entry_point_patterns(self, language: str | None = None) -> list[EntryPointPattern]:
        """Get entry point patterns for a language (defaults to this provider's)."""
        return ENTRY_POINT_PATTERNS.get((language or self.language_name).lower(), [])

    def _matches_decorator_pattern(
        self,
        decorator_name: str,
        object_name: str | None,
        pattern: EntryPointPattern,
    ) -> bool:
        """Check if decorator matches pattern.

        Args:
            decorator_name: The decorator's method/function name (e.g., "get" in router.get).
            object_name: The object the decorator is called on (e.g., "router"), or None.
            pattern: The pattern to match against.

        Returns:
            True if the decorator matches the pattern.
        """
        if not re.match(pattern.decorator_name, decorator_name):
            return False

        # If pattern specifies an object, it must match
        if pattern.object_name is not None:
            if object_name is None:
                return False
            if not re.match(pattern.object_name, object_name):
                return False

        return True
