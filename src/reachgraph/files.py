"""File filtering and file sources for scans.

A file source answers two questions for the incremental maintainer: which
files currently exist, and what a given file contains. DiskFileSource walks
a project directory through FileFilter; MemoryFileSource serves an in-memory
mapping and is what tests and editor integrations feed unsaved buffers into.
"""

import fnmatch
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


DEFAULT_EXCLUDES = [
    # Hidden files and directories (dotfiles/dotdirs)
    # This catches .git, .hypothesis, .pytest_cache, .reachgraph, .env, etc.
    ".*",
    # Dependencies
    "node_modules",
    "vendor",
    "venv",
    "__pycache__",
    "*.pyc",
    # Build outputs
    "build",
    "dist",
    "target",
    "out",
    # Minified/bundled assets
    "*.min.js",
    "*.bundle.js",
    "*.chunk.js",
    "*.map",
    # Type declarations carry no bodies
    "*.d.ts",
]

# Files above this average line length are treated as minified
MINIFIED_LINE_LENGTH = 500


class FileFilter:
    """Filter files based on patterns and size limits."""

    def __init__(
        self,
        repo_path: Path,
        max_file_size_kb: int = 500,
        extra_excludes: list[str] | None = None,
        ignore_path: Optional[Path] = None,
    ):
        """Initialize file filter.

        Args:
            repo_path: Path to project root.
            max_file_size_kb: Maximum file size in KB.
            extra_excludes: Additional exclude patterns.
            ignore_path: Path to an ignore file with one pattern per line.
        """
        self.repo_path = Path(repo_path)
        self.max_file_size_bytes = max_file_size_kb * 1024

        # Build exclude patterns
        self.exclude_patterns = list(DEFAULT_EXCLUDES)
        if extra_excludes:
            self.exclude_patterns.extend(extra_excludes)

        if ignore_path is not None and ignore_path.exists():
            for line in ignore_path.read_text().splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    self.exclude_patterns.append(line)

    def is_excluded(self, path: str) -> bool:
        """Check if path matches any exclude pattern.

        Args:
            path: Relative file path.

        Returns:
            True if path should be excluded.
        """
        parts = path.split("/")

        for pattern in self.exclude_patterns:
            # Trailing slash means directory, e.g. "docs/"
            if pattern.endswith("/"):
                dir_pattern = pattern.rstrip("/")
                if any(fnmatch.fnmatch(part, dir_pattern) for part in parts[:-1]):
                    return True
            # Patterns containing "/" match as path prefixes
            elif "/" in pattern:
                if path.startswith(pattern + "/") or path == pattern:
                    return True
                if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path, pattern + "/*"):
                    return True
            else:
                if any(fnmatch.fnmatch(part, pattern) for part in parts):
                    return True
                if fnmatch.fnmatch(path, pattern):
                    return True

        return False

    def _is_binary(self, file_path: Path) -> bool:
        """Check if file appears to be binary.

        Args:
            file_path: Path to file.

        Returns:
            True if file appears to be binary.
        """
        try:
            with open(file_path, "rb") as f:
                chunk = f.read(1024)
                return b"\x00" in chunk
        except OSError:
            return True

    def _is_minified(self, content: str) -> bool:
        """Check if content appears to be minified based on line length."""
        lines = content.split("\n")[:20]
        if not lines:
            return False
        avg_length = sum(len(line) for line in lines) / len(lines)
        return avg_length > MINIFIED_LINE_LENGTH

    def accepts(self, relative: str) -> bool:
        """Whether a project-relative file passes every filter."""
        if self.is_excluded(relative):
            return False

        file_path = self.repo_path / relative
        try:
            if file_path.stat().st_size > self.max_file_size_bytes:
                logger.debug(f"Skipping {relative}: larger than size limit")
                return False
        except OSError:
            return False

        return not self._is_binary(file_path)

    def get_files(self) -> list[str]:
        """Get list of files to process.

        Returns:
            Sorted list of relative POSIX file paths.
        """
        files = []

        for file_path in self.repo_path.rglob("*"):
            if not file_path.is_file():
                continue

            relative = file_path.relative_to(self.repo_path).as_posix()
            if self.accepts(relative):
                files.append(relative)

        return sorted(files)


class FileSource(Protocol):
    """What the incremental maintainer needs from the file system."""

    def list_files(self) -> list[str]:
        """All candidate files, project-relative."""
        ...

    def read(self, path: str) -> str | None:
        """File content, or None if the file no longer exists or is filtered out."""
        ...


class DiskFileSource:
    """Files under a project directory that some fact provider supports."""

    def __init__(
        self,
        root: Path,
        file_filter: FileFilter | None = None,
        supports: Callable[[str], bool] | None = None,
    ):
        """Initialize the source.

        Args:
            root: Project root.
            file_filter: Filter for excludes and size limits. Defaults to a
                FileFilter with default settings.
            supports: Predicate selecting files a provider can extract.
                Defaults to accepting every file.
        """
        self.root = Path(root)
        self.file_filter = file_filter or FileFilter(self.root)
        self.supports = supports or (lambda path: True)

    def list_files(self) -> list[str]:
        return [path for path in self.file_filter.get_files() if self.supports(path)]

    def read(self, path: str) -> str | None:
        if not self.supports(path) or not self.file_filter.accepts(path):
            return None
        try:
            content = (self.root / path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
        if self.file_filter._is_minified(content):
            logger.debug(f"Skipping {path}: looks minified")
            return None
        return content


class MemoryFileSource:
    """In-memory files keyed by project-relative path."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, str] = dict(files or {})

    def set(self, path: str, content: str) -> None:
        self.files[path] = content

    def delete(self, path: str) -> None:
        self.files.pop(path, None)

    def list_files(self) -> list[str]:
        return sorted(self.files)

    def read(self, path: str) -> str | None:
        return self.files.get(path)
