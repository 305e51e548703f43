"""File filtering and file source tests."""

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reachgraph.files import DiskFileSource, FileFilter, MemoryFileSource


@pytest.fixture
def temp_repo():
    """Create temporary directory with various files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_path = Path(tmpdir)

        # Create structure
        (repo_path / "src").mkdir()
        (repo_path / "src" / "main.py").write_text("code")
        (repo_path / "node_modules").mkdir()
        (repo_path / "node_modules" / "pkg").mkdir()
        (repo_path / "node_modules" / "pkg" / "index.js").write_text("module")
        (repo_path / "build").mkdir()
        (repo_path / "build" / "output.js").write_text("built")
        (repo_path / ".git").mkdir()
        (repo_path / ".git" / "config").write_text("git")
        (repo_path / "README.md").write_text("readme")

        yield repo_path


def test_default_excludes(temp_repo: Path):
    """Dependencies, build output and hidden directories are skipped."""
    filter = FileFilter(temp_repo)

    assert filter.get_files() == ["README.md", "src/main.py"]


@pytest.mark.parametrize(
    "path,excluded",
    [
        ("src/main.py", False),
        ("outside.py", False),
        ("src/app.min.js", True),
        ("types/index.d.ts", True),
        (".env", True),
        ("src/.cache/x.py", True),
        ("vendor/lib/a.go", True),
        ("pkg/__pycache__/m.pyc", True),
    ],
)
def test_is_excluded(path, excluded):
    """Default patterns match file names and any path segment."""
    assert FileFilter(Path(".")).is_excluded(path) is excluded


def test_extra_excludes(temp_repo: Path):
    """Directory and prefix patterns can be added."""
    (temp_repo / "src" / "generated").mkdir()
    (temp_repo / "src" / "generated" / "api.py").write_text("gen")
    (temp_repo / "docs").mkdir()
    (temp_repo / "docs" / "guide.py").write_text("doc")

    filter = FileFilter(temp_repo, extra_excludes=["docs/", "src/generated"])

    assert filter.get_files() == ["README.md", "src/main.py"]


def test_ignore_file_patterns(temp_repo: Path):
    """Ignore file lines are excludes; comments and blanks are skipped."""
    ignore = temp_repo / ".reachgraphignore"
    ignore.write_text("# docs are not code\n\n*.md\n")

    filter = FileFilter(temp_repo, ignore_path=ignore)

    assert filter.get_files() == ["src/main.py"]


def test_missing_ignore_file_is_fine(temp_repo: Path):
    """A configured ignore file that does not exist adds nothing."""
    filter = FileFilter(temp_repo, ignore_path=temp_repo / "nope")

    assert "README.md" in filter.get_files()


def test_size_limit(temp_repo: Path):
    """Files above the size limit are skipped."""
    (temp_repo / "src" / "big.py").write_text("x = 1\n" * 400)

    filter = FileFilter(temp_repo, max_file_size_kb=1)

    assert "src/big.py" not in filter.get_files()
    assert "src/main.py" in filter.get_files()


def test_binary_files_are_skipped(temp_repo: Path):
    """Content with NUL bytes is treated as binary."""
    (temp_repo / "src" / "blob.py").write_bytes(b"abc\x00def")

    assert "src/blob.py" not in FileFilter(temp_repo).get_files()


@settings(max_examples=50)
@given(st.lists(st.from_regex(r"[a-z]{1,8}", fullmatch=True), min_size=1, max_size=4))
def test_node_modules_anywhere_is_excluded(segments):
    """Any path passing through node_modules is excluded."""
    path = "/".join([*segments[:-1], "node_modules", segments[-1] + ".js"])

    assert FileFilter(Path(".")).is_excluded(path)


# =============================================================================
# File sources
# =============================================================================


def test_disk_source_lists_supported_files(temp_repo: Path):
    """The supports predicate narrows the filtered file list."""
    source = DiskFileSource(temp_repo, supports=lambda path: path.endswith(".py"))

    assert source.list_files() == ["src/main.py"]
    assert source.read("src/main.py") == "code"
    assert source.read("README.md") is None
    assert source.read("src/missing.py") is None
    assert source.read("node_modules/pkg/index.js") is None


def test_disk_source_skips_minified_content(temp_repo: Path):
    """Files whose lines are very long read as absent."""
    (temp_repo / "src" / "bundle.js").write_text("var a=1;" * 100)

    source = DiskFileSource(temp_repo)

    assert source.read("src/bundle.js") is None
    assert source.read("README.md") == "readme"


def test_memory_source():
    """In-memory files can be set, read, listed and deleted."""
    source = MemoryFileSource({"b.py": "b", "a.py": "a"})

    source.set("c.ts", "c")
    source.delete("b.py")
    source.delete("never-existed.py")

    assert source.list_files() == ["a.py", "c.ts"]
    assert source.read("c.ts") == "c"
    assert source.read("b.py") is None
