"""Configuration tests.

Tests verify behavior (types, ranges, loading) more than specific values.
"""

from pathlib import Path

import pytest

from reachgraph.config import CONFIG_FILENAME, CONFIG_SCHEMA, Config, ConfigError, load_config


def write_config(project: Path, content: str) -> Path:
    """Write a reachgraph.ini file to the project and return the path."""
    config_path = project / CONFIG_FILENAME
    config_path.write_text(content)
    return config_path


# =============================================================================
# Defaults
# =============================================================================


def test_all_settings_have_correct_types(tmp_path: Path):
    """Every setting matches its declared type from schema."""
    config = load_config(tmp_path, environ={})

    for section_name, keys in CONFIG_SCHEMA.items():
        section = getattr(config, section_name)
        for key, (expected_type, *_) in keys.items():
            value = getattr(section, key)
            assert isinstance(value, expected_type), (
                f"{section_name}.{key}: expected {expected_type.__name__}, "
                f"got {type(value).__name__}"
            )


def test_defaults_are_within_ranges():
    """Schema defaults satisfy their own bounds."""
    for section_name, keys in CONFIG_SCHEMA.items():
        for key, (typ, default, min_val, max_val, _) in keys.items():
            if typ not in (int, float):
                continue
            assert min_val <= default <= max_val, f"{section_name}.{key}"


def test_missing_file_equals_bare_config(tmp_path: Path):
    """No INI file gives the same settings as Config() defaults."""
    assert load_config(tmp_path, environ={}) == Config(tmp_path)


def test_risk_defaults():
    """Risk weights and thresholds default to the documented contract."""
    risk = Config(Path(".")).risk

    assert (risk.entry_point_weight, risk.sensitive_path_weight, risk.coverage_weight) == (
        0.4,
        0.4,
        0.2,
    )
    assert (risk.medium_threshold, risk.high_threshold) == (40.0, 70.0)


# =============================================================================
# Loading
# =============================================================================


def test_values_from_file(tmp_path: Path):
    """Keys in the INI file replace defaults; others keep theirs."""
    write_config(tmp_path, "[scan]\nworker_count = 8\n\n[risk]\ncoverage_weight = 0.5\n")

    config = load_config(tmp_path, environ={})

    assert config.scan.worker_count == 8
    assert config.risk.coverage_weight == 0.5
    assert config.risk.entry_point_weight == 0.4


def test_explicit_config_path(tmp_path: Path):
    """A config file outside the project root can be named."""
    other = tmp_path / "elsewhere.ini"
    other.write_text("[reach]\ndefault_max_depth = 3\n")

    config = load_config(tmp_path, config_path=other, environ={})

    assert config.reach.default_max_depth == 3


def test_environment_overrides_file(tmp_path: Path):
    """Environment variables take precedence over the INI file."""
    write_config(tmp_path, "[scan]\nworker_count = 8\n")

    config = load_config(
        tmp_path,
        environ={"REACHGRAPH_WORKERS": "2", "REACHGRAPH_DATA_DIR": ".cache/rg"},
    )

    assert config.scan.worker_count == 2
    assert config.data_path == tmp_path / ".cache" / "rg"


def test_blank_environment_value_is_ignored(tmp_path: Path):
    """An empty override falls back to the file or default."""
    config = load_config(tmp_path, environ={"REACHGRAPH_WORKERS": "  "})

    assert config.scan.worker_count == 4


# =============================================================================
# Validation
# =============================================================================


@pytest.mark.parametrize(
    "content,message",
    [
        ("[scan]\nworker_count = many\n", "expected int"),
        ("[scan]\nworker_count = 0\n", "minimum is 1"),
        ("[resolver]\nambiguity_penalty = 1.5\n", "maximum is 1.0"),
        ("[risk]\nmedium_threshold = 80\nhigh_threshold = 70\n", "must not exceed"),
        (
            "[risk]\nentry_point_weight = 0\nsensitive_path_weight = 0\ncoverage_weight = 0\n",
            "positive",
        ),
        ("worker_count = 4\n", "Cannot parse"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, content, message):
    """Bad types, out-of-range values and broken files raise ConfigError."""
    write_config(tmp_path, content)

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path, environ={})


def test_invalid_environment_value_raises(tmp_path: Path):
    """Environment overrides are validated like file values."""
    with pytest.raises(ConfigError, match="minimum"):
        load_config(tmp_path, environ={"REACHGRAPH_WORKERS": "0"})


# =============================================================================
# Paths
# =============================================================================


def test_computed_paths(tmp_path: Path):
    """Persisted state lives under the data directory of the project."""
    config = Config(tmp_path)

    assert config.data_path == tmp_path / ".reachgraph"
    assert config.graph_path == tmp_path / ".reachgraph" / "graph"
    assert config.graph_staging_path == tmp_path / ".reachgraph" / "graph-building"
    assert config.rules_path == tmp_path / "boundaries.yaml"
    assert config.ignore_path == tmp_path / ".reachgraphignore"


def test_config_is_frozen(tmp_path: Path):
    """Config cannot be mutated after loading."""
    config = Config(tmp_path)

    with pytest.raises(AttributeError):
        config.scan.worker_count = 10  # type: ignore[misc]
