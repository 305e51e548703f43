"""Configuration system for reachgraph.

Settings come from an optional INI file in the project root, with defaults
for every key, range validation, and a couple of environment overrides. The
result is a frozen Config that also computes the paths of the persisted
graph and the boundary rule file.
"""

from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
import os

from reachgraph.constants import GRAPH_DIR, GRAPH_STAGING_DIR


CONFIG_FILENAME = "reachgraph.ini"


# =============================================================================
# ConfigError Exception
# =============================================================================


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# =============================================================================
# CONFIG_SCHEMA
# =============================================================================

# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "scan": {
        "worker_count": (int, 4, 1, 64, "Parallel file extractions"),
        "extraction_timeout_seconds": (
            float,
            30.0,
            0.01,
            3600.0,
            "Per-file extraction timeout",
        ),
        "max_file_size_kb": (int, 500, 1, 10000, "File size limit in KB"),
    },
    "resolver": {
        "ambiguity_penalty": (
            float,
            0.5,
            0.0,
            1.0,
            "Confidence multiplier for ambiguous heuristic matches",
        ),
        "low_resolution_warning_rate": (
            float,
            0.5,
            0.0,
            1.0,
            "Resolution rate below which a scan logs a warning",
        ),
    },
    "reach": {
        "default_max_depth": (int, 10, 0, 1000, "Traversal depth when none is given"),
        "min_confidence": (float, 0.0, 0.0, 1.0, "Minimum call edge confidence to traverse"),
    },
    "risk": {
        "entry_point_weight": (float, 0.4, 0.0, 1.0, "Weight of entry-point exposure"),
        "sensitive_path_weight": (float, 0.4, 0.0, 1.0, "Weight of sensitive data reach"),
        "coverage_weight": (float, 0.2, 0.0, 1.0, "Weight of missing test coverage"),
        "entry_point_saturation": (int, 10, 1, 10000, "Entry points for a full exposure factor"),
        "sensitive_path_saturation": (int, 5, 1, 10000, "Sensitive paths for a full data factor"),
        "default_coverage": (float, 0.0, 0.0, 1.0, "Coverage ratio when none is supplied"),
        "medium_threshold": (float, 40.0, 0.0, 100.0, "Score at which risk becomes medium"),
        "high_threshold": (float, 70.0, 0.0, 100.0, "Score at which risk becomes high"),
    },
    "storage": {
        "data_dir": (str, ".reachgraph", None, None, "Directory for persisted state"),
        "shard_prefix_depth": (int, 1, 0, 8, "Path segments used as the shard key"),
        "rules_file": (str, "boundaries.yaml", None, None, "Boundary rule file name"),
        "ignore_file": (str, ".reachgraphignore", None, None, "Ignore file name"),
    },
}

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "REACHGRAPH_WORKERS": ("scan", "worker_count"),
    "REACHGRAPH_DATA_DIR": ("storage", "data_dir"),
}


# =============================================================================
# Section Dataclasses
# =============================================================================


@dataclass(frozen=True)
class ScanConfig:
    """Incremental scan configuration."""

    worker_count: int
    extraction_timeout_seconds: float
    max_file_size_kb: int


@dataclass(frozen=True)
class ResolverConfig:
    """Symbol resolution configuration."""

    ambiguity_penalty: float
    low_resolution_warning_rate: float


@dataclass(frozen=True)
class ReachConfig:
    """Reachability query defaults."""

    default_max_depth: int
    min_confidence: float


@dataclass(frozen=True)
class RiskConfig:
    """Risk scoring weights and bucket thresholds."""

    entry_point_weight: float
    sensitive_path_weight: float
    coverage_weight: float
    entry_point_saturation: int
    sensitive_path_saturation: int
    default_coverage: float
    medium_threshold: float
    high_threshold: float


@dataclass(frozen=True)
class StorageConfig:
    """Persisted state locations."""

    data_dir: str
    shard_prefix_depth: int
    rules_file: str
    ignore_file: str


def _defaults(section: str) -> dict[str, Any]:
    """Default values for a section straight from the schema."""
    return {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}


# =============================================================================
# Config Loader Functions
# =============================================================================


def _convert(section: str, key: str, typ: type, raw_value: str) -> Any:
    """Convert a raw string to the schema type."""
    try:
        if typ is bool:
            return raw_value.lower() in ("true", "1", "yes", "on")
        if typ is int:
            return int(raw_value)
        if typ is float:
            return float(raw_value)
        return raw_value
    except ValueError as e:
        raise ConfigError(
            f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
        ) from e


def _load_section(
    parser: ConfigParser,
    section: str,
    schema: dict[str, tuple[type, Any, Any, Any, str]],
    overrides: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section
        overrides: Raw values that take precedence over the file (from env)

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If validation fails
    """
    overrides = overrides or {}
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if key in overrides:
            value = _convert(section, key, typ, overrides[key])
        elif parser.has_option(section, key):
            value = _convert(section, key, typ, parser.get(section, key))
        else:
            value = default

        # Validate range for numeric types
        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        result[key] = value

    return result


def _env_overrides(environ: dict[str, str]) -> dict[str, dict[str, str]]:
    """Group environment overrides by section."""
    grouped: dict[str, dict[str, str]] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is not None and raw.strip():
            grouped.setdefault(section, {})[key] = raw.strip()
    return grouped


def _validate_risk(risk: RiskConfig) -> None:
    """Cross-field checks that a single key's range cannot express."""
    if risk.medium_threshold > risk.high_threshold:
        raise ConfigError(
            f"[risk].medium_threshold ({risk.medium_threshold}) must not exceed "
            f"[risk].high_threshold ({risk.high_threshold})"
        )
    total = risk.entry_point_weight + risk.sensitive_path_weight + risk.coverage_weight
    if total <= 0:
        raise ConfigError("[risk] weights must sum to a positive number")


def load_config(
    project_path: Path,
    config_path: Optional[Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> "Config":
    """Load configuration for a project.

    Args:
        project_path: Root of the analysed project.
        config_path: INI file to read. Defaults to reachgraph.ini in the
            project root; a missing file means all defaults.
        environ: Environment mapping for overrides. Defaults to os.environ.

    Returns:
        Validated, frozen Config.

    Raises:
        ConfigError: If the file cannot be parsed or a value is invalid.
    """
    project_path = Path(project_path)
    if config_path is None:
        config_path = project_path / CONFIG_FILENAME
    if environ is None:
        environ = dict(os.environ)

    parser = ConfigParser()
    if config_path.exists():
        try:
            parser.read(config_path)
        except ConfigParserError as e:
            raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    overrides = _env_overrides(environ)
    values = {
        section: _load_section(parser, section, schema, overrides.get(section))
        for section, schema in CONFIG_SCHEMA.items()
    }

    risk = RiskConfig(**values["risk"])
    _validate_risk(risk)

    return Config(
        project_path=project_path,
        scan=ScanConfig(**values["scan"]),
        resolver=ResolverConfig(**values["resolver"]),
        reach=ReachConfig(**values["reach"]),
        risk=risk,
        storage=StorageConfig(**values["storage"]),
    )


# =============================================================================
# Config Dataclass with Computed Properties
# =============================================================================


@dataclass(frozen=True)
class Config:
    """Complete configuration for one project graph."""

    project_path: Path

    # Section configs - defaults set in __post_init__, type: ignore needed because
    # frozen dataclass doesn't allow proper initialization pattern
    scan: ScanConfig = None  # type: ignore[assignment]
    resolver: ResolverConfig = None  # type: ignore[assignment]
    reach: ReachConfig = None  # type: ignore[assignment]
    risk: RiskConfig = None  # type: ignore[assignment]
    storage: StorageConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        # Since frozen=True, we need to use object.__setattr__
        object.__setattr__(self, "project_path", Path(self.project_path))
        if self.scan is None:
            object.__setattr__(self, "scan", ScanConfig(**_defaults("scan")))
        if self.resolver is None:
            object.__setattr__(self, "resolver", ResolverConfig(**_defaults("resolver")))
        if self.reach is None:
            object.__setattr__(self, "reach", ReachConfig(**_defaults("reach")))
        if self.risk is None:
            object.__setattr__(self, "risk", RiskConfig(**_defaults("risk")))
        if self.storage is None:
            object.__setattr__(self, "storage", StorageConfig(**_defaults("storage")))

    @property
    def data_path(self) -> Path:
        """Directory holding all persisted state."""
        return self.project_path / self.storage.data_dir

    @property
    def graph_path(self) -> Path:
        """Directory holding the sharded graph tables."""
        return self.data_path / GRAPH_DIR

    @property
    def graph_staging_path(self) -> Path:
        """Directory a save writes into before it replaces graph_path."""
        return self.data_path / GRAPH_STAGING_DIR

    @property
    def rules_path(self) -> Path:
        """Default boundary rule file."""
        return self.project_path / self.storage.rules_file

    @property
    def ignore_path(self) -> Path:
        """Ignore file with extra exclude patterns."""
        return self.project_path / self.storage.ignore_file
