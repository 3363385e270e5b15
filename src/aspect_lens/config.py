"""
Configuration file support for Aspect Lens.

Supports TOML configuration files (aspect-lens.toml) for persistent settings.
"""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from aspect_lens.errors import ConfigError, ErrorCode, invalid_config
from aspect_lens.project import DEFAULT_EXCLUDED_DIRS, DEFAULT_MAX_FILE_SIZE_BYTES
from aspect_lens.schemas import WILDCARD

# Default config file names (searched in order)
CONFIG_FILE_NAMES = [
    "aspect-lens.toml",
    ".aspect-lens.toml",
    "pyproject.toml",  # Will look for [tool.aspect-lens] section
]

TOOL_SECTION = "aspect-lens"


class AnalysisSettings(BaseModel):
    """Analysis-related configuration."""

    excluded_dirs: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    additional_excluded_dirs: list[str] = Field(default_factory=list)
    max_file_size_bytes: int = Field(default=DEFAULT_MAX_FILE_SIZE_BYTES, ge=1024, le=100_000_000)
    plugins_dir: str | None = Field(default=None, description="Directory of plugin files to load")

    def all_excluded_dirs(self) -> list[str]:
        return [*self.excluded_dirs, *self.additional_excluded_dirs]


class ReportSettings(BaseModel):
    """Report-related configuration."""

    url_prefix: str = Field(default="/api/v1")
    default_workspace: str = Field(default=WILDCARD)

    @field_validator("url_prefix")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class ScoringSettings(BaseModel):
    """Scoring-related configuration."""

    default_category: str = Field(default=WILDCARD)
    weights: dict[str, float] = Field(default_factory=dict, description="Weight overrides by scorer name")

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        """Scorer weights must be positive."""
        for name, weight in v.items():
            if weight <= 0:
                raise ValueError(f"weight for {name} must be positive, got {weight}")
        return v


class StoreSettings(BaseModel):
    """Fingerprint store configuration."""

    path: str = Field(default=".aspect-lens/fingerprints.jsonl")


class AspectLensConfig(BaseModel):
    """Complete Aspect Lens configuration."""

    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    @classmethod
    def default(cls) -> "AspectLensConfig":
        """Create config with all defaults."""
        return cls()


def _find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Find configuration file by searching up from start directory.

    Args:
        start_dir: Directory to start search (default: current directory)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    # Search up the directory tree
    while True:
        for name in CONFIG_FILE_NAMES:
            config_path = current / name
            if config_path.exists():
                return config_path

        # Stop at filesystem root
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_config(config_path: Path | None = None, start_dir: Path | None = None) -> AspectLensConfig:
    """
    Load configuration from file.

    Args:
        config_path: Explicit path to config file (optional)
        start_dir: Where to start searching when no path is given

    Returns:
        AspectLensConfig with loaded settings

    Raises:
        ConfigError: If config file is invalid
    """
    # If no explicit path, search for config file
    if config_path is None:
        config_path = _find_config_file(start_dir)

    # No config file found - use defaults
    if config_path is None:
        return AspectLensConfig.default()

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            message=f"Failed to read config file: {e}",
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            config_path=str(config_path),
        ) from e

    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise invalid_config(str(config_path), f"failed to parse TOML: {e}") from e

    # Handle pyproject.toml (look for [tool.aspect-lens] section)
    if config_path.name == "pyproject.toml":
        data = data.get("tool", {}).get(TOOL_SECTION, {})
        if not data:
            return AspectLensConfig.default()

    try:
        return AspectLensConfig.model_validate(data)
    except ValidationError as e:
        raise invalid_config(str(config_path), f"invalid values: {e}") from e


def generate_default_config() -> str:
    """
    Generate default configuration file content.

    Returns:
        TOML string with default configuration
    """
    excluded = ", ".join(f'"{d}"' for d in DEFAULT_EXCLUDED_DIRS)
    return f'''# Aspect Lens Configuration

[analysis]
excluded_dirs = [{excluded}]
additional_excluded_dirs = []      # Add custom directories to exclude
max_file_size_bytes = 1_000_000    # 1 MB
# plugins_dir = "aspect-lens-plugins"

[report]
url_prefix = "/api/v1"
default_workspace = "*"            # "*" means every workspace

[scoring]
default_category = "*"             # Only run scorers of this category

[scoring.weights]
# ci-configured = 2.0

[store]
path = ".aspect-lens/fingerprints.jsonl"
'''


def save_default_config(path: Path | None = None) -> Path:
    """
    Save default configuration to file.

    Args:
        path: Path to save config (default: ./aspect-lens.toml)

    Returns:
        Path where config was saved
    """
    if path is None:
        path = Path("aspect-lens.toml")

    path.write_text(generate_default_config(), encoding="utf-8")
    return path
