"""Tests for configuration loading."""

import tomllib

import pytest

from aspect_lens.config import (
    AspectLensConfig,
    ScoringSettings,
    generate_default_config,
    load_config,
    save_default_config,
)
from aspect_lens.errors import ConfigError, ErrorCode


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, tmp_path):
        """No config file anywhere up the tree gives defaults."""
        config = load_config(start_dir=tmp_path)
        assert config.report.url_prefix == "/api/v1"
        assert config.scoring.default_category == "*"
        assert "node_modules" in config.analysis.excluded_dirs

    def test_explicit_file(self, tmp_path):
        """Values from an explicit file are applied."""
        path = tmp_path / "custom.toml"
        path.write_text('[report]\nurl_prefix = "/reports/"\n\n[scoring.weights]\nci-configured = 2.5\n')
        config = load_config(path)
        assert config.report.url_prefix == "/reports"
        assert config.scoring.weights == {"ci-configured": 2.5}

    def test_found_by_searching_up(self, tmp_path):
        """A config file in a parent directory is found."""
        (tmp_path / "aspect-lens.toml").write_text('[store]\npath = "fp.jsonl"\n')
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert load_config(start_dir=nested).store.path == "fp.jsonl"

    def test_pyproject_section(self, tmp_path):
        """Settings may live under [tool.aspect-lens] in pyproject.toml."""
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "x"\n\n[tool.aspect-lens.analysis]\nadditional_excluded_dirs = ["generated"]\n'
        )
        config = load_config(start_dir=tmp_path)
        assert "generated" in config.analysis.all_excluded_dirs()

    def test_pyproject_without_section(self, tmp_path):
        """A pyproject.toml without the section gives defaults."""
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n')
        assert load_config(start_dir=tmp_path) == AspectLensConfig.default()

    def test_invalid_toml(self, tmp_path):
        """Unparseable TOML raises a config error."""
        path = tmp_path / "aspect-lens.toml"
        path.write_text("[report\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
        assert exc_info.value.context["config_path"] == str(path)

    def test_invalid_values(self, tmp_path):
        """Out-of-range values raise a config error."""
        path = tmp_path / "aspect-lens.toml"
        path.write_text("[analysis]\nmax_file_size_bytes = 1\n")
        with pytest.raises(ConfigError, match="invalid values"):
            load_config(path)

    def test_missing_explicit_file(self, tmp_path):
        """An explicit path that cannot be read raises."""
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "absent.toml")
        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND


class TestScoringSettings:
    """Tests for scoring settings validation."""

    def test_non_positive_weight_rejected(self):
        """Weights must be positive."""
        with pytest.raises(ValueError):
            ScoringSettings(weights={"a": 0})


class TestDefaultConfig:
    """Tests for generating the default config file."""

    def test_generated_config_parses_to_defaults(self):
        """The generated file is valid TOML describing the defaults."""
        data = tomllib.loads(generate_default_config())
        assert AspectLensConfig.model_validate(data) == AspectLensConfig.default()

    def test_save(self, tmp_path):
        """The default config is written where asked."""
        path = save_default_config(tmp_path / "aspect-lens.toml")
        assert load_config(path) == AspectLensConfig.default()
